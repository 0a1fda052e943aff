###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

"""Typed hyperparameter schemas for the built-in algorithms.

A schema is a fixed collection of ``Hyperparameter`` specs. Values are
converted and validated when the schema is applied, and the result is the
``dict[str, str]`` sent as ``HyperParameters`` in CreateTrainingJob.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from ..error_helper import HyperparameterValidationError
from ..utils_helper import to_string


def gt(minimum):
    return lambda value: value > minimum


def ge(minimum):
    return lambda value: value >= minimum


def lt(maximum):
    return lambda value: value < maximum


def le(maximum):
    return lambda value: value <= maximum


def isin(*expected):
    return lambda value: value in expected


def istype(expected):
    return lambda value: isinstance(value, expected)


def to_bool(value):
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"{value!r} is not a boolean")


def to_list(value):
    if isinstance(value, str):
        return [item.strip() for item in value.strip("[]").split(",") if item.strip()]
    return list(value)


@dataclass(frozen=True)
class Hyperparameter:
    name: str
    data_type: Callable = str
    validators: Tuple[Callable, ...] = ()
    validation_message: str = ""
    required: bool = False
    # keyword used on the python side when it differs from the wire name
    attribute: Optional[str] = None

    @property
    def key(self):
        return self.attribute or self.name

    def convert(self, value):
        try:
            return self.data_type(value)
        except (TypeError, ValueError) as e:
            raise HyperparameterValidationError(
                f"Invalid hyperparameter value {value!r} for {self.name}: {e}"
            ) from e

    def validate(self, value):
        for valid in self.validators:
            if not valid(value):
                message = f"Invalid hyperparameter value {value} for {self.name}"
                if self.validation_message:
                    message += f". Expecting: {self.validation_message}"
                raise HyperparameterValidationError(message)
        return value


@dataclass
class HyperparameterSchema:
    hyperparameters: Tuple[Hyperparameter, ...] = field(default_factory=tuple)

    def __post_init__(self):
        self._by_key = {}
        for hp in self.hyperparameters:
            self._by_key[hp.key] = hp
            self._by_key.setdefault(hp.name, hp)

    def __contains__(self, key):
        return key in self._by_key

    def get(self, key) -> Hyperparameter:
        return self._by_key[key]

    def validate(self, values: Dict) -> Dict[str, str]:
        """
        Convert and check ``values`` (keyed by python keyword or wire name).
        ``None`` values are dropped; unknown names and missing required
        values are rejected.
        """
        result = {}
        for key, value in values.items():
            if key not in self._by_key:
                raise HyperparameterValidationError(f"Unknown hyperparameter: {key}")
            if value is None:
                continue
            hp = self._by_key[key]
            result[hp.name] = to_string(hp.validate(hp.convert(value)))

        missing = [hp.key for hp in self.hyperparameters if hp.required and hp.name not in result]
        if missing:
            raise HyperparameterValidationError(
                f"Missing required hyperparameters: {', '.join(missing)}"
            )
        return result

    def from_wire(self, hyperparameters: Dict[str, str]) -> Dict:
        """Map a job description's hyperparameters back to typed python keywords"""
        values = {}
        for name, raw in hyperparameters.items():
            if name not in self._by_key:
                continue
            hp = self._by_key[name]
            values[hp.key] = hp.convert(raw.strip('"'))
        return values
