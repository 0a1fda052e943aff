###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import configparser
import os
from dataclasses import dataclass
from typing import Optional

from .dataclass_helper import from_dict
from .error_helper import ValidationError
from .utils_helper import get_env

DEFAULTS_SECTION = "defaults"


@dataclass
class PollingPolicy:
    """
    How long and how often to poll a describe call while waiting for a job
    or endpoint to reach a terminal status.

    Sleeps start at ``interval`` seconds, grow by ``backoff`` after every poll
    and never exceed ``max_interval``. Waiting stops after ``timeout`` seconds.
    """

    interval: float = 10.0
    timeout: float = 3600.0
    backoff: float = 1.5
    max_interval: float = 60.0

    def __post_init__(self):
        if self.interval <= 0:
            raise ValidationError(f"Polling interval must be positive, got {self.interval}")
        if self.timeout <= 0:
            raise ValidationError(f"Polling timeout must be positive, got {self.timeout}")
        if self.backoff < 1:
            raise ValidationError(f"Polling backoff must be >= 1, got {self.backoff}")
        if self.max_interval < self.interval:
            raise ValidationError(
                f"max_interval ({self.max_interval}) must be >= interval ({self.interval})"
            )

    def sleeps(self):
        delay = self.interval
        while True:
            yield delay
            delay = min(delay * self.backoff, self.max_interval)


@dataclass
class SessionSettings:
    region: Optional[str] = None
    default_bucket: Optional[str] = None
    default_bucket_prefix: Optional[str] = None
    role: Optional[str] = None
    poll_interval: float = 10.0
    poll_timeout: float = 3600.0
    poll_backoff: float = 1.5
    max_poll_interval: float = 60.0
    max_retry_attempts: int = 2

    def polling_policy(self) -> PollingPolicy:
        return PollingPolicy(
            interval=self.poll_interval,
            timeout=self.poll_timeout,
            backoff=self.poll_backoff,
            max_interval=self.max_poll_interval,
        )


class ConfigReader:
    def __init__(self, config_path=None):
        self.config = configparser.ConfigParser()
        self.config_path = config_path or get_env("SAGEKIT_CONFIG")

        # Read config file
        if self.config_path is None:
            return
        if os.path.exists(self.config_path):
            self.config.read(self.config_path)
        else:
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

    def get_defaults(self):
        config = {}

        # Add configurations from defaults section
        if DEFAULTS_SECTION in self.config:
            config.update(self.config[DEFAULTS_SECTION])

        return config


def load_settings(config_path=None, **overrides) -> SessionSettings:
    """
    Merge, in increasing priority: built-in defaults, environment variables,
    the ``[defaults]`` section of the INI file and keyword overrides.
    """
    values = {
        "region": get_env("AWS_REGION"),
        "max_retry_attempts": get_env("MAX_RETRY_ATTEMPTS", "2"),
    }
    values.update(ConfigReader(config_path).get_defaults())
    values.update({k: v for k, v in overrides.items() if v is not None})
    values = {k: v for k, v in values.items() if v is not None}
    return from_dict(SessionSettings, values)
