###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import csv
import io
import json

import numpy as np

from .amazon.common import RecordSerializer
from .error_helper import ValidationError


class BaseSerializer:
    CONTENT_TYPE = "application/octet-stream"

    def __init__(self, content_type=None):
        self.content_type = content_type or self.CONTENT_TYPE

    def serialize(self, data):
        raise NotImplementedError


class IdentitySerializer(BaseSerializer):
    """Pass bytes or str through unchanged"""

    def serialize(self, data):
        return data


class CSVSerializer(BaseSerializer):
    CONTENT_TYPE = "text/csv"

    def serialize(self, data):
        if isinstance(data, str):
            return data
        if hasattr(data, "read"):
            return data.read()
        if hasattr(data, "to_csv"):
            return data.to_csv(header=False, index=False).rstrip("\n")
        if isinstance(data, np.ndarray) or _is_sequence(data):
            rows = data if _is_sequence(_first(data)) else [data]
            return "\n".join(self._serialize_row(row) for row in rows)
        raise ValidationError(f"Unable to handle input format: {type(data)}")

    @staticmethod
    def _serialize_row(row):
        if isinstance(row, str):
            return row
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="").writerow(np.asarray(row).tolist())
        return buffer.getvalue()


class JSONSerializer(BaseSerializer):
    CONTENT_TYPE = "application/json"

    def serialize(self, data):
        if isinstance(data, dict):
            return json.dumps({k: _to_jsonable(v) for k, v in data.items()})
        if hasattr(data, "read"):
            return data.read()
        return json.dumps(_to_jsonable(data))


class JSONLinesSerializer(BaseSerializer):
    CONTENT_TYPE = "application/jsonlines"

    def serialize(self, data):
        if isinstance(data, str):
            return data
        return "\n".join(json.dumps(_to_jsonable(item)) for item in data)


class NumpySerializer(BaseSerializer):
    CONTENT_TYPE = "application/x-npy"

    def __init__(self, dtype=None, content_type=None):
        super().__init__(content_type)
        self.dtype = dtype

    def serialize(self, data):
        array = np.asarray(data, dtype=self.dtype)
        if array.size == 0:
            raise ValidationError("Cannot serialize empty array.")
        buffer = io.BytesIO()
        np.save(buffer, array)
        return buffer.getvalue()


def _is_sequence(value):
    return isinstance(value, (list, tuple, np.ndarray))


def _first(data):
    return data[0] if len(data) else None


def _to_jsonable(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if hasattr(value, "to_dict"):
        return value.to_dict(orient="list")
    return value


__all__ = [
    "BaseSerializer",
    "IdentitySerializer",
    "CSVSerializer",
    "JSONSerializer",
    "JSONLinesSerializer",
    "NumpySerializer",
    "RecordSerializer",
]
