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
import pandas as pd

from .amazon.common import RecordDeserializer
from .error_helper import ValidationError


class BaseDeserializer:
    ACCEPT = ("*/*",)

    def __init__(self, accept=None):
        accept = accept or self.ACCEPT
        self.accept = (accept,) if isinstance(accept, str) else tuple(accept)

    def deserialize(self, stream, content_type):
        try:
            return self._deserialize(stream, content_type)
        finally:
            stream.close()

    def _deserialize(self, stream, content_type):
        raise NotImplementedError


class BytesDeserializer(BaseDeserializer):
    def _deserialize(self, stream, content_type):
        return stream.read()


class StringDeserializer(BaseDeserializer):
    ACCEPT = ("application/json",)

    def __init__(self, encoding="UTF-8", accept=None):
        super().__init__(accept)
        self.encoding = encoding

    def _deserialize(self, stream, content_type):
        return stream.read().decode(self.encoding)


class CSVDeserializer(BaseDeserializer):
    """Deserialize CSV text into a list of rows of strings"""

    ACCEPT = ("text/csv",)

    def __init__(self, encoding="utf-8", accept=None):
        super().__init__(accept)
        self.encoding = encoding

    def _deserialize(self, stream, content_type):
        text = stream.read().decode(self.encoding)
        return list(csv.reader(text.splitlines()))


class JSONDeserializer(BaseDeserializer):
    ACCEPT = ("application/json",)

    def _deserialize(self, stream, content_type):
        return json.loads(stream.read().decode("utf-8"))


class JSONLinesDeserializer(BaseDeserializer):
    ACCEPT = ("application/jsonlines",)

    def _deserialize(self, stream, content_type):
        lines = stream.read().decode("utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]


class NumpyDeserializer(BaseDeserializer):
    """Deserialize CSV, JSON or NPY responses into a numpy array"""

    ACCEPT = ("application/x-npy",)

    def __init__(self, dtype=None, accept=None, allow_pickle=False):
        super().__init__(accept)
        self.dtype = dtype
        self.allow_pickle = allow_pickle

    def _deserialize(self, stream, content_type):
        body = stream.read()
        if content_type == "text/csv":
            return np.genfromtxt(
                io.StringIO(body.decode("utf-8")), delimiter=",", dtype=self.dtype
            )
        if content_type == "application/json":
            return np.array(json.loads(body.decode("utf-8")), dtype=self.dtype)
        if content_type == "application/x-npy":
            return np.load(io.BytesIO(body), allow_pickle=self.allow_pickle)
        raise ValidationError(f"{content_type} cannot be read as a numpy array.")


class PandasDeserializer(BaseDeserializer):
    """Deserialize CSV or JSON responses into a pandas DataFrame"""

    ACCEPT = ("text/csv", "application/json")

    def _deserialize(self, stream, content_type):
        body = stream.read()
        if content_type == "text/csv":
            return pd.read_csv(io.BytesIO(body))
        if content_type == "application/json":
            return pd.read_json(io.BytesIO(body))
        raise ValidationError(f"{content_type} cannot be read as pandas data frame.")


__all__ = [
    "BaseDeserializer",
    "BytesDeserializer",
    "StringDeserializer",
    "CSVDeserializer",
    "JSONDeserializer",
    "JSONLinesDeserializer",
    "NumpyDeserializer",
    "PandasDeserializer",
    "RecordDeserializer",
]
