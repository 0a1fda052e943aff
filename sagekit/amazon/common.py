###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import io
import struct

import numpy as np
from scipy.sparse import issparse

from ..error_helper import (
    LabelShapeMismatchError,
    RecordShapeError,
    TruncatedRecordError,
    UnsupportedDtypeError,
)
from ..logging import get_logger
from .record_pb2 import Record

logger = get_logger(service="sagekit_recordio")

CONTENT_TYPE = "application/x-recordio-protobuf"

# Every frame starts with this marker, little-endian
_kmagic = 0xCED7230A
_HEADER = struct.Struct("<II")

# MXNet requires recordio records have length in bytes that's a multiple of 4
_padding = [b"\x00" * amount for amount in range(4)]


class RecordSerializer:
    """Serialize a 1D or 2D numpy array (or a scipy sparse matrix) to RecordIO protobuf"""

    CONTENT_TYPE = CONTENT_TYPE

    def __init__(self, content_type=CONTENT_TYPE):
        self.content_type = content_type

    def serialize(self, data):
        buffer = io.BytesIO()
        if issparse(data):
            write_spmatrix_to_sparse_tensor(buffer, data)
        else:
            array = np.asarray(data)
            if array.ndim == 1:
                array = array.reshape(1, array.shape[0])
            if array.ndim != 2:
                raise RecordShapeError("Expected a 1D or 2D array")
            write_numpy_to_dense_tensor(buffer, array)
        return buffer.getvalue()


class RecordDeserializer:
    """Deserialize a RecordIO protobuf stream into a list of Record messages"""

    ACCEPT = (CONTENT_TYPE,)

    def __init__(self, accept=CONTENT_TYPE):
        self.accept = (accept,) if isinstance(accept, str) else accept

    def deserialize(self, stream, content_type):
        if isinstance(stream, (bytes, bytearray)):
            stream = io.BytesIO(stream)
        try:
            return read_records(stream)
        finally:
            stream.close()


def _tensor_field(resolved_type):
    return {"Int32": "int32_tensor", "Float32": "float32_tensor", "Float64": "float64_tensor"}[
        resolved_type
    ]


def _write_feature_tensor(resolved_type, record, vector):
    tensor = getattr(record.features["values"], _tensor_field(resolved_type))
    tensor.values.extend(vector)


def _write_label_tensor(resolved_type, record, scalar):
    tensor = getattr(record.label["values"], _tensor_field(resolved_type))
    tensor.values.extend([scalar])


def _write_keys_tensor(resolved_type, record, vector):
    tensor = getattr(record.features["values"], _tensor_field(resolved_type))
    tensor.keys.extend(vector)


def _write_shape(resolved_type, record, scalar):
    tensor = getattr(record.features["values"], _tensor_field(resolved_type))
    tensor.shape.extend([scalar])


def _validate_labels(labels, array_shape, n_rows):
    labels = np.asarray(labels)
    if labels.ndim != 1:
        raise RecordShapeError("Labels must be a Vector")
    if labels.shape[0] not in array_shape:
        raise LabelShapeMismatchError(
            f"Label shape {labels.shape} not compatible with array shape {array_shape}"
        )
    if labels.shape[0] < n_rows:
        raise LabelShapeMismatchError(
            f"Label shape {labels.shape} has fewer entries than the {n_rows} array rows"
        )
    return labels, _resolve_type(labels.dtype, labels)


def write_numpy_to_dense_tensor(file, array, labels=None):
    """
    Write a 2D array and an optional label vector to file as RecordIO framed
    Records, one Record per row.

    Args:
        file: writable binary stream
        array (numpy.ndarray): 2D array of int32, int64, float32 or float64
        labels (numpy.ndarray): optional 1D label vector, one label per row
    """
    array = np.asarray(array)
    # Validate shape of array and labels, resolve array and label types
    if array.ndim != 2:
        raise RecordShapeError("Array must be a Matrix")
    if labels is not None:
        labels, resolved_label_type = _validate_labels(labels, array.shape, array.shape[0])
    resolved_type = _resolve_type(array.dtype, array)

    # Write each vector in array into a Record in the file object
    record = Record()
    for index, vector in enumerate(array):
        record.Clear()
        _write_feature_tensor(resolved_type, record, vector.tolist())
        if labels is not None:
            _write_label_tensor(resolved_label_type, record, labels[index].item())
        write_recordio(file, record.SerializeToString())


def write_spmatrix_to_sparse_tensor(file, array, labels=None):
    """
    Write a scipy sparse matrix and an optional label vector to file. Each
    row stores its non-zero values, their column indices as keys and the
    column count as shape.
    """
    if not issparse(array):
        raise TypeError("Array must be sparse")

    # Validate shape of array and labels, resolve array and label types
    if len(array.shape) != 2:
        raise RecordShapeError("Array must be a Matrix")
    n_rows, n_cols = array.shape
    if labels is not None:
        labels, resolved_label_type = _validate_labels(labels, array.shape, n_rows)
    csr_array = array.tocsr(copy=True)
    csr_array.sum_duplicates()
    resolved_type = _resolve_type(csr_array.dtype, csr_array.data)

    record = Record()
    for row_idx in range(n_rows):
        record.Clear()
        start, end = csr_array.indptr[row_idx], csr_array.indptr[row_idx + 1]
        # Write values
        _write_feature_tensor(resolved_type, record, csr_array.data[start:end].tolist())
        # Write keys
        _write_keys_tensor(
            resolved_type, record, csr_array.indices[start:end].astype(np.uint64).tolist()
        )
        # Write labels
        if labels is not None:
            _write_label_tensor(resolved_label_type, record, labels[row_idx].item())
        # Write shape
        _write_shape(resolved_type, record, n_cols)

        write_recordio(file, record.SerializeToString())


def read_records(file):
    """Eagerly read a collection of Record protobuf objects from file"""
    records = []
    for record_data in read_recordio(file):
        record = Record()
        record.ParseFromString(record_data)
        records.append(record)
    return records


def padding_length(length):
    return (((length + 3) >> 2) << 2) - length


def write_recordio(f, data):
    """Write a single data point as a RecordIO record to the given file"""
    length = len(data)
    f.write(_HEADER.pack(_kmagic, length))
    f.write(data)
    f.write(_padding[padding_length(length)])


def read_recordio(f):
    """
    Yield the payload of each RecordIO record in f.

    The stream ends when fewer than four bytes remain or when the next four
    bytes are not the magic number.
    """
    while True:
        magic = f.read(4)
        if len(magic) < 4:
            return
        (read_kmagic,) = struct.unpack("<I", magic)
        if read_kmagic != _kmagic:
            logger.debug(f"Stopping at magic number {read_kmagic:#x}")
            return
        length_bytes = f.read(4)
        if len(length_bytes) < 4:
            raise TruncatedRecordError("RecordIO stream ended inside a record header")
        (len_record,) = struct.unpack("<I", length_bytes)
        data = f.read(len_record)
        if len(data) < len_record:
            raise TruncatedRecordError(
                f"RecordIO stream ended after {len(data)} of {len_record} payload bytes"
            )
        yield data
        pad = padding_length(len_record)
        if pad:
            f.read(pad)


def _resolve_type(dtype, values=None):
    dtype = np.dtype(dtype)
    if dtype in (np.dtype(np.int32), np.dtype(int)):
        # wider integers are narrowed to int32 on the wire
        if dtype != np.dtype(np.int32) and values is not None and values.size:
            bounds = np.iinfo(np.int32)
            if values.min() < bounds.min or values.max() > bounds.max:
                raise UnsupportedDtypeError(
                    f"Values of dtype {dtype} exceed the int32 range [{bounds.min}, {bounds.max}]"
                )
        return "Int32"
    if dtype == np.dtype(np.float64):
        return "Float64"
    if dtype == np.dtype(np.float32):
        return "Float32"
    raise UnsupportedDtypeError(f"Unsupported dtype {dtype} on array")
