###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .algorithms import ALGORITHMS, AlgorithmSpec, get_algorithm
from .common import (
    RecordDeserializer,
    RecordSerializer,
    read_records,
    read_recordio,
    write_numpy_to_dense_tensor,
    write_recordio,
    write_spmatrix_to_sparse_tensor,
)
from .hyperparameter import Hyperparameter, HyperparameterSchema

__all__ = [
    "ALGORITHMS",
    "AlgorithmSpec",
    "get_algorithm",
    "RecordDeserializer",
    "RecordSerializer",
    "read_records",
    "read_recordio",
    "write_numpy_to_dense_tensor",
    "write_recordio",
    "write_spmatrix_to_sparse_tensor",
    "Hyperparameter",
    "HyperparameterSchema",
]
