###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import io
import json

import numpy as np
from scipy.sparse import issparse

from .. import image_uris
from ..error_helper import HyperparameterValidationError, ValidationError
from ..estimator import Estimator
from ..inputs import TrainingInput
from ..logging import get_logger
from ..s3_helper import parse_s3_url
from ..utils_helper import base_name_from_image, sagemaker_timestamp
from .algorithms import AlgorithmSpec, get_algorithm
from .common import (
    RecordDeserializer,
    RecordSerializer,
    _validate_labels,
    write_numpy_to_dense_tensor,
    write_spmatrix_to_sparse_tensor,
)

logger = get_logger(service="sagekit_amazon_estimator")

MANIFEST_FILE = ".amazon.manifest"


class RecordSet:
    """A manifest of RecordIO shards in S3, used as a training channel"""

    def __init__(self, s3_data, num_records, feature_dim, s3_data_type="ManifestFile", channel="train"):
        self.s3_data = s3_data
        self.num_records = num_records
        self.feature_dim = feature_dim
        self.s3_data_type = s3_data_type
        self.channel = channel

    def __repr__(self):
        return f"(RecordSet: {self.__dict__})"

    def data_channel(self):
        return {self.channel: self.records_s3_input()}

    def records_s3_input(self):
        return TrainingInput(
            self.s3_data, distribution="ShardedByS3Key", s3_data_type=self.s3_data_type
        )


def upload_numpy_to_s3_shards(num_shards, s3, bucket, key_prefix, array, labels=None, encrypt=False):
    """
    Split ``array`` row-wise into at most ``num_shards`` RecordIO files,
    upload them under ``key_prefix`` and write a manifest listing them.

    Args:
        num_shards (int): number of shards, usually the training instance count
        s3 (S3Helper): helper wrapping the S3 client
        bucket (str): destination bucket
        key_prefix (str): destination prefix, ending with a slash
        array: 2D numpy array or scipy sparse matrix
        labels: 1D label vector, sharded along with the rows
        encrypt (bool): request AES256 server side encryption

    Returns:
        str: S3 URI of the manifest file

    Already uploaded shards are deleted when any upload fails.
    """
    sparse = issparse(array)
    if sparse:
        array = array.tocsr()
    else:
        array = np.asarray(array)
    n_rows = array.shape[0]
    if n_rows == 0:
        raise ValidationError("Cannot upload an array with no rows")
    if labels is not None:
        labels, _ = _validate_labels(labels, array.shape, n_rows)
        labels = labels[:n_rows]

    shard_size = int(np.ceil(n_rows / num_shards))
    shards = [array[i : i + shard_size] for i in range(0, n_rows, shard_size)]
    label_shards = (
        [labels[i : i + shard_size] for i in range(0, n_rows, shard_size)]
        if labels is not None
        else [None] * len(shards)
    )
    extra_args = {"ServerSideEncryption": "AES256"} if encrypt else None
    write = write_spmatrix_to_sparse_tensor if sparse else write_numpy_to_dense_tensor

    uploaded_files = []
    try:
        for shard_index, (shard, label_shard) in enumerate(zip(shards, label_shards)):
            buffer = io.BytesIO()
            write(buffer, shard, label_shard)
            file_name = "matrix_{}.pbr".format(str(shard_index).zfill(len(str(len(shards)))))
            s3.write_to_s3(buffer.getvalue(), bucket, key_prefix + file_name, extra_args)
            uploaded_files.append(file_name)

        manifest_key = key_prefix + MANIFEST_FILE
        manifest = [{"prefix": f"s3://{bucket}/{key_prefix}"}] + uploaded_files
        return s3.write_to_s3(json.dumps(manifest), bucket, manifest_key, extra_args)
    except Exception:
        logger.exception(f"Failed uploading record shards to s3://{bucket}/{key_prefix}")
        s3.delete_objects(bucket, [key_prefix + name for name in uploaded_files])
        raise


class AmazonAlgorithmEstimator(Estimator):
    """
    Estimator for a first-party algorithm trained on RecordIO protobuf data.

    The algorithm itself is an ``AlgorithmSpec``: its schema validates the
    hyperparameters at construction time and its name selects the image.
    """

    def __init__(
        self,
        algorithm,
        role,
        instance_count,
        instance_type,
        hyperparameters=None,
        data_location=None,
        session=None,
        feature_dim=None,
        mini_batch_size=None,
        **kwargs,
    ):
        if not isinstance(algorithm, AlgorithmSpec):
            algorithm = get_algorithm(algorithm)
        if session is None:
            from ..session import Session

            session = Session()

        self.algorithm = algorithm
        self._values = dict(hyperparameters or {})
        self._wire_hyperparameters = algorithm.hyperparameters(self._values)
        self.feature_dim = feature_dim
        self.mini_batch_size = mini_batch_size

        kwargs.setdefault("base_job_name", algorithm.name)
        kwargs.pop("image_uri", None)
        super().__init__(
            image_uris.retrieve(algorithm.name, session.region_name, algorithm.repo_version),
            role,
            instance_count,
            instance_type,
            session=session,
            **kwargs,
        )
        self.data_location = data_location or f"s3://{session.default_bucket()}/sagemaker-record-sets/"

    @property
    def data_location(self):
        return self._data_location

    @data_location.setter
    def data_location(self, data_location):
        if not data_location.startswith("s3://"):
            raise ValidationError(
                f'Expecting an S3 URL beginning with "s3://". Got "{data_location}"'
            )
        if not data_location.endswith("/"):
            data_location += "/"
        self._data_location = data_location

    def set_hyperparameters(self, **kwargs):
        values = {**self._values, **kwargs}
        self._wire_hyperparameters = self.algorithm.hyperparameters(values)
        self._values = values

    def hyperparameters(self):
        result = dict(self._wire_hyperparameters)
        if self.feature_dim is not None:
            result["feature_dim"] = str(self.feature_dim)
        if self.mini_batch_size is not None:
            result["mini_batch_size"] = str(self.mini_batch_size)
        return result

    def record_set(self, train, labels=None, channel="train", encrypt=False):
        """
        Upload ``train`` (and ``labels``) to ``data_location`` as RecordIO
        shards, one per training instance, and return the RecordSet.
        """
        if not issparse(train):
            train = np.asarray(train)
            if train.ndim == 1:
                train = train.reshape(1, -1)
        bucket, key_prefix = parse_s3_url(self.data_location)
        key_prefix = f"{key_prefix}{self.algorithm.name}-{sagemaker_timestamp()}/".lstrip("/")
        logger.debug(f"Uploading to bucket {bucket} and key_prefix {key_prefix}")
        manifest_s3_file = upload_numpy_to_s3_shards(
            self.instance_count, self.session.s3, bucket, key_prefix, train, labels, encrypt
        )
        logger.debug(f"Created manifest file {manifest_s3_file}")
        return RecordSet(
            manifest_s3_file,
            num_records=train.shape[0],
            feature_dim=train.shape[1],
            channel=channel,
        )

    def _resolve_mini_batch_size(self, mini_batch_size, num_records):
        default = self.algorithm.default_mini_batch_size
        if self.algorithm.fixed_mini_batch_size:
            if mini_batch_size is not None and mini_batch_size != default:
                raise HyperparameterValidationError(
                    f"{self.algorithm.name} uses a fixed mini_batch_size of {default}"
                )
            return default
        if mini_batch_size is None and default is not None:
            # mini_batch_size can't be greater than number of records or training job fails
            mini_batch_size = min(default, max(1, num_records // self.instance_count))
        if mini_batch_size is not None and mini_batch_size < 1:
            raise HyperparameterValidationError(
                f"Invalid hyperparameter value {mini_batch_size} for mini_batch_size"
            )
        return mini_batch_size

    def _prepare_inputs(self, records, mini_batch_size=None):
        """Take ``feature_dim`` and the record count from the ``train`` channel"""
        if isinstance(records, list):
            train = next((record for record in records if record.channel == "train"), None)
            if train is None:
                raise ValidationError("Must provide train channel.")
        elif isinstance(records, RecordSet):
            train = records
        else:
            raise ValidationError("records must be a RecordSet or a list of RecordSet")
        self.feature_dim = self.algorithm.validate_feature_dim(train.feature_dim)
        self.mini_batch_size = self._resolve_mini_batch_size(mini_batch_size, train.num_records)

    def fit(self, records, mini_batch_size=None, wait=True, job_name=None, experiment_config=None):
        """Train on one RecordSet or a list of RecordSets"""
        self._prepare_inputs(records, mini_batch_size)
        return super().fit(records, wait=wait, job_name=job_name, experiment_config=experiment_config)

    def deploy(self, initial_instance_count, instance_type, serializer=None, deserializer=None, **kwargs):
        return super().deploy(
            initial_instance_count,
            instance_type,
            serializer=serializer or RecordSerializer(),
            deserializer=deserializer or RecordDeserializer(),
            **kwargs,
        )

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details):
        init_params = super()._prepare_init_params_from_job_description(job_details)
        algorithm = get_algorithm(base_name_from_image(init_params.pop("image_uri")))
        wire = init_params["hyperparameters"]
        init_params["algorithm"] = algorithm
        init_params["hyperparameters"] = algorithm.schema.from_wire(wire)
        init_params["feature_dim"] = int(wire["feature_dim"]) if "feature_dim" in wire else None
        init_params["mini_batch_size"] = int(wire["mini_batch_size"]) if "mini_batch_size" in wire else None
        return init_params
