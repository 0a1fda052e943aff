import io
import json

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from sagekit.amazon.algorithms import KMEANS
from sagekit.amazon.common import RecordDeserializer, RecordSerializer, read_records
from sagekit.amazon.estimator import AmazonAlgorithmEstimator, RecordSet, upload_numpy_to_s3_shards
from sagekit.error_helper import HyperparameterValidationError, ValidationError
from sagekit.s3_helper import S3Helper

from tests.conftest import BUCKET, ROLE, FakeS3Client

KMEANS_IMAGE = "174872318107.dkr.ecr.us-west-2.amazonaws.com/kmeans:1"


class FailingS3Client(FakeS3Client):
    def __init__(self, fail_on_call):
        super().__init__()
        self.fail_on_call = fail_on_call

    def put_object(self, Body, Bucket, Key, **kwargs):
        if len(self.put_calls) + 1 == self.fail_on_call:
            raise IOError("connection reset")
        return super().put_object(Body, Bucket, Key, **kwargs)


@pytest.fixture
def kmeans(session):
    return AmazonAlgorithmEstimator("kmeans", ROLE, 2, "ml.c5.xlarge", hyperparameters={"k": 3}, session=session)


def _manifest(s3_client, record_set):
    key = record_set.s3_data.split(f"s3://{BUCKET}/", 1)[1]
    return json.loads(s3_client.objects[(BUCKET, key)])


def test_constructor_resolves_image_and_defaults(kmeans):
    assert kmeans.training_image_uri() == KMEANS_IMAGE
    assert kmeans.base_job_name == "kmeans"
    assert kmeans.data_location == f"s3://{BUCKET}/sagemaker-record-sets/"


def test_hyperparameters_validated_at_construction(session):
    with pytest.raises(HyperparameterValidationError):
        AmazonAlgorithmEstimator(KMEANS, ROLE, 1, "ml.c5.xlarge", hyperparameters={"k": 1}, session=session)
    with pytest.raises(HyperparameterValidationError):
        AmazonAlgorithmEstimator(KMEANS, ROLE, 1, "ml.c5.xlarge", hyperparameters={}, session=session)


def test_set_hyperparameters_revalidates(kmeans):
    kmeans.set_hyperparameters(init_method="random")
    assert kmeans.hyperparameters()["init_method"] == "random"
    with pytest.raises(HyperparameterValidationError):
        kmeans.set_hyperparameters(init_method="sometimes")
    assert "init_method" in kmeans.hyperparameters()
    assert kmeans.hyperparameters()["init_method"] == "random"


def test_data_location_must_be_s3(kmeans):
    with pytest.raises(ValidationError):
        kmeans.data_location = "/tmp/records"
    kmeans.data_location = "s3://other-bucket/records"
    assert kmeans.data_location == "s3://other-bucket/records/"


def test_record_set_writes_one_shard_per_instance(kmeans, s3_client):
    train = np.arange(15, dtype=np.float32).reshape(5, 3)
    labels = np.array([0, 1, 0, 1, 1])

    record_set = kmeans.record_set(train, labels=labels)

    assert record_set.num_records == 5
    assert record_set.feature_dim == 3
    assert record_set.channel == "train"
    assert record_set.s3_data.endswith("/.amazon.manifest")
    manifest = _manifest(s3_client, record_set)
    prefix = manifest[0]["prefix"]
    assert prefix.startswith(f"s3://{BUCKET}/sagemaker-record-sets/kmeans-")
    assert manifest[1:] == ["matrix_0.pbr", "matrix_1.pbr"]

    key_prefix = prefix.split(f"s3://{BUCKET}/", 1)[1]
    first = read_records(io.BytesIO(s3_client.objects[(BUCKET, key_prefix + "matrix_0.pbr")]))
    second = read_records(io.BytesIO(s3_client.objects[(BUCKET, key_prefix + "matrix_1.pbr")]))
    assert len(first) == 3
    assert len(second) == 2
    assert list(second[0].features["values"].float32_tensor.values) == [9.0, 10.0, 11.0]
    assert list(second[1].label["values"].int32_tensor.values) == [1]


def test_record_set_from_sparse_matrix(kmeans, s3_client):
    train = csr_matrix(np.array([[0, 1.0], [2.0, 0], [0, 0]]))
    record_set = kmeans.record_set(train, channel="test")
    assert (record_set.num_records, record_set.feature_dim, record_set.channel) == (3, 2, "test")
    assert len(_manifest(s3_client, record_set)) == 3


def test_record_set_treats_vector_as_one_row(kmeans):
    record_set = kmeans.record_set(np.array([1.0, 2.0, 3.0]))
    assert (record_set.num_records, record_set.feature_dim) == (1, 3)


def test_encrypted_uploads_request_sse(kmeans, s3_client):
    kmeans.record_set(np.ones((4, 2)), encrypt=True)
    assert s3_client.put_calls
    assert all(call["ServerSideEncryption"] == "AES256" for call in s3_client.put_calls)


def test_failed_upload_removes_uploaded_shards():
    s3_client = FailingS3Client(fail_on_call=3)
    with pytest.raises(IOError):
        upload_numpy_to_s3_shards(3, S3Helper(s3_client), BUCKET, "records/", np.ones((6, 2)))
    assert s3_client.keys() == []


def test_shard_labels_follow_rows():
    s3_client = FakeS3Client()
    upload_numpy_to_s3_shards(
        2, S3Helper(s3_client), BUCKET, "records/", np.ones((3, 2)), labels=np.array([5.0, 6.0, 7.0])
    )
    last = read_records(io.BytesIO(s3_client.objects[(BUCKET, "records/matrix_1.pbr")]))
    assert [list(r.label["values"].float64_tensor.values) for r in last] == [[7.0]]


def test_fit_adds_feature_dim_and_mini_batch_size(kmeans, sagemaker_client):
    records = RecordSet("s3://test-bucket/records/.amazon.manifest", num_records=5, feature_dim=3)

    kmeans.fit(records, wait=False, job_name="kmeans-job")

    request = sagemaker_client.create_training_job.call_args.kwargs
    assert request["HyperParameters"] == {
        "k": "3",
        "force_dense": "True",
        "feature_dim": "3",
        "mini_batch_size": "2",
    }
    assert request["AlgorithmSpecification"]["TrainingImage"] == KMEANS_IMAGE
    assert request["InputDataConfig"] == [
        {
            "ChannelName": "train",
            "DataSource": {
                "S3DataSource": {
                    "S3DataType": "ManifestFile",
                    "S3Uri": "s3://test-bucket/records/.amazon.manifest",
                    "S3DataDistributionType": "ShardedByS3Key",
                }
            },
        }
    ]


def test_fit_with_multiple_channels(kmeans, sagemaker_client):
    train = RecordSet("s3://b/train/.amazon.manifest", num_records=10000, feature_dim=4)
    test = RecordSet("s3://b/test/.amazon.manifest", num_records=100, feature_dim=4, channel="test")

    kmeans.fit([test, train], mini_batch_size=100, wait=False, job_name="j")

    request = sagemaker_client.create_training_job.call_args.kwargs
    assert [c["ChannelName"] for c in request["InputDataConfig"]] == ["test", "train"]
    assert request["HyperParameters"]["mini_batch_size"] == "100"
    assert request["HyperParameters"]["feature_dim"] == "4"


def test_fit_requires_train_channel(kmeans):
    test = RecordSet("s3://b/test/.amazon.manifest", num_records=100, feature_dim=4, channel="test")
    with pytest.raises(ValidationError, match="train channel"):
        kmeans.fit([test], wait=False)
    with pytest.raises(ValidationError):
        kmeans.fit("s3://b/train/", wait=False)


def test_default_mini_batch_size_is_capped_by_records(kmeans):
    records = RecordSet("s3://b/train/.amazon.manifest", num_records=20000, feature_dim=4)
    kmeans._prepare_inputs(records)
    assert kmeans.mini_batch_size == 5000
    kmeans._prepare_inputs(RecordSet("s3://b/t", num_records=1, feature_dim=4))
    assert kmeans.mini_batch_size == 1
    with pytest.raises(HyperparameterValidationError):
        kmeans._prepare_inputs(records, mini_batch_size=0)


def test_random_cut_forest_mini_batch_size_is_fixed(session):
    rcf = AmazonAlgorithmEstimator("randomcutforest", ROLE, 1, "ml.m5.large", session=session)
    records = RecordSet("s3://b/train/.amazon.manifest", num_records=50, feature_dim=2)
    rcf._prepare_inputs(records)
    assert rcf.mini_batch_size == 1000
    with pytest.raises(HyperparameterValidationError):
        rcf._prepare_inputs(records, mini_batch_size=10)


def test_random_cut_forest_feature_dim_is_bounded(session):
    rcf = AmazonAlgorithmEstimator("randomcutforest", ROLE, 1, "ml.m5.large", session=session)
    rcf._prepare_inputs(RecordSet("s3://b/train/.amazon.manifest", num_records=50, feature_dim=10000))
    assert rcf.feature_dim == 10000
    with pytest.raises(HyperparameterValidationError, match="feature_dim"):
        rcf._prepare_inputs(RecordSet("s3://b/train/.amazon.manifest", num_records=50, feature_dim=10001))


def test_feature_dim_must_be_positive(kmeans):
    with pytest.raises(HyperparameterValidationError):
        kmeans._prepare_inputs(RecordSet("s3://b/train/.amazon.manifest", num_records=5, feature_dim=0))


def test_upload_rejects_array_without_rows(s3_client):
    with pytest.raises(ValidationError, match="no rows"):
        upload_numpy_to_s3_shards(2, S3Helper(s3_client), BUCKET, "p/", np.zeros((0, 3)))
    assert s3_client.keys() == []


def test_algorithm_without_default_leaves_mini_batch_size_unset(session):
    fm = AmazonAlgorithmEstimator(
        "factorization-machines",
        ROLE,
        1,
        "ml.m5.large",
        hyperparameters={"num_factors": 4, "predictor_type": "regressor"},
        session=session,
    )
    fm._prepare_inputs(RecordSet("s3://b/t", num_records=50, feature_dim=2))
    assert "mini_batch_size" not in fm.hyperparameters()


def test_deploy_defaults_to_record_serialization(kmeans, sagemaker_client):
    sagemaker_client.describe_training_job.return_value = {
        "TrainingJobStatus": "Completed",
        "ModelArtifacts": {"S3ModelArtifacts": "s3://b/model.tar.gz"},
    }
    sagemaker_client.describe_endpoint.return_value = {"EndpointStatus": "InService"}
    kmeans.fit(RecordSet("s3://b/t", num_records=50, feature_dim=2), wait=False, job_name="kmeans-job")

    predictor = kmeans.deploy(1, "ml.m5.large")

    assert isinstance(predictor.serializer, RecordSerializer)
    assert isinstance(predictor.deserializer, RecordDeserializer)


def test_attach_restores_algorithm_and_hyperparameters(session, sagemaker_client):
    sagemaker_client.describe_training_job.return_value = {
        "TrainingJobStatus": "Completed",
        "AlgorithmSpecification": {"TrainingImage": KMEANS_IMAGE, "TrainingInputMode": "File"},
        "RoleArn": ROLE,
        "ResourceConfig": {"InstanceCount": 2, "InstanceType": "ml.c5.xlarge", "VolumeSizeInGB": 30},
        "OutputDataConfig": {"S3OutputPath": "s3://out/"},
        "HyperParameters": {"k": "3", "force_dense": "True", "feature_dim": "4", "mini_batch_size": "2"},
    }

    estimator = AmazonAlgorithmEstimator.attach("kmeans-job", session)

    assert estimator.algorithm is KMEANS
    assert estimator.hyperparameters()["k"] == "3"
    assert estimator.feature_dim == 4
    assert estimator.mini_batch_size == 2
    assert estimator.hyperparameters()["feature_dim"] == "4"
    assert estimator.hyperparameters()["mini_batch_size"] == "2"
    assert estimator.latest_training_job.name == "kmeans-job"


def test_record_set_channel_input():
    record_set = RecordSet("s3://b/train/.amazon.manifest", num_records=10, feature_dim=2, channel="validation")
    channel = record_set.data_channel()["validation"]
    assert channel.s3_uri == "s3://b/train/.amazon.manifest"
    assert channel.config["DataSource"]["S3DataSource"]["S3DataType"] == "ManifestFile"
    assert "num_records" in repr(record_set)
