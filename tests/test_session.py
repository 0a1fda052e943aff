from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from sagekit.config import PollingPolicy, SessionSettings
from sagekit.error_helper import UnexpectedStatusException, ValidationError, WaitTimeoutError
from sagekit.session import Session

from tests.conftest import REGION, ROLE, FakeClock, client_error


def _session(s3_client=None, settings=None, **kwargs):
    boto_session = MagicMock(name="boto_session")
    boto_session.region_name = REGION
    clock = kwargs.pop("clock", FakeClock())
    return Session(
        boto_session=boto_session,
        sagemaker_client=kwargs.pop("sagemaker_client", MagicMock()),
        sagemaker_runtime_client=MagicMock(),
        s3_client=s3_client or MagicMock(),
        settings=settings or SessionSettings(region=REGION),
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )


def test_wait_for_job_returns_completed_description(session, sagemaker_client, clock):
    sagemaker_client.describe_training_job.side_effect = [
        {"TrainingJobStatus": "InProgress"},
        {"TrainingJobStatus": "InProgress"},
        {"TrainingJobStatus": "Completed", "ModelArtifacts": {"S3ModelArtifacts": "s3://b/m.tar.gz"}},
    ]
    desc = session.wait_for_job("job")
    assert desc["TrainingJobStatus"] == "Completed"
    assert clock.sleeps == [5, 10]
    sagemaker_client.describe_training_job.assert_called_with(TrainingJobName="job")


def test_wait_for_job_failure_carries_status(session, sagemaker_client):
    sagemaker_client.describe_training_job.return_value = {
        "TrainingJobStatus": "Failed",
        "FailureReason": "AlgorithmError: bad input",
    }
    with pytest.raises(UnexpectedStatusException) as err:
        session.wait_for_job("job")
    assert err.value.actual_status == "Failed"
    assert "AlgorithmError: bad input" in str(err.value)


def test_stopped_job_is_not_an_error(session, sagemaker_client):
    sagemaker_client.describe_training_job.return_value = {"TrainingJobStatus": "Stopped"}
    assert session.wait_for_job("job")["TrainingJobStatus"] == "Stopped"


def test_wait_times_out_with_growing_capped_sleeps(session, sagemaker_client, clock):
    sagemaker_client.describe_processing_job.return_value = {"ProcessingJobStatus": "InProgress"}
    with pytest.raises(WaitTimeoutError) as err:
        session.wait_for_processing_job("proc")
    assert err.value.last_status == "InProgress"
    assert clock.sleeps == [5, 10, 20, 20, 20, 20, 5]
    assert clock.now == 100


def test_access_denied_is_tolerated_while_tags_propagate(session, sagemaker_client, clock):
    sagemaker_client.describe_transform_job.side_effect = [
        client_error("AccessDeniedException"),
        {"TransformJobStatus": "Completed"},
    ]
    assert session.wait_for_transform_job("tx")["TransformJobStatus"] == "Completed"
    assert clock.sleeps == [5]


def test_access_denied_after_grace_period_is_raised(session, sagemaker_client):
    sagemaker_client.describe_training_job.side_effect = client_error("AccessDeniedException")
    policy = PollingPolicy(interval=50, timeout=1000, backoff=1, max_interval=50)
    with pytest.raises(ClientError) as err:
        session.wait_for_job("job", policy=policy)
    assert err.value.response["Error"]["Code"] == "AccessDeniedException"


def test_other_client_errors_propagate_immediately(session, sagemaker_client, clock):
    sagemaker_client.describe_training_job.side_effect = client_error("ThrottlingException")
    with pytest.raises(ClientError):
        session.wait_for_job("job")
    assert clock.sleeps == []


def test_wait_for_endpoint(session, sagemaker_client):
    sagemaker_client.describe_endpoint.side_effect = [
        {"EndpointStatus": "Creating"},
        {"EndpointStatus": "InService"},
    ]
    assert session.wait_for_endpoint("ep")["EndpointStatus"] == "InService"

    sagemaker_client.describe_endpoint.side_effect = None
    sagemaker_client.describe_endpoint.return_value = {"EndpointStatus": "Failed"}
    with pytest.raises(UnexpectedStatusException):
        session.wait_for_endpoint("ep")


def test_configured_default_bucket_is_used_as_is(session, s3_client):
    assert session.default_bucket() == "test-bucket"


def test_default_bucket_is_created_when_missing():
    s3 = MagicMock()
    s3.head_bucket.side_effect = client_error("404", "HeadBucket")
    session = _session(s3_client=s3)
    session.boto_session.client.return_value.get_caller_identity.return_value = {"Account": "123456789012"}

    assert session.default_bucket() == "sagemaker-us-west-2-123456789012"
    s3.create_bucket.assert_called_once_with(
        Bucket="sagemaker-us-west-2-123456789012",
        CreateBucketConfiguration={"LocationConstraint": "us-west-2"},
    )
    # cached afterwards
    session.default_bucket()
    assert s3.create_bucket.call_count == 1


def test_bucket_already_owned_is_not_an_error():
    s3 = MagicMock()
    s3.head_bucket.side_effect = client_error("NoSuchBucket", "HeadBucket")
    s3.create_bucket.side_effect = client_error("BucketAlreadyOwnedByYou", "CreateBucket")
    session = _session(s3_client=s3)
    session.boto_session.client.return_value.get_caller_identity.return_value = {"Account": "1"}
    assert session.default_bucket() == "sagemaker-us-west-2-1"


def test_check_model_exists(session, sagemaker_client):
    assert session.check_model_exists("m") is True
    sagemaker_client.describe_model.side_effect = client_error("ValidationException")
    assert session.check_model_exists("m") is False


def test_expand_role():
    session = _session()
    assert session.expand_role(ROLE) == ROLE
    session.boto_session.client.return_value.get_role.return_value = {"Role": {"Arn": ROLE}}
    assert session.expand_role("SageMakerRole") == ROLE
    with pytest.raises(ValidationError):
        session.expand_role(None)


def test_upload_data_prefixes_default_bucket(tmp_path, s3_client):
    settings = SessionSettings(region=REGION, default_bucket="test-bucket", default_bucket_prefix="team")
    session = _session(s3_client=s3_client, settings=settings)
    local = tmp_path / "data.csv"
    local.write_text("1,2\n")
    session.default_bucket()

    uri = session.upload_data(str(local), key_prefix="inputs")
    assert uri == "s3://test-bucket/team/inputs/data.csv"
    assert s3_client.objects[("test-bucket", "team/inputs/data.csv")] == b"1,2\n"


def test_missing_region_rejected():
    boto_session = MagicMock(region_name=None)
    with pytest.raises(ValidationError):
        Session(boto_session=boto_session, settings=SessionSettings())


def test_string_bodies_round_trip_through_s3(session, s3_client):
    uri = session.upload_string_as_file_body('{"a": 1}', "test-bucket", "configs/a.json", kms_key="key")
    assert uri == "s3://test-bucket/configs/a.json"
    assert s3_client.put_calls[-1]["SSEKMSKeyId"] == "key"
    assert s3_client.put_calls[-1]["ServerSideEncryption"] == "aws:kms"
    assert session.read_s3_file("test-bucket", "configs/a.json") == '{"a": 1}'
