import pytest

from sagekit.error_helper import ValidationError
from sagekit.transformer import Transformer

from tests.conftest import BUCKET


@pytest.fixture
def transformer(session):
    return Transformer("my-model", 2, "ml.m5.large", session=session)


def test_transform_request(transformer, sagemaker_client):
    job_name = transformer.transform(
        "s3://test-bucket/batch/input",
        content_type="text/csv",
        split_type="Line",
        job_name="tx-job",
        wait=False,
    )

    assert job_name == "tx-job"
    request = sagemaker_client.create_transform_job.call_args.kwargs
    assert request == {
        "TransformJobName": "tx-job",
        "ModelName": "my-model",
        "TransformInput": {
            "DataSource": {"S3DataSource": {"S3DataType": "S3Prefix", "S3Uri": "s3://test-bucket/batch/input"}},
            "ContentType": "text/csv",
            "SplitType": "Line",
        },
        "TransformOutput": {"S3OutputPath": f"s3://{BUCKET}/tx-job"},
        "TransformResources": {"InstanceCount": 2, "InstanceType": "ml.m5.large"},
    }


def test_transform_optional_settings(session, sagemaker_client):
    transformer = Transformer(
        "my-model",
        1,
        "ml.m5.large",
        strategy="MultiRecord",
        assemble_with="Line",
        output_path="s3://out/",
        output_kms_key="out-key",
        accept="text/csv",
        max_concurrent_transforms=4,
        max_payload=6,
        env={"A": "1"},
        tags=[{"Key": "k", "Value": "v"}],
        volume_kms_key="vol-key",
        session=session,
    )
    transformer.transform(
        "s3://in/manifest",
        data_type="ManifestFile",
        compression_type="Gzip",
        input_filter="$[1:]",
        join_source="Input",
        experiment_config={"TrialName": "t"},
        job_name="tx",
        wait=False,
    )

    request = sagemaker_client.create_transform_job.call_args.kwargs
    assert request["BatchStrategy"] == "MultiRecord"
    assert request["MaxConcurrentTransforms"] == 4
    assert request["MaxPayloadInMB"] == 6
    assert request["Environment"] == {"A": "1"}
    assert request["Tags"] == [{"Key": "k", "Value": "v"}]
    assert request["DataProcessing"] == {"InputFilter": "$[1:]", "JoinSource": "Input"}
    assert request["ExperimentConfig"] == {"TrialName": "t"}
    assert request["TransformInput"]["CompressionType"] == "Gzip"
    assert request["TransformInput"]["DataSource"]["S3DataSource"]["S3DataType"] == "ManifestFile"
    assert request["TransformOutput"] == {
        "S3OutputPath": "s3://out/",
        "Accept": "text/csv",
        "AssembleWith": "Line",
        "KmsKeyId": "out-key",
    }
    assert request["TransformResources"]["VolumeKmsKeyId"] == "vol-key"


def test_invalid_arguments_rejected(session, transformer):
    with pytest.raises(ValidationError):
        Transformer("m", 1, "ml.m5.large", strategy="Batched", session=session)
    with pytest.raises(ValidationError):
        transformer.transform("/local/data", wait=False)
    with pytest.raises(ValidationError):
        transformer.transform("s3://b/in", split_type="Paragraph", wait=False)


def test_wait_and_stop(transformer, sagemaker_client):
    with pytest.raises(ValidationError):
        transformer.wait()

    sagemaker_client.describe_transform_job.return_value = {"TransformJobStatus": "Completed"}
    transformer.transform("s3://b/in", job_name="tx", wait=True)
    sagemaker_client.describe_transform_job.assert_called_with(TransformJobName="tx")

    sagemaker_client.describe_transform_job.return_value = {"TransformJobStatus": "Stopped"}
    transformer.stop_transform_job()
    sagemaker_client.stop_transform_job.assert_called_once_with(TransformJobName="tx")


def test_output_dataframe_concatenates_out_files(transformer, s3_client):
    transformer.transform("s3://b/in", job_name="tx-job", wait=False)
    s3_client.put_object(Body="1,2\n3,4\n", Bucket=BUCKET, Key="tx-job/part-a.csv.out")
    s3_client.put_object(Body="5,6\n", Bucket=BUCKET, Key="tx-job/part-b.csv.out")
    s3_client.put_object(Body="ignored", Bucket=BUCKET, Key="tx-job/_manifest")

    df = transformer.output_dataframe()

    assert df.shape == (3, 2)
    assert df[0].tolist() == [1, 3, 5]


def test_output_dataframe_without_output(transformer):
    transformer.transform("s3://b/in", job_name="tx-job", wait=False)
    with pytest.raises(ValidationError):
        transformer.output_dataframe()


def test_attach(session, sagemaker_client):
    sagemaker_client.describe_transform_job.return_value = {
        "ModelName": "my-model",
        "BatchStrategy": "SingleRecord",
        "TransformOutput": {"S3OutputPath": "s3://out/", "AssembleWith": "Line"},
        "TransformResources": {"InstanceCount": 3, "InstanceType": "ml.c5.large"},
        "MaxPayloadInMB": 2,
    }
    transformer = Transformer.attach("old-tx", session)
    assert transformer.model_name == "my-model"
    assert transformer.instance_count == 3
    assert transformer.assemble_with == "Line"
    assert transformer.latest_transform_job == "old-tx"
