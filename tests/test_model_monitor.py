import pytest

from sagekit.error_helper import ValidationError
from sagekit.model_monitor import CronExpressionGenerator, DataCaptureConfig, EndpointInput, ModelMonitor
from sagekit.processing import NetworkConfig

from tests.conftest import BUCKET, ROLE

IMAGE = "123456789012.dkr.ecr.us-west-2.amazonaws.com/model-monitor-analyzer:latest"


def test_data_capture_defaults(session):
    config = DataCaptureConfig(session=session)
    assert config.to_request_dict() == {
        "EnableCapture": True,
        "InitialSamplingPercentage": 20,
        "DestinationS3Uri": f"s3://{BUCKET}/model-monitor/data-capture",
        "CaptureOptions": [{"CaptureMode": "Input"}, {"CaptureMode": "Output"}],
        "CaptureContentTypeHeader": {
            "CsvContentTypes": ["text/csv"],
            "JsonContentTypes": ["application/json"],
        },
    }


def test_data_capture_custom_settings():
    config = DataCaptureConfig(
        sampling_percentage=100,
        destination_s3_uri="s3://capture/",
        kms_key_id="key",
        capture_options=["request"],
        json_content_types=["application/jsonlines"],
    )
    request = config.to_request_dict()
    assert request["CaptureOptions"] == [{"CaptureMode": "Input"}]
    assert request["KmsKeyId"] == "key"
    assert request["CaptureContentTypeHeader"]["JsonContentTypes"] == ["application/jsonlines"]


@pytest.mark.parametrize(
    "kwargs",
    [{"sampling_percentage": 101}, {"sampling_percentage": -1}, {"destination_s3_uri": "/tmp/capture"}],
)
def test_data_capture_validation(session, kwargs):
    with pytest.raises(ValidationError):
        DataCaptureConfig(session=session, **kwargs)


def test_cron_expressions():
    assert CronExpressionGenerator.hourly() == "cron(0 * ? * * *)"
    assert CronExpressionGenerator.daily() == "cron(0 0 ? * * *)"
    assert CronExpressionGenerator.daily(13) == "cron(0 13 ? * * *)"
    assert CronExpressionGenerator.daily_every_x_hours(6, starting_hour=2) == "cron(0 2/6 ? * * *)"
    with pytest.raises(ValidationError):
        CronExpressionGenerator.daily(24)
    with pytest.raises(ValidationError):
        CronExpressionGenerator.daily_every_x_hours(0)


def test_create_monitoring_schedule(session, sagemaker_client):
    monitor = ModelMonitor(ROLE, IMAGE, session=session, max_runtime_in_seconds=1800, env={"dataset_format": "csv"})

    name = monitor.create_monitoring_schedule(
        "my-endpoint",
        statistics="s3://baseline/statistics.json",
        constraints="s3://baseline/constraints.json",
        monitor_schedule_name="my-schedule",
        schedule_cron_expression=CronExpressionGenerator.daily(),
        record_preprocessor_script="s3://scripts/pre.py",
    )

    assert name == "my-schedule"
    request = sagemaker_client.create_monitoring_schedule.call_args.kwargs
    config = request["MonitoringScheduleConfig"]
    assert config["ScheduleConfig"] == {"ScheduleExpression": "cron(0 0 ? * * *)"}
    definition = config["MonitoringJobDefinition"]
    assert definition["MonitoringInputs"] == [
        {
            "EndpointInput": {
                "EndpointName": "my-endpoint",
                "LocalPath": "/opt/ml/processing/input/endpoint",
                "S3InputMode": "File",
                "S3DataDistributionType": "FullyReplicated",
            }
        }
    ]
    assert definition["MonitoringOutputConfig"]["MonitoringOutputs"][0]["S3Output"] == {
        "S3Uri": f"s3://{BUCKET}/my-schedule/monitoring-output",
        "LocalPath": "/opt/ml/processing/output",
        "S3UploadMode": "Continuous",
    }
    assert definition["BaselineConfig"] == {
        "ConstraintsResource": {"S3Uri": "s3://baseline/constraints.json"},
        "StatisticsResource": {"S3Uri": "s3://baseline/statistics.json"},
    }
    assert definition["MonitoringAppSpecification"] == {
        "ImageUri": IMAGE,
        "RecordPreprocessorSourceUri": "s3://scripts/pre.py",
    }
    assert definition["MonitoringResources"]["ClusterConfig"] == {
        "InstanceCount": 1,
        "InstanceType": "ml.m5.xlarge",
        "VolumeSizeInGB": 30,
    }
    assert definition["StoppingCondition"] == {"MaxRuntimeInSeconds": 1800}
    assert definition["Environment"] == {"dataset_format": "csv"}
    assert definition["RoleArn"] == ROLE


def test_schedule_defaults(session, sagemaker_client):
    monitor = ModelMonitor(
        ROLE,
        IMAGE,
        session=session,
        network_config=NetworkConfig(enable_network_isolation=True),
    )
    name = monitor.create_monitoring_schedule(EndpointInput("ep", destination="/opt/ml/input"))

    assert name.startswith("model-monitor-analyzer-")
    config = sagemaker_client.create_monitoring_schedule.call_args.kwargs["MonitoringScheduleConfig"]
    assert config["ScheduleConfig"]["ScheduleExpression"] == "cron(0 * ? * * *)"
    definition = config["MonitoringJobDefinition"]
    assert "BaselineConfig" not in definition
    assert definition["NetworkConfig"] == {"EnableNetworkIsolation": True}


def test_schedule_lifecycle(session, sagemaker_client):
    monitor = ModelMonitor(ROLE, IMAGE, session=session)
    with pytest.raises(ValidationError):
        monitor.describe_schedule()

    monitor.create_monitoring_schedule("ep", monitor_schedule_name="sched")
    with pytest.raises(ValidationError):
        monitor.create_monitoring_schedule("ep")

    monitor.stop_monitoring_schedule()
    sagemaker_client.stop_monitoring_schedule.assert_called_once_with(MonitoringScheduleName="sched")
    monitor.start_monitoring_schedule()
    sagemaker_client.start_monitoring_schedule.assert_called_once_with(MonitoringScheduleName="sched")
    monitor.describe_schedule()
    sagemaker_client.describe_monitoring_schedule.assert_called_once_with(MonitoringScheduleName="sched")

    monitor.delete_monitoring_schedule()
    sagemaker_client.delete_monitoring_schedule.assert_called_once_with(MonitoringScheduleName="sched")
    assert monitor.monitoring_schedule_name is None
    monitor.create_monitoring_schedule("ep", monitor_schedule_name="sched-2")


def test_monitor_validation(session):
    with pytest.raises(ValidationError):
        ModelMonitor(ROLE, IMAGE, instance_count=0, session=session)
    with pytest.raises(ValidationError):
        ModelMonitor(ROLE, IMAGE, network_config={"EnableNetworkIsolation": True}, session=session)
