###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .error_helper import ValidationError
from .logging import get_logger
from .processing import NetworkConfig
from .s3_helper import s3_path_join
from .utils_helper import base_name_from_image, name_from_base

logger = get_logger(service="sagekit_model_monitor")

MODEL_MONITOR_S3_PATH = "model-monitor"
DATA_CAPTURE_S3_PATH = "data-capture"
ENDPOINT_INPUT_LOCAL_PATH = "/opt/ml/processing/input/endpoint"
MONITORING_OUTPUT_LOCAL_PATH = "/opt/ml/processing/output"


class DataCaptureConfig:
    """Request and response capture settings of an endpoint"""

    API_MAPPING = {"REQUEST": "Input", "RESPONSE": "Output"}

    def __init__(
        self,
        enable_capture=True,
        sampling_percentage=20,
        destination_s3_uri=None,
        kms_key_id=None,
        capture_options=None,
        csv_content_types=None,
        json_content_types=None,
        session=None,
    ):
        if not 0 <= sampling_percentage <= 100:
            raise ValidationError(
                f"sampling_percentage must be between 0 and 100, got {sampling_percentage}"
            )
        if destination_s3_uri is not None and not destination_s3_uri.startswith("s3://"):
            raise ValidationError(f"destination_s3_uri must be an S3 URI, got {destination_s3_uri}")

        self.enable_capture = enable_capture
        self.sampling_percentage = sampling_percentage
        self.destination_s3_uri = destination_s3_uri
        if self.destination_s3_uri is None:
            if session is None:
                from .session import Session

                session = Session()
            self.destination_s3_uri = s3_path_join(
                "s3://", session.default_bucket(), MODEL_MONITOR_S3_PATH, DATA_CAPTURE_S3_PATH
            )
        self.kms_key_id = kms_key_id
        self.capture_options = capture_options or ["REQUEST", "RESPONSE"]
        self.csv_content_types = csv_content_types or ["text/csv"]
        self.json_content_types = json_content_types or ["application/json"]

    def to_request_dict(self):
        request_dict = {
            "EnableCapture": self.enable_capture,
            "InitialSamplingPercentage": self.sampling_percentage,
            "DestinationS3Uri": self.destination_s3_uri,
            # values without an API mapping are passed through unchanged
            "CaptureOptions": [
                {"CaptureMode": self.API_MAPPING.get(option.upper(), option)}
                for option in self.capture_options
            ],
        }
        if self.kms_key_id is not None:
            request_dict["KmsKeyId"] = self.kms_key_id

        content_type_header = {}
        if self.csv_content_types:
            content_type_header["CsvContentTypes"] = self.csv_content_types
        if self.json_content_types:
            content_type_header["JsonContentTypes"] = self.json_content_types
        if content_type_header:
            request_dict["CaptureContentTypeHeader"] = content_type_header
        return request_dict


class CronExpressionGenerator:
    """Schedule expressions accepted by monitoring schedules"""

    @staticmethod
    def hourly():
        return "cron(0 * ? * * *)"

    @staticmethod
    def daily(hour=0):
        if not 0 <= hour <= 23:
            raise ValidationError(f"hour must be between 0 and 23, got {hour}")
        return f"cron(0 {hour} ? * * *)"

    @staticmethod
    def daily_every_x_hours(hour_interval, starting_hour=0):
        if not 1 <= hour_interval <= 23:
            raise ValidationError(f"hour_interval must be between 1 and 23, got {hour_interval}")
        if not 0 <= starting_hour <= 23:
            raise ValidationError(f"starting_hour must be between 0 and 23, got {starting_hour}")
        return f"cron(0 {starting_hour}/{hour_interval} ? * * *)"


class EndpointInput:
    def __init__(
        self,
        endpoint_name,
        destination=ENDPOINT_INPUT_LOCAL_PATH,
        s3_input_mode="File",
        s3_data_distribution_type="FullyReplicated",
    ):
        self.endpoint_name = endpoint_name
        self.destination = destination
        self.s3_input_mode = s3_input_mode
        self.s3_data_distribution_type = s3_data_distribution_type

    def to_request_dict(self):
        return {
            "EndpointInput": {
                "EndpointName": self.endpoint_name,
                "LocalPath": self.destination,
                "S3InputMode": self.s3_input_mode,
                "S3DataDistributionType": self.s3_data_distribution_type,
            }
        }


class ModelMonitor:
    """
    Create and manage a monitoring schedule that periodically runs a
    monitoring container against an endpoint's captured data.
    """

    def __init__(
        self,
        role,
        image_uri,
        instance_count=1,
        instance_type="ml.m5.xlarge",
        entrypoint=None,
        volume_size_in_gb=30,
        volume_kms_key=None,
        output_kms_key=None,
        max_runtime_in_seconds=None,
        base_job_name=None,
        session=None,
        env=None,
        tags=None,
        network_config=None,
    ):
        if instance_count is None or instance_count < 1:
            raise ValidationError("instance_count must be a positive integer")
        if network_config is not None and not isinstance(network_config, NetworkConfig):
            raise ValidationError("network_config must be a NetworkConfig")
        self.role = role
        self.image_uri = image_uri
        self.instance_count = instance_count
        self.instance_type = instance_type
        self.entrypoint = entrypoint
        self.volume_size_in_gb = volume_size_in_gb
        self.volume_kms_key = volume_kms_key
        self.output_kms_key = output_kms_key
        self.max_runtime_in_seconds = max_runtime_in_seconds
        self.base_job_name = base_job_name
        self.session = session
        self.env = env
        self.tags = tags
        self.network_config = network_config
        self.monitoring_schedule_name = None

    def _init_session(self):
        if self.session is None:
            from .session import Session

            self.session = Session()
        return self.session

    def create_monitoring_schedule(
        self,
        endpoint_input,
        output_s3_uri=None,
        statistics=None,
        constraints=None,
        monitor_schedule_name=None,
        schedule_cron_expression=None,
        arguments=None,
        record_preprocessor_script=None,
        post_analytics_processor_script=None,
    ):
        """
        Create the monitoring schedule for ``endpoint_input`` (an endpoint
        name or an ``EndpointInput``).

        Args:
            output_s3_uri (str): where reports go, defaults to the default
                bucket under ``{schedule name}/monitoring-output``
            statistics, constraints (str): S3 URIs of baseline files
            schedule_cron_expression (str): see ``CronExpressionGenerator``,
                hourly when omitted
        """
        if self.monitoring_schedule_name is not None:
            raise ValidationError(
                "It seems that this object was already used to create an Amazon Model "
                "Monitoring Schedule. To create another, first delete the existing one "
                "using my_monitor.delete_monitoring_schedule()."
            )
        session = self._init_session()
        base_name = self.base_job_name or base_name_from_image(self.image_uri)
        self.monitoring_schedule_name = monitor_schedule_name or name_from_base(base_name)

        if isinstance(endpoint_input, str):
            endpoint_input = EndpointInput(endpoint_input)
        if output_s3_uri is None:
            output_s3_uri = s3_path_join(
                "s3://", session.default_bucket(), self.monitoring_schedule_name, "monitoring-output"
            )

        request = {
            "MonitoringScheduleName": self.monitoring_schedule_name,
            "MonitoringScheduleConfig": {
                "ScheduleConfig": {
                    "ScheduleExpression": schedule_cron_expression
                    or CronExpressionGenerator.hourly()
                },
                "MonitoringJobDefinition": self._job_definition(
                    endpoint_input,
                    output_s3_uri,
                    statistics,
                    constraints,
                    arguments,
                    record_preprocessor_script,
                    post_analytics_processor_script,
                ),
            },
        }
        if self.tags:
            request["Tags"] = self.tags
        session.create_monitoring_schedule(request)
        logger.info(f"Created monitoring schedule {self.monitoring_schedule_name}")
        return self.monitoring_schedule_name

    def _job_definition(
        self,
        endpoint_input,
        output_s3_uri,
        statistics,
        constraints,
        arguments,
        record_preprocessor_script,
        post_analytics_processor_script,
    ):
        cluster_config = {
            "InstanceCount": self.instance_count,
            "InstanceType": self.instance_type,
            "VolumeSizeInGB": self.volume_size_in_gb,
        }
        if self.volume_kms_key is not None:
            cluster_config["VolumeKmsKeyId"] = self.volume_kms_key

        app_specification = {"ImageUri": self.image_uri}
        if self.entrypoint:
            app_specification["ContainerEntrypoint"] = self.entrypoint
        if arguments:
            app_specification["ContainerArguments"] = arguments
        if record_preprocessor_script:
            app_specification["RecordPreprocessorSourceUri"] = record_preprocessor_script
        if post_analytics_processor_script:
            app_specification["PostAnalyticsProcessorSourceUri"] = post_analytics_processor_script

        output_config = {
            "MonitoringOutputs": [
                {
                    "S3Output": {
                        "S3Uri": output_s3_uri,
                        "LocalPath": MONITORING_OUTPUT_LOCAL_PATH,
                        "S3UploadMode": "Continuous",
                    }
                }
            ]
        }
        if self.output_kms_key is not None:
            output_config["KmsKeyId"] = self.output_kms_key

        definition = {
            "MonitoringInputs": [endpoint_input.to_request_dict()],
            "MonitoringOutputConfig": output_config,
            "MonitoringResources": {"ClusterConfig": cluster_config},
            "MonitoringAppSpecification": app_specification,
            "RoleArn": self._init_session().expand_role(self.role),
        }
        baseline_config = {}
        if constraints:
            baseline_config["ConstraintsResource"] = {"S3Uri": constraints}
        if statistics:
            baseline_config["StatisticsResource"] = {"S3Uri": statistics}
        if baseline_config:
            definition["BaselineConfig"] = baseline_config
        if self.max_runtime_in_seconds is not None:
            definition["StoppingCondition"] = {"MaxRuntimeInSeconds": self.max_runtime_in_seconds}
        if self.env:
            definition["Environment"] = self.env
        if self.network_config is not None:
            definition["NetworkConfig"] = self.network_config.to_request_dict()
        return definition

    def _ensure_schedule(self):
        if self.monitoring_schedule_name is None:
            raise ValidationError("No monitoring schedule has been created by this monitor")

    def describe_schedule(self):
        self._ensure_schedule()
        return self._init_session().describe_monitoring_schedule(self.monitoring_schedule_name)

    def start_monitoring_schedule(self):
        self._ensure_schedule()
        self._init_session().start_monitoring_schedule(self.monitoring_schedule_name)

    def stop_monitoring_schedule(self):
        self._ensure_schedule()
        self._init_session().stop_monitoring_schedule(self.monitoring_schedule_name)

    def delete_monitoring_schedule(self):
        self._ensure_schedule()
        self._init_session().delete_monitoring_schedule(self.monitoring_schedule_name)
        self.monitoring_schedule_name = None
