###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import json
import time

from botocore.exceptions import ClientError

from .aws_helper import AwsHelper
from .config import PollingPolicy, SessionSettings, load_settings
from .error_helper import UnexpectedStatusException, ValidationError, WaitTimeoutError, raise_error
from .logging import get_logger
from .s3_helper import S3Helper, s3_path_join

logger = get_logger(service="sagekit_session")

JOB_TERMINAL_STATUSES = ("Completed", "Failed", "Stopped")
ENDPOINT_IN_PROGRESS_STATUSES = ("Creating", "Updating", "SystemUpdating")
ACCESS_DENIED_GRACE_SECONDS = 300


class Session:
    """
    Explicit client context for every sagekit wrapper.

    Holds the boto3 session, the SageMaker control plane, runtime and S3
    clients, the resolved settings and the polling policy used when waiting
    on remote jobs. Clients can be injected, otherwise they are created from
    ``boto_session`` through ``AwsHelper``.
    """

    def __init__(
        self,
        boto_session=None,
        sagemaker_client=None,
        sagemaker_runtime_client=None,
        s3_client=None,
        settings: SessionSettings = None,
        default_bucket=None,
        polling_policy: PollingPolicy = None,
        sleep=time.sleep,
        clock=time.monotonic,
    ):
        self.settings = settings or load_settings()
        self.boto_session = boto_session or AwsHelper.get_session(self.settings.region)
        self._region = self.settings.region or self.boto_session.region_name
        if not self._region:
            raise_error(
                "Must setup local AWS configuration with a region supported by SageMaker.",
                ValidationError,
            )
        self.sagemaker_client = sagemaker_client or self._client("sagemaker")
        self.sagemaker_runtime_client = sagemaker_runtime_client or self._client(
            "sagemaker-runtime"
        )
        self.s3_client = s3_client or self._client("s3")
        self.s3 = S3Helper(self.s3_client)
        self.polling_policy = polling_policy or self.settings.polling_policy()
        self._default_bucket = None
        self._default_bucket_name_override = default_bucket or self.settings.default_bucket
        self._sleep = sleep
        self._clock = clock

    def _client(self, name):
        return AwsHelper.get_client(
            name,
            aws_region=self._region,
            boto_session=self.boto_session,
            max_attempts=self.settings.max_retry_attempts,
        )

    @property
    def region_name(self):
        return self._region

    def account_id(self):
        sts = self._client("sts")
        return sts.get_caller_identity()["Account"]

    def expand_role(self, role):
        """
        Expand an IAM role name into an ARN; ARNs are returned unchanged
        """
        if role is None:
            role = self.settings.role
        if role is None:
            raise ValidationError("An IAM role (name or ARN) is required")
        if "/" in role:
            return role
        iam = self._client("iam")
        return iam.get_role(RoleName=role)["Role"]["Arn"]

    # ----------------------------------------------------------------- S3

    def default_bucket(self):
        """
        Return the default bucket, creating it when it does not exist.
        The name is ``sagemaker-{region}-{account id}`` unless configured.
        """
        if self._default_bucket:
            return self._default_bucket

        bucket = self._default_bucket_name_override
        if not bucket:
            bucket = f"sagemaker-{self._region}-{self.account_id()}"
            self._create_bucket_if_missing(bucket)
        self._default_bucket = bucket
        return bucket

    def _create_bucket_if_missing(self, bucket_name):
        try:
            self.s3_client.head_bucket(Bucket=bucket_name)
            return
        except ClientError as e:
            if e.response["Error"]["Code"] not in ("404", "NoSuchBucket"):
                raise

        logger.info(f"Creating S3 bucket: {bucket_name}")
        try:
            if self._region == "us-east-1":
                self.s3_client.create_bucket(Bucket=bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self._region},
                )
        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("BucketAlreadyOwnedByYou", "OperationAborted"):
                logger.debug(f"Bucket {bucket_name} already exists or is being created")
            else:
                raise

    def upload_data(self, path, bucket=None, key_prefix="data", extra_args=None):
        bucket = bucket or self.default_bucket()
        prefix = self.settings.default_bucket_prefix
        if prefix and bucket == self._default_bucket:
            key_prefix = s3_path_join(prefix, key_prefix)
        return self.s3.upload_path(path, bucket, key_prefix, extra_args)

    def upload_string_as_file_body(self, body, bucket, key, kms_key=None):
        extra_args = {"SSEKMSKeyId": kms_key, "ServerSideEncryption": "aws:kms"} if kms_key else None
        return self.s3.write_to_s3(body, bucket, key, extra_args)

    def read_s3_file(self, bucket, key_prefix):
        return self.s3.read_from_s3(bucket, key_prefix)

    # ------------------------------------------------------ control plane

    def _submit(self, operation, request):
        logger.info(f"Calling {operation}")
        logger.debug(f"{operation} request: {json.dumps(request, default=str)}")
        return getattr(self.sagemaker_client, operation)(**request)

    def train(self, request):
        return self._submit("create_training_job", request)

    def describe_training_job(self, job_name):
        return self.sagemaker_client.describe_training_job(TrainingJobName=job_name)

    def stop_training_job(self, job_name):
        logger.info(f"Stopping training job {job_name}")
        self.sagemaker_client.stop_training_job(TrainingJobName=job_name)

    def process(self, request):
        return self._submit("create_processing_job", request)

    def describe_processing_job(self, job_name):
        return self.sagemaker_client.describe_processing_job(ProcessingJobName=job_name)

    def stop_processing_job(self, job_name):
        self.sagemaker_client.stop_processing_job(ProcessingJobName=job_name)

    def transform(self, request):
        return self._submit("create_transform_job", request)

    def describe_transform_job(self, job_name):
        return self.sagemaker_client.describe_transform_job(TransformJobName=job_name)

    def stop_transform_job(self, job_name):
        self.sagemaker_client.stop_transform_job(TransformJobName=job_name)

    def create_tuning_job(self, request):
        return self._submit("create_hyper_parameter_tuning_job", request)

    def describe_tuning_job(self, job_name):
        return self.sagemaker_client.describe_hyper_parameter_tuning_job(
            HyperParameterTuningJobName=job_name
        )

    def stop_tuning_job(self, job_name):
        self.sagemaker_client.stop_hyper_parameter_tuning_job(
            HyperParameterTuningJobName=job_name
        )

    def create_model(self, request):
        self._submit("create_model", request)
        return request["ModelName"]

    def describe_model(self, name):
        return self.sagemaker_client.describe_model(ModelName=name)

    def check_model_exists(self, model_name):
        try:
            self.describe_model(model_name)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "ValidationException":
                return False
            raise

    def delete_model(self, model_name):
        logger.info(f"Deleting model with name: {model_name}")
        self.sagemaker_client.delete_model(ModelName=model_name)

    def create_endpoint_config(self, request):
        self._submit("create_endpoint_config", request)
        return request["EndpointConfigName"]

    def describe_endpoint_config(self, name):
        return self.sagemaker_client.describe_endpoint_config(EndpointConfigName=name)

    def delete_endpoint_config(self, name):
        logger.info(f"Deleting endpoint configuration with name: {name}")
        self.sagemaker_client.delete_endpoint_config(EndpointConfigName=name)

    def create_endpoint(self, endpoint_name, config_name, tags=None, wait=True):
        logger.info(f"Creating endpoint with name {endpoint_name}")
        request = {"EndpointName": endpoint_name, "EndpointConfigName": config_name}
        if tags:
            request["Tags"] = tags
        self.sagemaker_client.create_endpoint(**request)
        if wait:
            self.wait_for_endpoint(endpoint_name)
        return endpoint_name

    def update_endpoint(self, endpoint_name, config_name, wait=True):
        self.sagemaker_client.update_endpoint(
            EndpointName=endpoint_name, EndpointConfigName=config_name
        )
        if wait:
            self.wait_for_endpoint(endpoint_name)
        return endpoint_name

    def describe_endpoint(self, endpoint_name):
        return self.sagemaker_client.describe_endpoint(EndpointName=endpoint_name)

    def delete_endpoint(self, endpoint_name):
        logger.info(f"Deleting endpoint with name: {endpoint_name}")
        self.sagemaker_client.delete_endpoint(EndpointName=endpoint_name)

    def create_monitoring_schedule(self, request):
        return self._submit("create_monitoring_schedule", request)

    def describe_monitoring_schedule(self, schedule_name):
        return self.sagemaker_client.describe_monitoring_schedule(
            MonitoringScheduleName=schedule_name
        )

    def start_monitoring_schedule(self, schedule_name):
        logger.info(f"Starting monitoring schedule {schedule_name}")
        self.sagemaker_client.start_monitoring_schedule(MonitoringScheduleName=schedule_name)

    def stop_monitoring_schedule(self, schedule_name):
        logger.info(f"Stopping monitoring schedule {schedule_name}")
        self.sagemaker_client.stop_monitoring_schedule(MonitoringScheduleName=schedule_name)

    def delete_monitoring_schedule(self, schedule_name):
        logger.info(f"Deleting monitoring schedule with name: {schedule_name}")
        self.sagemaker_client.delete_monitoring_schedule(MonitoringScheduleName=schedule_name)

    def invoke_endpoint(self, request):
        logger.debug(f"Invoking endpoint {request.get('EndpointName')}")
        return self.sagemaker_runtime_client.invoke_endpoint(**request)

    # ------------------------------------------------------------ waiting

    def wait_for_job(self, job_name, policy=None):
        desc = self._wait_until(
            lambda: self.describe_training_job(job_name),
            lambda d: d["TrainingJobStatus"] in JOB_TERMINAL_STATUSES,
            f"training job {job_name}",
            policy,
        )
        _check_job_status(job_name, desc, "TrainingJobStatus")
        return desc

    def wait_for_processing_job(self, job_name, policy=None):
        desc = self._wait_until(
            lambda: self.describe_processing_job(job_name),
            lambda d: d["ProcessingJobStatus"] in JOB_TERMINAL_STATUSES,
            f"processing job {job_name}",
            policy,
        )
        _check_job_status(job_name, desc, "ProcessingJobStatus")
        return desc

    def wait_for_transform_job(self, job_name, policy=None):
        desc = self._wait_until(
            lambda: self.describe_transform_job(job_name),
            lambda d: d["TransformJobStatus"] in JOB_TERMINAL_STATUSES,
            f"transform job {job_name}",
            policy,
        )
        _check_job_status(job_name, desc, "TransformJobStatus")
        return desc

    def wait_for_tuning_job(self, job_name, policy=None):
        desc = self._wait_until(
            lambda: self.describe_tuning_job(job_name),
            lambda d: d["HyperParameterTuningJobStatus"] in JOB_TERMINAL_STATUSES,
            f"tuning job {job_name}",
            policy,
        )
        _check_job_status(job_name, desc, "HyperParameterTuningJobStatus")
        return desc

    def wait_for_endpoint(self, endpoint_name, policy=None):
        desc = self._wait_until(
            lambda: self.describe_endpoint(endpoint_name),
            lambda d: d["EndpointStatus"] not in ENDPOINT_IN_PROGRESS_STATUSES,
            f"endpoint {endpoint_name}",
            policy,
        )
        status = desc["EndpointStatus"]
        if status != "InService":
            reason = desc.get("FailureReason", "(No reason provided)")
            raise UnexpectedStatusException(
                message=f"Error hosting endpoint {endpoint_name}: {status}. Reason: {reason}.",
                allowed_statuses=["InService"],
                actual_status=status,
            )
        return desc

    def _wait_until(self, describe, done, what, policy=None):
        """
        Poll ``describe`` until ``done(description)`` is true.

        AccessDeniedException is tolerated for the first few minutes, while
        resource tags propagate to tag based IAM policies.
        """
        policy = policy or self.polling_policy
        start = self._clock()
        sleeps = policy.sleeps()
        last_status = None
        while True:
            try:
                desc = describe()
                if done(desc):
                    return desc
                last_status = _status_of(desc)
                logger.debug(f"Waiting for {what}, current status: {last_status}")
            except ClientError as err:
                elapsed = self._clock() - start
                if (
                    err.response["Error"]["Code"] == "AccessDeniedException"
                    and elapsed <= ACCESS_DENIED_GRACE_SECONDS
                ):
                    logger.warning(
                        "Received AccessDeniedException. This could mean the IAM role does not "
                        "have the resource permissions, continuing to wait for tag propagation."
                    )
                else:
                    raise

            elapsed = self._clock() - start
            if elapsed >= policy.timeout:
                raise WaitTimeoutError(
                    f"Timed out after {elapsed:.0f} seconds waiting for {what} "
                    f"(last status: {last_status})",
                    last_status=last_status,
                )
            self._sleep(min(next(sleeps), policy.timeout - elapsed))


def _status_of(desc):
    for key, value in desc.items():
        if key.endswith("Status") and isinstance(value, str):
            return value
    return None


def _check_job_status(job, desc, status_key_name):
    """
    Raise UnexpectedStatusException unless the job completed. A stopped job
    only logs a warning.
    """
    status = desc[status_key_name]
    if status == "Stopped":
        logger.warning(
            f"Job {job} ended with status 'Stopped' rather than 'Completed'. "
            "This could mean the job timed out or stopped early for some other reason."
        )
    elif status != "Completed":
        reason = desc.get("FailureReason", "(No reason provided)")
        job_type = status_key_name.replace("JobStatus", " job")
        raise UnexpectedStatusException(
            message=f"Error for {job_type} {job}: {status}. Reason: {reason}",
            allowed_statuses=["Completed", "Stopped"],
            actual_status=status,
        )
