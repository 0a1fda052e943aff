###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import os

from .error_helper import ValidationError
from .logging import get_logger
from .s3_helper import s3_path_join
from .utils_helper import base_name_from_image, name_from_base

logger = get_logger(service="sagekit_processing")

CODE_CONTAINER_BASE_PATH = "/opt/ml/processing/input/"
CODE_CONTAINER_INPUT_NAME = "code"


class ProcessingInput:
    def __init__(
        self,
        source,
        destination,
        input_name=None,
        s3_data_type="S3Prefix",
        s3_input_mode="File",
        s3_data_distribution_type="FullyReplicated",
        s3_compression_type="None",
    ):
        self.source = source
        self.destination = destination
        self.input_name = input_name
        self.s3_data_type = s3_data_type
        self.s3_input_mode = s3_input_mode
        self.s3_data_distribution_type = s3_data_distribution_type
        self.s3_compression_type = s3_compression_type

    def to_request_dict(self):
        s3_input = {
            "S3Uri": self.source,
            "LocalPath": self.destination,
            "S3DataType": self.s3_data_type,
            "S3InputMode": self.s3_input_mode,
            "S3DataDistributionType": self.s3_data_distribution_type,
        }
        if self.s3_compression_type not in (None, "None"):
            s3_input["S3CompressionType"] = self.s3_compression_type
        return {"InputName": self.input_name, "AppManaged": False, "S3Input": s3_input}


class ProcessingOutput:
    def __init__(self, source, destination=None, output_name=None, s3_upload_mode="EndOfJob"):
        self.source = source
        self.destination = destination
        self.output_name = output_name
        self.s3_upload_mode = s3_upload_mode

    def to_request_dict(self):
        return {
            "OutputName": self.output_name,
            "AppManaged": False,
            "S3Output": {
                "S3Uri": self.destination,
                "LocalPath": self.source,
                "S3UploadMode": self.s3_upload_mode,
            },
        }


class NetworkConfig:
    def __init__(
        self,
        enable_network_isolation=False,
        security_group_ids=None,
        subnets=None,
        encrypt_inter_container_traffic=None,
    ):
        if bool(security_group_ids) != bool(subnets):
            raise ValidationError("subnets and security_group_ids must be provided together")
        self.enable_network_isolation = enable_network_isolation
        self.security_group_ids = security_group_ids
        self.subnets = subnets
        self.encrypt_inter_container_traffic = encrypt_inter_container_traffic

    def to_request_dict(self):
        network_config = {"EnableNetworkIsolation": self.enable_network_isolation}
        if self.encrypt_inter_container_traffic is not None:
            network_config["EnableInterContainerTrafficEncryption"] = (
                self.encrypt_inter_container_traffic
            )
        if self.security_group_ids is not None or self.subnets is not None:
            network_config["VpcConfig"] = {
                "SecurityGroupIds": self.security_group_ids,
                "Subnets": self.subnets,
            }
        return network_config


class ProcessingJob:
    def __init__(self, session, job_name, inputs, outputs):
        self.session = session
        self.job_name = job_name
        self.inputs = inputs
        self.outputs = outputs

    def describe(self):
        return self.session.describe_processing_job(self.job_name)

    def wait(self, policy=None):
        return self.session.wait_for_processing_job(self.job_name, policy)

    def stop(self):
        self.session.stop_processing_job(self.job_name)


class Processor:
    """
    Run a processing container over S3 inputs and collect its outputs.

    Local input sources are uploaded to the default bucket before the job
    is created; outputs without a destination are written under
    ``s3://{bucket}/{job_name}/output/{output_name}``.
    """

    def __init__(
        self,
        role,
        image_uri,
        instance_count,
        instance_type,
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

        self.jobs = []
        self.latest_job = None
        self._current_job_name = None
        self.arguments = None

    def _init_session(self):
        if self.session is None:
            from .session import Session

            self.session = Session()
        return self.session

    def run(
        self,
        inputs=None,
        outputs=None,
        arguments=None,
        wait=True,
        job_name=None,
        experiment_config=None,
    ):
        """
        Start a processing job.

        Args:
            inputs (list[ProcessingInput]): inputs, local sources are uploaded
            outputs (list[ProcessingOutput]): outputs
            arguments (list[str]): container arguments
            wait (bool): block until the job finishes
            job_name (str): job name, generated when omitted
            experiment_config (dict): experiment association
        """
        self._current_job_name = self._generate_current_job_name(job_name)
        normalized_inputs = self._normalize_inputs(inputs)
        normalized_outputs = self._normalize_outputs(outputs)
        self.arguments = arguments

        request = self._processing_request(normalized_inputs, normalized_outputs, experiment_config)
        self._init_session().process(request)
        logger.info(f"Created processing job {self._current_job_name}")

        self.latest_job = ProcessingJob(
            self.session, self._current_job_name, normalized_inputs, normalized_outputs
        )
        self.jobs.append(self.latest_job)
        if wait:
            self.latest_job.wait()
        return self.latest_job

    def _generate_current_job_name(self, job_name=None):
        if job_name is not None:
            return job_name
        base_name = self.base_job_name or base_name_from_image(self.image_uri)
        return name_from_base(base_name)

    def _normalize_inputs(self, inputs=None):
        normalized_inputs = []
        for count, file_input in enumerate(inputs or [], 1):
            if not isinstance(file_input, ProcessingInput):
                raise ValidationError("Your inputs must be provided as ProcessingInput objects.")
            if file_input.input_name is None:
                file_input.input_name = f"input-{count}"
            if not file_input.source.startswith("s3://"):
                session = self._init_session()
                key_prefix = s3_path_join(self._current_job_name, "input", file_input.input_name)
                file_input.source = session.upload_data(file_input.source, key_prefix=key_prefix)
            normalized_inputs.append(file_input)
        _check_unique([i.input_name for i in normalized_inputs], "input")
        return normalized_inputs

    def _normalize_outputs(self, outputs=None):
        normalized_outputs = []
        for count, output in enumerate(outputs or [], 1):
            if not isinstance(output, ProcessingOutput):
                raise ValidationError("Your outputs must be provided as ProcessingOutput objects.")
            if output.output_name is None:
                output.output_name = f"output-{count}"
            if output.destination is None:
                bucket = self._init_session().default_bucket()
                output.destination = s3_path_join(
                    "s3://", bucket, self._current_job_name, "output", output.output_name
                )
            normalized_outputs.append(output)
        _check_unique([o.output_name for o in normalized_outputs], "output")
        return normalized_outputs

    def _processing_request(self, inputs, outputs, experiment_config=None):
        session = self._init_session()
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
        if self.arguments:
            app_specification["ContainerArguments"] = self.arguments

        request = {
            "ProcessingJobName": self._current_job_name,
            "ProcessingResources": {"ClusterConfig": cluster_config},
            "AppSpecification": app_specification,
            "RoleArn": session.expand_role(self.role),
        }
        if inputs:
            request["ProcessingInputs"] = [i.to_request_dict() for i in inputs]
        if outputs:
            output_config = {"Outputs": [o.to_request_dict() for o in outputs]}
            if self.output_kms_key is not None:
                output_config["KmsKeyId"] = self.output_kms_key
            request["ProcessingOutputConfig"] = output_config
        if self.max_runtime_in_seconds is not None:
            request["StoppingCondition"] = {"MaxRuntimeInSeconds": self.max_runtime_in_seconds}
        if self.env:
            request["Environment"] = self.env
        if self.network_config is not None:
            request["NetworkConfig"] = self.network_config.to_request_dict()
        if self.tags:
            request["Tags"] = self.tags
        if experiment_config:
            request["ExperimentConfig"] = experiment_config
        return request


class ScriptProcessor(Processor):
    """Processor that runs a user script with ``command`` inside the image"""

    def __init__(self, role, image_uri, command, instance_count, instance_type, **kwargs):
        super().__init__(role, image_uri, instance_count, instance_type, **kwargs)
        self.command = command

    def run(
        self,
        code,
        inputs=None,
        outputs=None,
        arguments=None,
        wait=True,
        job_name=None,
        experiment_config=None,
    ):
        """
        Upload ``code`` (local path or S3 URI) as the ``code`` input and run it.
        """
        self._current_job_name = self._generate_current_job_name(job_name)
        code_uri = self._upload_code(code)
        script_name = os.path.basename(code)
        code_input = ProcessingInput(
            source=code_uri,
            destination=f"{CODE_CONTAINER_BASE_PATH}{CODE_CONTAINER_INPUT_NAME}",
            input_name=CODE_CONTAINER_INPUT_NAME,
        )
        self.entrypoint = self.command + [
            f"{CODE_CONTAINER_BASE_PATH}{CODE_CONTAINER_INPUT_NAME}/{script_name}"
        ]
        return super().run(
            inputs=list(inputs or []) + [code_input],
            outputs=outputs,
            arguments=arguments,
            wait=wait,
            job_name=self._current_job_name,
            experiment_config=experiment_config,
        )

    def _upload_code(self, code):
        if code.startswith("s3://"):
            return code
        if not os.path.isfile(code):
            raise ValidationError(f"code {code} wasn't found. Please make sure that the file exists.")
        key_prefix = s3_path_join(self._current_job_name, "input", CODE_CONTAINER_INPUT_NAME)
        return self._init_session().upload_data(code, key_prefix=key_prefix)


def _check_unique(names, kind):
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate {kind} names: {', '.join(duplicates)}")
