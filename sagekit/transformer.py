###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import pandas as pd

from .error_helper import ValidationError
from .logging import get_logger
from .s3_helper import parse_s3_url
from .utils_helper import name_from_base

logger = get_logger(service="sagekit_transformer")

STRATEGIES = ("SingleRecord", "MultiRecord")
ASSEMBLE_WITH = ("None", "Line")
SPLIT_TYPES = ("None", "Line", "RecordIO", "TFRecord")
DATA_TYPES = ("S3Prefix", "ManifestFile")


def _check_choice(name, value, choices):
    if value is not None and value not in choices:
        raise ValidationError(f"Invalid {name} {value}. Expecting one of {', '.join(choices)}")


class Transformer:
    """Run batch transform jobs against an existing SageMaker model"""

    def __init__(
        self,
        model_name,
        instance_count,
        instance_type,
        strategy=None,
        assemble_with=None,
        output_path=None,
        output_kms_key=None,
        accept=None,
        max_concurrent_transforms=None,
        max_payload=None,
        tags=None,
        env=None,
        base_transform_job_name=None,
        volume_kms_key=None,
        session=None,
    ):
        if instance_count is None or instance_count < 1:
            raise ValidationError("instance_count must be a positive integer")
        _check_choice("strategy", strategy, STRATEGIES)
        _check_choice("assemble_with", assemble_with, ASSEMBLE_WITH)

        self.model_name = model_name
        self.instance_count = instance_count
        self.instance_type = instance_type
        self.strategy = strategy
        self.assemble_with = assemble_with
        self.output_path = output_path
        self.output_kms_key = output_kms_key
        self.accept = accept
        self.max_concurrent_transforms = max_concurrent_transforms
        self.max_payload = max_payload
        self.tags = tags
        self.env = env
        self.base_transform_job_name = base_transform_job_name
        self.volume_kms_key = volume_kms_key
        self.session = session
        self._current_job_name = None
        self.latest_transform_job = None

    def _init_session(self):
        if self.session is None:
            from .session import Session

            self.session = Session()
        return self.session

    def transform(
        self,
        data,
        data_type="S3Prefix",
        content_type=None,
        compression_type=None,
        split_type=None,
        job_name=None,
        input_filter=None,
        output_filter=None,
        join_source=None,
        experiment_config=None,
        wait=True,
    ):
        """
        Start a batch transform job on ``data`` (an S3 prefix or manifest).

        Args:
            data (str): S3 URI of the input
            data_type (str): ``S3Prefix`` or ``ManifestFile``
            content_type (str): MIME type of the input
            compression_type (str): ``Gzip`` or None
            split_type (str): how to split input files into records
            job_name (str): job name, generated when omitted
            input_filter, output_filter (str): JSONPath filters
            join_source (str): ``Input`` to join the input with the output
            wait (bool): block until the job finishes
        """
        if not data.startswith("s3://"):
            raise ValidationError(f"Invalid transform input {data}. Expecting an S3 URI.")
        _check_choice("data_type", data_type, DATA_TYPES)
        _check_choice("split_type", split_type, SPLIT_TYPES)
        session = self._init_session()

        base_name = self.base_transform_job_name or self.model_name
        self._current_job_name = job_name or name_from_base(base_name)
        if self.output_path is None:
            self.output_path = f"s3://{session.default_bucket()}/{self._current_job_name}"

        request = {
            "TransformJobName": self._current_job_name,
            "ModelName": self.model_name,
            "TransformInput": self._transform_input(
                data, data_type, content_type, compression_type, split_type
            ),
            "TransformOutput": self._transform_output(),
            "TransformResources": self._transform_resources(),
        }
        if self.strategy:
            request["BatchStrategy"] = self.strategy
        if self.max_concurrent_transforms is not None:
            request["MaxConcurrentTransforms"] = self.max_concurrent_transforms
        if self.max_payload is not None:
            request["MaxPayloadInMB"] = self.max_payload
        if self.env:
            request["Environment"] = self.env
        if self.tags:
            request["Tags"] = self.tags
        data_processing = {
            key: value
            for key, value in (
                ("InputFilter", input_filter),
                ("OutputFilter", output_filter),
                ("JoinSource", join_source),
            )
            if value is not None
        }
        if data_processing:
            request["DataProcessing"] = data_processing
        if experiment_config:
            request["ExperimentConfig"] = experiment_config

        session.transform(request)
        self.latest_transform_job = self._current_job_name
        logger.info(f"Created transform job {self._current_job_name}")
        if wait:
            self.wait()
        return self._current_job_name

    def _transform_input(self, data, data_type, content_type, compression_type, split_type):
        config = {"DataSource": {"S3DataSource": {"S3DataType": data_type, "S3Uri": data}}}
        if content_type is not None:
            config["ContentType"] = content_type
        if compression_type is not None:
            config["CompressionType"] = compression_type
        if split_type is not None:
            config["SplitType"] = split_type
        return config

    def _transform_output(self):
        config = {"S3OutputPath": self.output_path}
        if self.accept is not None:
            config["Accept"] = self.accept
        if self.assemble_with is not None:
            config["AssembleWith"] = self.assemble_with
        if self.output_kms_key is not None:
            config["KmsKeyId"] = self.output_kms_key
        return config

    def _transform_resources(self):
        config = {"InstanceCount": self.instance_count, "InstanceType": self.instance_type}
        if self.volume_kms_key is not None:
            config["VolumeKmsKeyId"] = self.volume_kms_key
        return config

    def _ensure_last_transform_job(self):
        if self.latest_transform_job is None:
            raise ValidationError("No transform job available")

    def wait(self, policy=None):
        self._ensure_last_transform_job()
        return self._init_session().wait_for_transform_job(self.latest_transform_job, policy)

    def describe(self):
        self._ensure_last_transform_job()
        return self._init_session().describe_transform_job(self.latest_transform_job)

    def stop_transform_job(self, wait=True):
        self._ensure_last_transform_job()
        session = self._init_session()
        session.stop_transform_job(self.latest_transform_job)
        if wait:
            session.wait_for_transform_job(self.latest_transform_job)

    def output_dataframe(self, header=None):
        """
        Read every ``.out`` file written by the last transform job into a
        single pandas DataFrame. The job output must be CSV.
        """
        self._ensure_last_transform_job()
        session = self._init_session()
        bucket, prefix = parse_s3_url(self.output_path)
        keys = [key for key in session.s3.list_keys(bucket, prefix) if key.endswith(".out")]
        if not keys:
            raise ValidationError(f"No transform output found under {self.output_path}")
        frames = [session.s3.read_csv_from_s3(bucket, key, header=header) for key in sorted(keys)]
        return pd.concat(frames, ignore_index=True)

    @classmethod
    def attach(cls, transform_job_name, session):
        """Rebuild a transformer from an existing transform job"""
        job_details = session.describe_transform_job(transform_job_name)
        output = job_details["TransformOutput"]
        resources = job_details["TransformResources"]
        transformer = cls(
            job_details["ModelName"],
            resources["InstanceCount"],
            resources["InstanceType"],
            strategy=job_details.get("BatchStrategy"),
            assemble_with=output.get("AssembleWith"),
            output_path=output["S3OutputPath"],
            output_kms_key=output.get("KmsKeyId"),
            accept=output.get("Accept"),
            max_concurrent_transforms=job_details.get("MaxConcurrentTransforms"),
            max_payload=job_details.get("MaxPayloadInMB"),
            env=job_details.get("Environment"),
            session=session,
        )
        transformer.latest_transform_job = transform_job_name
        transformer._current_job_name = transform_job_name
        return transformer
