###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import os
import tarfile
import tempfile

from .error_helper import ValidationError
from .git_utils import git_clone_repo
from .inputs import TrainingInput
from .logging import get_logger
from .model import Model
from .predictor import Predictor
from .s3_helper import s3_path_join
from .utils_helper import base_name_from_image, name_from_base, to_string

logger = get_logger(service="sagekit_estimator")

VPC_CONFIG_DEFAULT = "VPC_CONFIG_DEFAULT"
SOURCE_ARCHIVE = "sourcedir.tar.gz"


class TrainingJob:
    """Handle on a started training job"""

    def __init__(self, session, name):
        self.session = session
        self.name = name

    def describe(self):
        return self.session.describe_training_job(self.name)

    def wait(self, policy=None):
        return self.session.wait_for_job(self.name, policy)

    def stop(self):
        self.session.stop_training_job(self.name)


class Estimator:
    """
    Build and submit CreateTrainingJob requests for a training image.

    The estimator only assembles the request; training runs remotely. After
    ``fit`` the job is available as ``latest_training_job`` and its
    artifacts through ``model_data``.
    """

    def __init__(
        self,
        image_uri,
        role,
        instance_count,
        instance_type,
        volume_size=30,
        volume_kms_key=None,
        max_run=24 * 60 * 60,
        input_mode="File",
        output_path=None,
        output_kms_key=None,
        base_job_name=None,
        session=None,
        hyperparameters=None,
        tags=None,
        subnets=None,
        security_group_ids=None,
        model_uri=None,
        model_channel_name="model",
        metric_definitions=None,
        encrypt_inter_container_traffic=False,
        use_spot_instances=False,
        max_wait=None,
        checkpoint_s3_uri=None,
        checkpoint_local_path=None,
        enable_network_isolation=False,
        environment=None,
        git_config=None,
        source_dir=None,
        entry_point=None,
        dependencies=None,
    ):
        if instance_count is None or instance_count < 1:
            raise ValidationError("instance_count must be a positive integer")
        if not instance_type:
            raise ValidationError("instance_type is required")
        if use_spot_instances:
            if max_wait is None:
                raise ValidationError("max_wait must be set when use_spot_instances is True")
            if max_wait < max_run:
                raise ValidationError(
                    f"max_wait ({max_wait}) must be greater than or equal to max_run ({max_run})"
                )
        if bool(subnets) != bool(security_group_ids):
            raise ValidationError("subnets and security_group_ids must be provided together")
        if git_config is not None and entry_point is None:
            raise ValidationError("entry_point is required when git_config is set")

        self.image_uri = image_uri
        self.role = role
        self.instance_count = instance_count
        self.instance_type = instance_type
        self.volume_size = volume_size
        self.volume_kms_key = volume_kms_key
        self.max_run = max_run
        self.input_mode = input_mode
        self.output_path = output_path
        self.output_kms_key = output_kms_key
        self.base_job_name = base_job_name
        self.session = session
        self._hyperparameters = dict(hyperparameters or {})
        self.tags = tags
        self.subnets = subnets
        self.security_group_ids = security_group_ids
        self.model_uri = model_uri
        self.model_channel_name = model_channel_name
        self.metric_definitions = metric_definitions
        self.encrypt_inter_container_traffic = encrypt_inter_container_traffic
        self.use_spot_instances = use_spot_instances
        self.max_wait = max_wait
        self.checkpoint_s3_uri = checkpoint_s3_uri
        self.checkpoint_local_path = checkpoint_local_path
        self._enable_network_isolation = enable_network_isolation
        self.environment = environment
        self.git_config = git_config
        self.source_dir = source_dir
        self.entry_point = entry_point
        self.dependencies = dependencies

        self._current_job_name = None
        self.latest_training_job = None
        self.uploaded_code = None

    def _init_session(self):
        if self.session is None:
            from .session import Session

            self.session = Session()
        return self.session

    def training_image_uri(self):
        return self.image_uri

    def enable_network_isolation(self):
        return self._enable_network_isolation

    def hyperparameters(self):
        return {k: to_string(v) for k, v in self._hyperparameters.items() if v is not None}

    def set_hyperparameters(self, **kwargs):
        self._hyperparameters.update(kwargs)

    def get_vpc_config(self, vpc_config_override=VPC_CONFIG_DEFAULT):
        if vpc_config_override != VPC_CONFIG_DEFAULT:
            return vpc_config_override
        if not self.subnets:
            return None
        return {"Subnets": self.subnets, "SecurityGroupIds": self.security_group_ids}

    def _prepare_for_training(self, job_name=None):
        if job_name is not None:
            self._current_job_name = job_name
        else:
            base_name = self.base_job_name or base_name_from_image(self.training_image_uri())
            self._current_job_name = name_from_base(base_name)

        session = self._init_session()
        if self.output_path is None:
            self.output_path = f"s3://{session.default_bucket()}/"

        if self.git_config:
            updated_paths = git_clone_repo(
                self.git_config, self.entry_point, self.source_dir, self.dependencies
            )
            self.entry_point = updated_paths["entry_point"]
            self.source_dir = updated_paths["source_dir"]
            self.dependencies = updated_paths["dependencies"]

        if self.entry_point is not None:
            self.uploaded_code = self._stage_user_code()
            self._hyperparameters.update(
                {
                    "sagemaker_program": os.path.basename(self.entry_point),
                    "sagemaker_submit_directory": self.uploaded_code,
                    "sagemaker_region": session.region_name,
                }
            )

    def _stage_user_code(self):
        """Tar the entry point (or source_dir) and dependencies and upload them"""
        session = self._init_session()
        bucket = session.default_bucket()
        key = s3_path_join(self._current_job_name, "source", SOURCE_ARCHIVE)

        with tempfile.TemporaryDirectory() as tmp:
            archive = os.path.join(tmp, SOURCE_ARCHIVE)
            with tarfile.open(archive, "w:gz") as tar:
                if self.source_dir:
                    for name in os.listdir(self.source_dir):
                        tar.add(os.path.join(self.source_dir, name), arcname=name)
                else:
                    tar.add(self.entry_point, arcname=os.path.basename(self.entry_point))
                for dependency in self.dependencies or []:
                    tar.add(dependency, arcname=os.path.basename(dependency))
            return session.s3.upload_file(archive, bucket, key)

    def _prepare_inputs(self, inputs, **kwargs):
        """Derive input dependent hyperparameters; no-op for generic images"""
        if kwargs:
            raise ValidationError(f"Unexpected arguments: {', '.join(kwargs)}")

    def fit(self, inputs=None, wait=True, job_name=None, experiment_config=None):
        """
        Start a training job.

        Args:
            inputs: S3 URI string, TrainingInput, RecordSet, list of RecordSet
                or dict of channel name to S3 URI / TrainingInput
            wait (bool): block until the job reaches a terminal status
            job_name (str): job name, generated from the base name when omitted
            experiment_config (dict): ExperimentName / TrialName /
                TrialComponentDisplayName
        """
        self._prepare_for_training(job_name=job_name)
        request = self._training_request(inputs, experiment_config)
        self.session.train(request)
        self.latest_training_job = TrainingJob(self.session, self._current_job_name)
        logger.info(f"Created training job {self._current_job_name}")
        if wait:
            self.latest_training_job.wait()
        return self.latest_training_job

    def _training_request(self, inputs, experiment_config=None):
        session = self._init_session()
        input_config = _channels_from_inputs(inputs)
        input_mode = self.input_mode
        if isinstance(inputs, TrainingInput) and "InputMode" in inputs.config:
            logger.debug(f"Selecting TrainingInput's input_mode ({inputs.config['InputMode']})")
            input_mode = inputs.config["InputMode"]

        if self.model_uri:
            input_config.append(
                {
                    "ChannelName": self.model_channel_name,
                    "DataSource": {
                        "S3DataSource": {
                            "S3DataType": "S3Prefix",
                            "S3Uri": self.model_uri,
                            "S3DataDistributionType": "FullyReplicated",
                        }
                    },
                    "ContentType": "application/x-sagemaker-model",
                    "InputMode": "File",
                }
            )

        algorithm_spec = {
            "TrainingImage": self.training_image_uri(),
            "TrainingInputMode": input_mode,
        }
        if self.metric_definitions:
            algorithm_spec["MetricDefinitions"] = self.metric_definitions

        output_config = {"S3OutputPath": self.output_path}
        if self.output_kms_key:
            output_config["KmsKeyId"] = self.output_kms_key

        resource_config = {
            "InstanceCount": self.instance_count,
            "InstanceType": self.instance_type,
            "VolumeSizeInGB": self.volume_size,
        }
        if self.volume_kms_key:
            resource_config["VolumeKmsKeyId"] = self.volume_kms_key

        stopping_condition = {"MaxRuntimeInSeconds": self.max_run}
        if self.use_spot_instances:
            stopping_condition["MaxWaitTimeInSeconds"] = self.max_wait

        request = {
            "TrainingJobName": self._current_job_name,
            "AlgorithmSpecification": algorithm_spec,
            "RoleArn": session.expand_role(self.role),
            "OutputDataConfig": output_config,
            "ResourceConfig": resource_config,
            "StoppingCondition": stopping_condition,
        }
        if input_config:
            request["InputDataConfig"] = input_config
        hyperparameters = self.hyperparameters()
        if hyperparameters:
            request["HyperParameters"] = hyperparameters
        vpc_config = self.get_vpc_config()
        if vpc_config:
            request["VpcConfig"] = vpc_config
        if self.tags:
            request["Tags"] = self.tags
        if self._enable_network_isolation:
            request["EnableNetworkIsolation"] = True
        if self.encrypt_inter_container_traffic:
            request["EnableInterContainerTrafficEncryption"] = True
        if self.use_spot_instances:
            request["EnableManagedSpotTraining"] = True
        if self.checkpoint_s3_uri:
            checkpoint_config = {"S3Uri": self.checkpoint_s3_uri}
            if self.checkpoint_local_path:
                checkpoint_config["LocalPath"] = self.checkpoint_local_path
            request["CheckpointConfig"] = checkpoint_config
        if self.environment:
            request["Environment"] = self.environment
        if experiment_config:
            request["ExperimentConfig"] = experiment_config
        return request

    def _ensure_latest_training_job(self):
        if self.latest_training_job is None:
            raise ValidationError(
                "Estimator is not associated with a training job. Call fit() or attach() first."
            )

    @property
    def model_data(self):
        self._ensure_latest_training_job()
        desc = self.latest_training_job.describe()
        return desc["ModelArtifacts"]["S3ModelArtifacts"]

    def create_model(
        self,
        image_uri=None,
        role=None,
        env=None,
        predictor_cls=Predictor,
        name=None,
        vpc_config_override=VPC_CONFIG_DEFAULT,
    ):
        return Model(
            image_uri or self.image_uri,
            model_data=self.model_data,
            role=role or self.role,
            predictor_cls=predictor_cls,
            env=env,
            name=name,
            vpc_config=self.get_vpc_config(vpc_config_override),
            session=self.session,
            enable_network_isolation=self._enable_network_isolation,
        )

    def deploy(
        self,
        initial_instance_count,
        instance_type,
        serializer=None,
        deserializer=None,
        endpoint_name=None,
        tags=None,
        wait=True,
        data_capture_config=None,
        **kwargs,
    ):
        """Create a model from the latest training job and deploy it to an endpoint"""
        self._ensure_latest_training_job()
        endpoint_name = endpoint_name or self.latest_training_job.name
        model = self.create_model(name=kwargs.pop("model_name", endpoint_name), **kwargs)
        return model.deploy(
            initial_instance_count,
            instance_type,
            serializer=serializer,
            deserializer=deserializer,
            endpoint_name=endpoint_name,
            tags=tags or self.tags,
            wait=wait,
            data_capture_config=data_capture_config,
        )

    def transformer(self, instance_count, instance_type, **kwargs):
        self._ensure_latest_training_job()
        model = self.create_model(name=self.latest_training_job.name)
        return model.transformer(instance_count, instance_type, **kwargs)

    @classmethod
    def _prepare_init_params_from_job_description(cls, job_details):
        algorithm = job_details["AlgorithmSpecification"]
        resources = job_details["ResourceConfig"]
        stopping = job_details.get("StoppingCondition", {})
        init_params = {
            "image_uri": algorithm.get("TrainingImage"),
            "role": job_details["RoleArn"],
            "instance_count": resources["InstanceCount"],
            "instance_type": resources["InstanceType"],
            "volume_size": resources["VolumeSizeInGB"],
            "volume_kms_key": resources.get("VolumeKmsKeyId"),
            "max_run": stopping.get("MaxRuntimeInSeconds", 24 * 60 * 60),
            "input_mode": algorithm.get("TrainingInputMode", "File"),
            "output_path": job_details["OutputDataConfig"]["S3OutputPath"],
            "output_kms_key": job_details["OutputDataConfig"].get("KmsKeyId"),
            "base_job_name": base_name_from_image(algorithm.get("TrainingImage")),
            "hyperparameters": dict(job_details.get("HyperParameters", {})),
            "metric_definitions": algorithm.get("MetricDefinitions"),
            "enable_network_isolation": job_details.get("EnableNetworkIsolation", False),
            "encrypt_inter_container_traffic": job_details.get(
                "EnableInterContainerTrafficEncryption", False
            ),
            "use_spot_instances": job_details.get("EnableManagedSpotTraining", False),
        }
        if init_params["use_spot_instances"]:
            init_params["max_wait"] = stopping.get("MaxWaitTimeInSeconds")
        if "CheckpointConfig" in job_details:
            init_params["checkpoint_s3_uri"] = job_details["CheckpointConfig"]["S3Uri"]
            init_params["checkpoint_local_path"] = job_details["CheckpointConfig"].get("LocalPath")
        vpc_config = job_details.get("VpcConfig")
        if vpc_config:
            init_params["subnets"] = vpc_config["Subnets"]
            init_params["security_group_ids"] = vpc_config["SecurityGroupIds"]
        if job_details.get("Environment"):
            init_params["environment"] = job_details["Environment"]
        return init_params

    @classmethod
    def attach(cls, training_job_name, session, wait=True):
        """
        Rebuild an estimator from an existing training job. With ``wait``
        the call blocks until the job reaches a terminal status.
        """
        job_details = session.describe_training_job(training_job_name)
        init_params = cls._prepare_init_params_from_job_description(job_details)
        estimator = cls(session=session, **init_params)
        estimator._current_job_name = training_job_name
        estimator.latest_training_job = TrainingJob(session, training_job_name)
        if wait:
            estimator.latest_training_job.wait()
        return estimator


def _channels_from_inputs(inputs):
    """Translate fit() inputs into InputDataConfig channels"""
    # local import to avoid a cycle with the amazon package
    from .amazon.estimator import RecordSet

    if inputs is None:
        return []
    if isinstance(inputs, (str, TrainingInput)):
        return [_channel("training", inputs)]
    if isinstance(inputs, RecordSet):
        return [_channel(inputs.channel, inputs.records_s3_input())]
    if isinstance(inputs, list) and all(isinstance(r, RecordSet) for r in inputs):
        return [_channel(r.channel, r.records_s3_input()) for r in inputs]
    if isinstance(inputs, dict):
        return [_channel(name, value) for name, value in inputs.items()]
    raise ValidationError(
        "Cannot format input {}. Expecting one of str, dict, TrainingInput or RecordSet".format(
            inputs
        )
    )


def _channel(name, value):
    if isinstance(value, str):
        if value.startswith("file://"):
            raise ValidationError(
                "File URIs are supported in local mode only. Please use a S3 URI instead."
            )
        value = TrainingInput(value)
    if not isinstance(value, TrainingInput):
        raise ValidationError(f"Unsupported input for channel {name}: {type(value)}")
    return {"ChannelName": name, **value.config}
