###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .error_helper import ValidationError
from .logging import get_logger
from .predictor import Predictor
from .utils_helper import base_name_from_image, name_from_base

logger = get_logger(service="sagekit_model")


def container_def(image_uri, model_data_url=None, env=None, container_mode=None):
    c_def = {"Image": image_uri, "Environment": {k: str(v) for k, v in (env or {}).items()}}
    if model_data_url:
        c_def["ModelDataUrl"] = model_data_url
    if container_mode:
        c_def["Mode"] = container_mode
    return c_def


def production_variant(
    model_name,
    instance_type,
    initial_instance_count=1,
    variant_name="AllTraffic",
    initial_weight=1,
):
    return {
        "ModelName": model_name,
        "InstanceType": instance_type,
        "InitialInstanceCount": initial_instance_count,
        "VariantName": variant_name,
        "InitialVariantWeight": initial_weight,
    }


class Model:
    """
    A deployable model: an inference image plus optional model artifacts.

    ``create`` registers the model with SageMaker, ``deploy`` additionally
    creates an endpoint config and endpoint and returns a predictor.
    """

    def __init__(
        self,
        image_uri,
        model_data=None,
        role=None,
        predictor_cls=Predictor,
        env=None,
        name=None,
        vpc_config=None,
        session=None,
        enable_network_isolation=False,
    ):
        self.image_uri = image_uri
        self.model_data = model_data
        self.role = role
        self.predictor_cls = predictor_cls
        self.env = env or {}
        self.name = name
        self.vpc_config = vpc_config
        self.session = session
        self._enable_network_isolation = enable_network_isolation
        self.endpoint_name = None

    def _init_session(self):
        if self.session is None:
            from .session import Session

            self.session = Session()
        return self.session

    def enable_network_isolation(self):
        return self._enable_network_isolation

    def prepare_container_def(self, instance_type=None):
        return container_def(self.image_uri, self.model_data, self.env)

    def _ensure_base_name(self):
        if self.name is None:
            self.name = name_from_base(base_name_from_image(self.image_uri))
        return self.name

    def create(self, instance_type=None, tags=None):
        """
        Create the SageMaker model entity and return its name
        """
        if self.role is None:
            raise ValidationError("Role can not be null for deploying a model")
        session = self._init_session()
        self._ensure_base_name()

        request = {
            "ModelName": self.name,
            "ExecutionRoleArn": session.expand_role(self.role),
            "PrimaryContainer": self.prepare_container_def(instance_type),
        }
        if self.vpc_config:
            request["VpcConfig"] = self.vpc_config
        if self._enable_network_isolation:
            request["EnableNetworkIsolation"] = True
        if tags:
            request["Tags"] = tags
        session.create_model(request)
        logger.info(f"Created model {self.name}")
        return self.name

    def deploy(
        self,
        initial_instance_count,
        instance_type,
        serializer=None,
        deserializer=None,
        endpoint_name=None,
        tags=None,
        kms_key=None,
        wait=True,
        data_capture_config=None,
    ):
        """
        Deploy the model to a new endpoint.

        Returns:
            the ``predictor_cls`` instance bound to the endpoint, or None when
            ``predictor_cls`` is None
        """
        if initial_instance_count is None or initial_instance_count < 1:
            raise ValidationError("initial_instance_count must be a positive integer")
        if not instance_type:
            raise ValidationError("instance_type is required to deploy a model")

        session = self._init_session()
        self.create(instance_type=instance_type, tags=tags)

        self.endpoint_name = endpoint_name or self.name
        config_request = {
            "EndpointConfigName": self.endpoint_name,
            "ProductionVariants": [
                production_variant(self.name, instance_type, initial_instance_count)
            ],
        }
        if tags:
            config_request["Tags"] = tags
        if kms_key:
            config_request["KmsKeyId"] = kms_key
        if data_capture_config is not None:
            config_request["DataCaptureConfig"] = data_capture_config.to_request_dict()
        session.create_endpoint_config(config_request)
        session.create_endpoint(self.endpoint_name, self.endpoint_name, tags=tags, wait=wait)

        if self.predictor_cls is None:
            return None
        predictor = self.predictor_cls(self.endpoint_name, session)
        if serializer is not None:
            predictor.serializer = serializer
        if deserializer is not None:
            predictor.deserializer = deserializer
        return predictor

    def transformer(
        self,
        instance_count,
        instance_type,
        strategy=None,
        assemble_with=None,
        output_path=None,
        accept=None,
        env=None,
        max_concurrent_transforms=None,
        max_payload=None,
        tags=None,
    ):
        from .transformer import Transformer

        self.create(instance_type=instance_type, tags=tags)
        return Transformer(
            self.name,
            instance_count,
            instance_type,
            strategy=strategy,
            assemble_with=assemble_with,
            output_path=output_path,
            accept=accept,
            max_concurrent_transforms=max_concurrent_transforms,
            max_payload=max_payload,
            env=env,
            tags=tags,
            session=self.session,
        )

    def delete_model(self):
        if self.name is None:
            raise ValidationError(
                "The SageMaker model must be created first before attempting to delete."
            )
        self._init_session().delete_model(self.name)
