###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .deserializers import BytesDeserializer
from .logging import get_logger
from .serializers import IdentitySerializer
from .utils_helper import name_from_base

logger = get_logger(service="sagekit_predictor")


class Predictor:
    """
    Make real-time predictions against a SageMaker endpoint.

    Request bodies are produced by ``serializer`` and responses are read by
    ``deserializer``; their content types set the ``ContentType`` and
    ``Accept`` headers.
    """

    def __init__(
        self,
        endpoint_name,
        session=None,
        serializer=None,
        deserializer=None,
    ):
        from .session import Session

        self.endpoint_name = endpoint_name
        self.session = session or Session()
        self.serializer = serializer or IdentitySerializer()
        self.deserializer = deserializer or BytesDeserializer()
        self._endpoint_config_name = None
        self._model_names = None
        self._context = None

    @property
    def content_type(self):
        return self.serializer.content_type

    @property
    def accept(self):
        return self.deserializer.accept

    def predict(
        self,
        data,
        initial_args=None,
        target_model=None,
        target_variant=None,
        inference_id=None,
    ):
        """
        Return the inference from the endpoint for ``data``

        Args:
            data: input accepted by the serializer
            initial_args (dict): extra InvokeEndpoint arguments
            target_model (str): model to invoke on a multi-model endpoint
            target_variant (str): production variant to invoke
            inference_id (str): identifier recorded with captured data
        """
        request_args = self._create_request_args(
            data, initial_args, target_model, target_variant, inference_id
        )
        response = self.session.invoke_endpoint(request_args)
        response_body = response["Body"]
        content_type = response.get("ContentType", "application/octet-stream")
        return self.deserializer.deserialize(response_body, content_type)

    def _create_request_args(
        self, data, initial_args=None, target_model=None, target_variant=None, inference_id=None
    ):
        args = dict(initial_args) if initial_args else {}

        if "EndpointName" not in args:
            args["EndpointName"] = self.endpoint_name
        if "ContentType" not in args:
            args["ContentType"] = self.content_type
        if "Accept" not in args:
            args["Accept"] = ", ".join(self.accept)
        if target_model:
            args["TargetModel"] = target_model
        if target_variant:
            args["TargetVariant"] = target_variant
        if inference_id:
            args["InferenceId"] = inference_id

        args["Body"] = self.serializer.serialize(data)
        return args

    def update_data_capture_config(self, data_capture_config):
        """
        Point the endpoint at a new endpoint config that differs from the
        current one only by its DataCaptureConfig.
        """
        current = self.session.describe_endpoint_config(self._get_endpoint_config_name())
        new_config_name = name_from_base(self.endpoint_name)
        request = {
            "EndpointConfigName": new_config_name,
            "ProductionVariants": current["ProductionVariants"],
        }
        if current.get("KmsKeyId"):
            request["KmsKeyId"] = current["KmsKeyId"]
        if data_capture_config is not None:
            request["DataCaptureConfig"] = data_capture_config.to_request_dict()
        self.session.create_endpoint_config(request)
        self.session.update_endpoint(self.endpoint_name, new_config_name)
        self._endpoint_config_name = new_config_name

    def delete_endpoint(self, delete_endpoint_config=True):
        if delete_endpoint_config:
            self.session.delete_endpoint_config(self._get_endpoint_config_name())
        self.session.delete_endpoint(self.endpoint_name)

    def delete_model(self):
        for model_name in self._get_model_names():
            self.session.delete_model(model_name)

    def endpoint_context(self):
        """Return the lineage context associated with this endpoint"""
        from .lineage import EndpointContext

        if self._context is None:
            self._context = EndpointContext.for_endpoint(self.endpoint_name, self.session)
        return self._context

    def _get_endpoint_config_name(self):
        if self._endpoint_config_name is None:
            desc = self.session.describe_endpoint(self.endpoint_name)
            self._endpoint_config_name = desc["EndpointConfigName"]
        return self._endpoint_config_name

    def _get_model_names(self):
        if self._model_names is None:
            config = self.session.describe_endpoint_config(self._get_endpoint_config_name())
            self._model_names = [variant["ModelName"] for variant in config["ProductionVariants"]]
        return self._model_names
