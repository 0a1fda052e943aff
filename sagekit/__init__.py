###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .aws_helper import AwsHelper
from .config import PollingPolicy, SessionSettings, load_settings
from .error_helper import ServiceException, ValidationError, raise_error
from .logging import get_logger
from .s3_helper import S3Helper
from .session import Session
from .utils_helper import get_env
from .inputs import TrainingInput
from .estimator import Estimator
from .amazon.estimator import AmazonAlgorithmEstimator, RecordSet
from .model import Model
from .predictor import Predictor
from .transformer import Transformer
from .processing import Processor, ScriptProcessor, ProcessingInput, ProcessingOutput
from .tuner import HyperparameterTuner

__all__ = [
    "AwsHelper",
    "PollingPolicy",
    "SessionSettings",
    "load_settings",
    "ServiceException",
    "ValidationError",
    "raise_error",
    "get_logger",
    "S3Helper",
    "Session",
    "get_env",
    "TrainingInput",
    "Estimator",
    "AmazonAlgorithmEstimator",
    "RecordSet",
    "Model",
    "Predictor",
    "Transformer",
    "Processor",
    "ScriptProcessor",
    "ProcessingInput",
    "ProcessingOutput",
    "HyperparameterTuner",
]
