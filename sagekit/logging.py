###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from aws_lambda_powertools import Logger

from .utils_helper import get_env

DEFAULT_SERVICE_NAME = "sagekit"
DEFAULT_LOGGING_LEVEL = get_env("SAGEKIT_LOG_LEVEL", "INFO")


def get_logger(
    service: str = DEFAULT_SERVICE_NAME, level: str = DEFAULT_LOGGING_LEVEL, child=False
):
    return Logger(service=service, level=level.upper(), child=child)
