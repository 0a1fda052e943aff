###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import boto3
from botocore.client import Config as ClientConfig

from .utils_helper import get_env

DEFAULT_MAX_RETRY_ATTEMPTS = int(get_env("MAX_RETRY_ATTEMPTS", 2))


def client_config(max_attempts=DEFAULT_MAX_RETRY_ATTEMPTS):
    return ClientConfig(retries=dict(max_attempts=int(max_attempts)))


class AwsHelper:
    @staticmethod
    def get_session(aws_region=None):
        if aws_region is not None:
            return boto3.Session(region_name=aws_region)
        return boto3.Session()

    @staticmethod
    def get_client(name, aws_region=None, boto_session=None, max_attempts=None):
        session = boto_session or boto3
        config = client_config(max_attempts or DEFAULT_MAX_RETRY_ATTEMPTS)
        if aws_region is not None:
            return session.client(name, region_name=aws_region, config=config)
        else:
            return session.client(name, config=config)
