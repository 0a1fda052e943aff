###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import io
import os
from urllib.parse import urlparse

import pandas as pd

from .error_helper import ValidationError
from .logging import get_logger

logger = get_logger(service="sagekit_s3_helper")

S3_PREFIX = "s3://"


def parse_s3_url(url):
    """
    Split an S3 URL into (bucket, key)
    """
    parsed = urlparse(url)
    if parsed.scheme != "s3":
        raise ValidationError(f'Expecting an S3 URL beginning with "s3://". Got "{url}"')
    return parsed.netloc, parsed.path.lstrip("/")


def s3_path_join(*args, with_end_slash=False):
    """
    Join S3 path parts with single slashes, keeping a leading s3:// intact
    """
    delimiter = "/"
    parts = [str(arg) for arg in args if arg]
    prefix = ""
    if parts and parts[0].startswith(S3_PREFIX):
        prefix = S3_PREFIX
        parts[0] = parts[0][len(S3_PREFIX) :]
    parts = [part.strip(delimiter) for part in parts]
    joined = prefix + delimiter.join(part for part in parts if part)
    if with_end_slash and joined and not joined.endswith(delimiter):
        joined += delimiter
    return joined


class S3Helper:
    def __init__(self, s3_client):
        self.client = s3_client

    def read_from_s3(self, bucket_name, s3_file_name):
        return self.read_bytes_from_s3(bucket_name, s3_file_name).decode("utf-8")

    def read_bytes_from_s3(self, bucket_name, s3_file_name):
        obj = self.client.get_object(Bucket=bucket_name, Key=s3_file_name)
        return obj["Body"].read()

    def read_csv_from_s3(self, bucket_name, file_key, header=None):
        content = self.read_bytes_from_s3(bucket_name, file_key)
        return pd.read_csv(io.BytesIO(content), header=header)

    def write_to_s3(self, content, bucket_name, s3_file_name, extra_args=None):
        logger.debug(f"Writing s3://{bucket_name}/{s3_file_name}")
        self.client.put_object(
            Body=content, Bucket=bucket_name, Key=s3_file_name, **(extra_args or {})
        )
        return f"s3://{bucket_name}/{s3_file_name}"

    def upload_file(self, local_path, bucket_name, s3_file_name, extra_args=None):
        logger.debug(f"Uploading {local_path} to s3://{bucket_name}/{s3_file_name}")
        self.client.upload_file(
            Filename=local_path, Bucket=bucket_name, Key=s3_file_name, ExtraArgs=extra_args
        )
        return f"s3://{bucket_name}/{s3_file_name}"

    def upload_path(self, path, bucket_name, key_prefix, extra_args=None):
        """
        Upload a file or every file under a directory. Returns the S3 URI of
        the uploaded file, or of the prefix for a directory.
        """
        if os.path.isdir(path):
            for dirpath, _, filenames in os.walk(path):
                for name in filenames:
                    local_path = os.path.join(dirpath, name)
                    relative = os.path.relpath(local_path, path).replace(os.sep, "/")
                    self.upload_file(
                        local_path, bucket_name, s3_path_join(key_prefix, relative), extra_args
                    )
            return s3_path_join(S3_PREFIX, bucket_name, key_prefix)
        key = s3_path_join(key_prefix, os.path.basename(path))
        return self.upload_file(path, bucket_name, key, extra_args)

    def list_keys(self, bucket_name, prefix):
        keys = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket_name, Prefix=prefix):
            keys.extend(item["Key"] for item in page.get("Contents", []))
        return keys

    def delete_objects(self, bucket_name, keys):
        if not keys:
            return
        self.client.delete_objects(
            Bucket=bucket_name, Delete={"Objects": [{"Key": key} for key in keys]}
        )
