###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

import os
import re
import time


def get_env(key, default=None, required=False):
    value = os.getenv(key, default)
    if required and value is None:
        raise RuntimeError(f"Environment variable '{key}' is required!")
    return value


def sagemaker_timestamp():
    """Return a timestamp with millisecond precision, e.g. 2026-10-19-13-40-05-123"""
    moment = time.time()
    moment_ms = "{:03d}".format(int(moment % 1 * 1000))
    return time.strftime("%Y-%m-%d-%H-%M-%S-{}".format(moment_ms), time.gmtime(moment))


def sagemaker_short_timestamp():
    return time.strftime("%y%m%d-%H%M", time.gmtime())


def name_from_base(base, max_length=63, short=False):
    """
    Append a timestamp to base, trimming base so the result fits in max_length
    """
    timestamp = sagemaker_short_timestamp() if short else sagemaker_timestamp()
    trimmed_base = base[: max_length - len(timestamp) - 1]
    return f"{trimmed_base}-{timestamp}"


def base_name_from_image(image, default_base_name=None):
    """
    Extract the algorithm name from an image URI, e.g.
    123.dkr.ecr.us-east-1.amazonaws.com/kmeans:1 -> kmeans
    """
    if not image:
        return default_base_name or "base_name"
    m = re.match("^(.+/)?([^:/]+)(:[^:]+)?$", image)
    return m.group(2) if m else image


def to_string(value):
    """Render a hyperparameter or environment value the way the service expects it"""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (list, tuple)):
        return ",".join(to_string(v) for v in value)
    return str(value)
