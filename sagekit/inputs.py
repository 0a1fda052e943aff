###
# © 2025 Amazon Web Services, Inc. or its affiliates. All Rights Reserved.
# This AWS Content is provided subject to the terms of the AWS Customer Agreement
# available at http://aws.amazon.com/agreement or other written agreement between
# Customer and either Amazon Web Services, Inc. or Amazon Web Services EMEA SARL or both.
###

from .error_helper import ValidationError

S3_DATA_TYPES = ("S3Prefix", "ManifestFile", "AugmentedManifestFile")
DISTRIBUTIONS = ("FullyReplicated", "ShardedByS3Key")
INPUT_MODES = ("File", "Pipe", "FastFile")


class ShuffleConfig:
    def __init__(self, seed):
        self.seed = seed


class TrainingInput:
    """
    A training channel backed by S3. ``config`` holds the request shape of
    one entry of ``InputDataConfig`` (without ``ChannelName``).
    """

    def __init__(
        self,
        s3_data,
        distribution=None,
        compression=None,
        content_type=None,
        record_wrapping=None,
        s3_data_type="S3Prefix",
        input_mode=None,
        attribute_names=None,
        target_attribute_name=None,
        shuffle_config=None,
    ):
        if s3_data_type not in S3_DATA_TYPES:
            raise ValidationError(
                f"Invalid s3_data_type {s3_data_type}. Expecting one of {', '.join(S3_DATA_TYPES)}"
            )
        if distribution is not None and distribution not in DISTRIBUTIONS:
            raise ValidationError(
                f"Invalid distribution {distribution}. Expecting one of {', '.join(DISTRIBUTIONS)}"
            )
        if input_mode is not None and input_mode not in INPUT_MODES:
            raise ValidationError(
                f"Invalid input_mode {input_mode}. Expecting one of {', '.join(INPUT_MODES)}"
            )

        s3_data_source = {"S3DataType": s3_data_type, "S3Uri": s3_data}
        if distribution is not None:
            s3_data_source["S3DataDistributionType"] = distribution
        if attribute_names is not None:
            s3_data_source["AttributeNames"] = attribute_names
        self.config = {"DataSource": {"S3DataSource": s3_data_source}}

        if compression is not None:
            self.config["CompressionType"] = compression
        if content_type is not None:
            self.config["ContentType"] = content_type
        if record_wrapping is not None:
            self.config["RecordWrapperType"] = record_wrapping
        if input_mode is not None:
            self.config["InputMode"] = input_mode
        if target_attribute_name is not None:
            self.config["TargetAttributeName"] = target_attribute_name
        if shuffle_config is not None:
            self.config["ShuffleConfig"] = {"Seed": shuffle_config.seed}

    @property
    def s3_uri(self):
        return self.config["DataSource"]["S3DataSource"]["S3Uri"]
