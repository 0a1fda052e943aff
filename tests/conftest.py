import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from sagekit.config import PollingPolicy, SessionSettings
from sagekit.session import Session

REGION = "us-west-2"
BUCKET = "test-bucket"
ROLE = "arn:aws:iam::111122223333:role/SageMakerRole"


class FakeS3Client:
    """In-memory stand-in for the handful of S3 calls sagekit makes"""

    def __init__(self):
        self.objects = {}
        self.put_calls = []

    def put_object(self, Body, Bucket, Key, **kwargs):
        if isinstance(Body, str):
            Body = Body.encode("utf-8")
        self.objects[(Bucket, Key)] = Body
        self.put_calls.append({"Bucket": Bucket, "Key": Key, **kwargs})
        return {}

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": Key}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None):
        with open(Filename, "rb") as f:
            self.objects[(Bucket, Key)] = f.read()

    def delete_objects(self, Bucket, Delete):
        for item in Delete["Objects"]:
            self.objects.pop((Bucket, item["Key"]), None)
        return {}

    def head_bucket(self, Bucket):
        return {}

    def get_paginator(self, name):
        client = self

        class _Paginator:
            def paginate(self, Bucket, Prefix):
                keys = sorted(k for b, k in client.objects if b == Bucket and k.startswith(Prefix))
                yield {"Contents": [{"Key": k} for k in keys]}

        return _Paginator()

    def keys(self, bucket=BUCKET):
        return sorted(k for b, k in self.objects if b == bucket)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def sagemaker_client():
    return MagicMock(name="sagemaker")


@pytest.fixture
def runtime_client():
    return MagicMock(name="sagemaker-runtime")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(sagemaker_client, runtime_client, s3_client, clock):
    """A real Session wired to mock clients, an in-memory S3 and a fake clock"""
    boto_session = MagicMock(name="boto_session")
    boto_session.region_name = REGION
    settings = SessionSettings(region=REGION, default_bucket=BUCKET, role=ROLE)
    return Session(
        boto_session=boto_session,
        sagemaker_client=sagemaker_client,
        sagemaker_runtime_client=runtime_client,
        s3_client=s3_client,
        settings=settings,
        polling_policy=PollingPolicy(interval=5, timeout=100, backoff=2, max_interval=20),
        sleep=clock.sleep,
        clock=clock,
    )


def client_error(code, operation="Describe"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)
