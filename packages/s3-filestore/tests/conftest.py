"""Pytest fixtures for s3-filestore tests (moto-backed S3)."""

import boto3
import pytest
from moto import mock_aws

from s3_filestore import FileStoreSettings, client_factory_from_env

TEST_BUCKET = "test-bucket"


FAKE_AWS_ENV = {
    "AWS_ACCESS_KEY_ID": "filestore-test",
    "AWS_SECRET_ACCESS_KEY": "filestore-test",
    "AWS_SESSION_TOKEN": "filestore-test",
    "AWS_DEFAULT_REGION": "us-east-1",
}
# Shell settings that would route clients away from moto
ENDPOINT_OVERRIDES = ("AWS_ENDPOINT_URL", "AWS_PROFILE", "STORAGE_EMULATOR_HOST")


@pytest.fixture
def aws_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Fake credentials for moto, restored after the test."""
    for name, value in FAKE_AWS_ENV.items():
        monkeypatch.setenv(name, value)
    for name in ENDPOINT_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def moto_aws(aws_credentials):
    """Enable moto mock for S3."""
    with mock_aws():
        yield


@pytest.fixture
def s3(moto_aws):
    """Raw boto3 S3 client for arranging and checking bucket contents."""
    return boto3.client("s3", region_name="us-east-1")


@pytest.fixture
def s3_bucket(s3):
    """Create the test bucket and return its name."""
    s3.create_bucket(Bucket=TEST_BUCKET)
    return TEST_BUCKET


@pytest.fixture
def settings() -> FileStoreSettings:
    """Settings pinned to the AWS default endpoint, whatever the environment says."""
    return FileStoreSettings(
        aws_region="us-east-1",
        aws_endpoint_url="",
        storage_emulator_host="",
        filestore_upload_part_size_bytes=5 * 1024 * 1024,
    )


@pytest.fixture
def client_factory(moto_aws, settings):
    """Factory producing S3RemoteClient instances talking to moto."""
    return client_factory_from_env(settings)


class RecordingSink:
    """Writable sink that keeps what was written and whether it was closed."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.closed = False

    def write(self, chunk: bytes) -> int:
        self.data.extend(chunk)
        return len(chunk)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
