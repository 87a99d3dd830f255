"""
Client config from environment with defaults.
Uses pydantic-settings so all env vars are validated and documented in one model.
"""

from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_LISTING_TIMEOUT_SECONDS = 120.0
# Socket connect/read bound for a single backend request
REQUEST_TIMEOUT_SECONDS = 60.0
# Minimum S3 multipart part size (except last) is 5 MB
MIN_UPLOAD_PART_SIZE_BYTES = 5 * 1024 * 1024
DEFAULT_UPLOAD_PART_SIZE_BYTES = 8 * 1024 * 1024


class FileStoreSettings(BaseSettings):
    """
    All environment variables used to build the S3 and GCS clients.
    Env vars are read from os.environ (UPPER_SNAKE_CASE by default).
    """

    model_config = SettingsConfigDict(extra="ignore")

    aws_region: str = "us-east-1"

    # Custom S3 endpoint (signed requests, default credential chain)
    aws_endpoint_url: str = ""

    # GCP project for gs:// clients (default: inferred from credentials)
    google_cloud_project: str = ""

    # Local emulator (e.g. localhost:4566, localhost:4443): requests are sent unsigned
    storage_emulator_host: str = ""

    # Upper bound for one S3FileStore.apply() enumeration
    filestore_listing_timeout_seconds: float = DEFAULT_LISTING_TIMEOUT_SECONDS

    # Write cursors switch to multipart upload once this much is buffered
    filestore_upload_part_size_bytes: int = DEFAULT_UPLOAD_PART_SIZE_BYTES

    @field_validator("filestore_listing_timeout_seconds", mode="before")
    @classmethod
    def parse_listing_timeout(cls, v: object) -> float:
        try:
            n = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_LISTING_TIMEOUT_SECONDS
        return n if n > 0 else DEFAULT_LISTING_TIMEOUT_SECONDS

    @field_validator("filestore_upload_part_size_bytes", mode="before")
    @classmethod
    def parse_and_clamp_part_size(cls, v: object) -> int:
        try:
            n = int(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return DEFAULT_UPLOAD_PART_SIZE_BYTES
        return max(MIN_UPLOAD_PART_SIZE_BYTES, n)

    @property
    def use_emulator(self) -> bool:
        return bool(self.storage_emulator_host.strip())

    @property
    def emulator_url(self) -> str | None:
        """STORAGE_EMULATOR_HOST with an http:// scheme added when missing."""
        host = self.storage_emulator_host.strip()
        if not host:
            return None
        return host if "://" in host else f"http://{host}"

    @property
    def endpoint_url(self) -> str | None:
        """Emulator host wins over AWS_ENDPOINT_URL; None means the AWS default endpoint."""
        return self.emulator_url or self.aws_endpoint_url.strip() or None


def get_settings() -> FileStoreSettings:
    """Return validated settings from current environment."""
    return FileStoreSettings()
