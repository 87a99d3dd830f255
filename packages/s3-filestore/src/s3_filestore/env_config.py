"""
Build remote clients, files and file stores from environment variables.

The backend follows the URI scheme: s3:// and s3a:// use boto3, gs:// and
gcs:// use google-cloud-storage.

Optional env vars (see FileStoreSettings):
- AWS_REGION (default: us-east-1)
- AWS_ENDPOINT_URL (custom S3-compatible endpoint, signed with the default credential chain)
- GOOGLE_CLOUD_PROJECT (project for gs:// clients; default: from credentials)
- STORAGE_EMULATOR_HOST (e.g. localhost:4566 for LocalStack, localhost:4443 for
  fake-gcs-server): requests go to the emulator unsigned, no credentials needed
- FILESTORE_LISTING_TIMEOUT_SECONDS (default: 120)
- FILESTORE_UPLOAD_PART_SIZE_BYTES (default: 8 MiB, min 5 MiB)
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

from .client import S3RemoteClient
from .config import FileStoreSettings
from .errors import MalformedURIError
from .gcs_client import GCSRemoteClient
from .interfaces import ClientFactory
from .models import CANONICAL_SCHEME, GCS_SCHEME
from .uri import uri_scheme

if TYPE_CHECKING:
    from .file import S3File
    from .file_store import S3FileStore


def backend_scheme(uri: str | None) -> str:
    """Canonical scheme selecting the backend for uri; malformed or missing URIs get S3."""
    if not uri:
        return CANONICAL_SCHEME
    try:
        return uri_scheme(uri)
    except MalformedURIError:
        # the handle reports the malformed URI itself on first use
        return CANONICAL_SCHEME


def client_factory_from_env(
    settings: FileStoreSettings | None = None, *, uri: str | None = None
) -> ClientFactory:
    """
    Return a zero-argument factory for the RemoteClient serving uri (S3 when omitted).

    Without explicit settings the environment is read each time a client is
    created, so changes to STORAGE_EMULATOR_HOST etc. apply to new clients.
    """
    if backend_scheme(uri) == GCS_SCHEME:
        return partial(GCSRemoteClient.from_settings, settings)
    return partial(S3RemoteClient.from_settings, settings)


def file_from_env(uri: str) -> S3File:
    """Build S3File for uri using env-configured clients."""
    from .file import S3File

    return S3File(uri, client_factory=client_factory_from_env(uri=uri))


def file_store_from_env(uri: str) -> S3FileStore:
    """Build S3FileStore for uri using env-configured clients and listing timeout."""
    from .file_store import S3FileStore

    return S3FileStore(uri, client_factory=client_factory_from_env(uri=uri))
