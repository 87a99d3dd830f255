"""S3 and GCS objects as files: streaming file handles and prefix-scoped file stores."""

from .client import S3ObjectReader, S3ObjectWriter, S3RemoteClient
from .config import FileStoreSettings, get_settings
from .cursors import CursorState
from .deadline import Deadline
from .env_config import client_factory_from_env, file_from_env, file_store_from_env
from .errors import (
    BackendError,
    ClientInitError,
    FileStoreError,
    InvalidFilterError,
    InvalidObjectKeyError,
    InvalidTimeoutError,
    ListingTimeoutError,
    MalformedPatternError,
    MalformedURIError,
    ObjectNotFoundError,
    RenameDuplicateError,
)
from .file import S3File
from .file_store import S3FileStore
from .gcs_client import GCSObjectReader, GCSObjectWriter, GCSRemoteClient
from .interfaces import ClientFactory, ObjectReader, ObjectWriter, RemoteClient
from .logging_config import configure_logging
from .models import ObjectAttributes, ObjectKey, Presence, PresenceState
from .uri import (
    build_uri,
    parse_uri,
    render_rename_pattern,
    require_object_key,
    resolve_uri,
    split_uri,
    uri_scheme,
)

__version__ = "0.1.0"
__all__ = [
    "BackendError",
    "ClientFactory",
    "ClientInitError",
    "CursorState",
    "Deadline",
    "FileStoreError",
    "FileStoreSettings",
    "GCSObjectReader",
    "GCSObjectWriter",
    "GCSRemoteClient",
    "InvalidFilterError",
    "InvalidObjectKeyError",
    "InvalidTimeoutError",
    "ListingTimeoutError",
    "MalformedPatternError",
    "MalformedURIError",
    "ObjectAttributes",
    "ObjectKey",
    "ObjectNotFoundError",
    "ObjectReader",
    "ObjectWriter",
    "Presence",
    "PresenceState",
    "RemoteClient",
    "RenameDuplicateError",
    "S3File",
    "S3FileStore",
    "S3ObjectReader",
    "S3ObjectWriter",
    "S3RemoteClient",
    "build_uri",
    "client_factory_from_env",
    "configure_logging",
    "file_from_env",
    "file_store_from_env",
    "get_settings",
    "parse_uri",
    "render_rename_pattern",
    "require_object_key",
    "resolve_uri",
    "split_uri",
    "uri_scheme",
]
