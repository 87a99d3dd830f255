"""Typed errors raised by S3File, S3FileStore and the remote client."""


class FileStoreError(Exception):
    """Base error for s3_filestore. ``uri`` is the resource involved, when known."""

    def __init__(self, message: str, *, uri: str | None = None) -> None:
        super().__init__(message)
        self.uri = uri


class MalformedURIError(FileStoreError):
    """The string cannot be parsed as ``s3://bucket/key``."""


class InvalidObjectKeyError(FileStoreError):
    """The URI points at a bucket root where an object key is required."""


class ClientInitError(FileStoreError):
    """The remote client could not be created."""


class ObjectNotFoundError(FileStoreError):
    """The backend reports that the object does not exist."""


class InvalidFilterError(FileStoreError):
    """A listing filter is not a valid regular expression."""


class MalformedPatternError(FileStoreError):
    """A rename pattern cannot be rendered into an object URI."""


class ListingTimeoutError(FileStoreError):
    """A listing did not finish before its deadline."""


class InvalidTimeoutError(FileStoreError, ValueError):
    """A listing timeout is not a positive number of seconds."""


class BackendError(FileStoreError):
    """Any other backend failure (transport, permission, quota)."""


class RenameDuplicateError(BackendError):
    """Rename copied the object but could not delete the source.

    Both objects exist afterwards; nothing is lost, but the duplicate has to be
    reconciled by the operator.
    """

    def __init__(self, message: str, *, source_uri: str, destination_uri: str) -> None:
        super().__init__(message, uri=source_uri)
        self.source_uri = source_uri
        self.destination_uri = destination_uri
