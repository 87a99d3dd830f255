"""
Backend-agnostic interfaces for the remote client and its streams.

S3File and S3FileStore only talk to a RemoteClient; the S3 implementation
(boto3) lives in client.py and is produced by a ClientFactory. Tests and other
backends can supply their own factory.
"""

from collections.abc import Callable, Iterator
from typing import Protocol, runtime_checkable

from .deadline import Deadline
from .models import ObjectAttributes


@runtime_checkable
class ObjectReader(Protocol):
    """An open read stream bound to one object."""

    def read(self, amt: int | None = None) -> bytes:
        """Read up to amt bytes (all remaining when None). b"" at end of stream."""
        ...

    def close(self) -> None:
        ...


@runtime_checkable
class ObjectWriter(Protocol):
    """An open write stream bound to one object. Data is durable only after close()."""

    def write(self, data: bytes) -> int:
        ...

    def close(self) -> None:
        """Flush buffered data and commit the object."""
        ...

    def abort(self) -> None:
        """Discard buffered data without committing."""
        ...


@runtime_checkable
class RemoteClient(Protocol):
    """Connection to the storage backend, addressed by (bucket, key)."""

    def open_reader(self, bucket: str, key: str) -> ObjectReader:
        """Open a read stream. Raises ObjectNotFoundError or BackendError."""
        ...

    def open_writer(self, bucket: str, key: str) -> ObjectWriter:
        """Open a buffered write stream."""
        ...

    def get_attributes(self, bucket: str, key: str) -> ObjectAttributes:
        """Return object metadata. Raises ObjectNotFoundError or BackendError."""
        ...

    def delete(self, bucket: str, key: str) -> None:
        ...

    def copy(self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str) -> None:
        """Server-side copy of src to dst (overwrites dst)."""
        ...

    def list_pages(
        self,
        bucket: str,
        prefix: str,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[list[ObjectAttributes]]:
        """
        Yield pages of objects whose key starts with prefix, in backend order.

        The deadline is checked before each page request.
        """
        ...

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


ClientFactory = Callable[[], RemoteClient]
