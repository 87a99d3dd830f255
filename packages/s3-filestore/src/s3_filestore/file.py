"""
S3File: one stored object (s3:// or gs://) used like a file.

Read and write cursors are opened lazily on the first read()/write() and
reused until close() (or until rename() re-targets the handle). read_all(),
write_all(), copy(), open_reader() and open_writer() always use fresh streams
and never touch the cached cursors.

Writes are buffered by the writer and only become visible once the write
cursor is closed: write_all() does that before returning, callers of write()
must call close().
"""

from __future__ import annotations

import logging
import threading
from typing import BinaryIO

from .client import create_client
from .cursors import CursorSlot, CursorState
from .env_config import client_factory_from_env
from .errors import (
    FileStoreError,
    MalformedPatternError,
    ObjectNotFoundError,
    RenameDuplicateError,
)
from .interfaces import ClientFactory, ObjectReader, ObjectWriter, RemoteClient
from .models import ObjectAttributes, Presence
from .uri import render_rename_pattern, require_object_key

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class S3File:
    """File handle for the object at ``s3://bucket/key`` (or ``gs://bucket/key``)."""

    def __init__(self, uri: str, *, client_factory: ClientFactory | None = None) -> None:
        self._uri = uri
        self._client_factory = client_factory or client_factory_from_env(uri=uri)
        self._client: RemoteClient | None = None
        self._client_lock = threading.Lock()
        self._reader: CursorSlot[ObjectReader] = CursorSlot("read")
        self._writer: CursorSlot[ObjectWriter] = CursorSlot("write")

    def __repr__(self) -> str:
        return f"S3File({self._uri!r})"

    def __enter__(self) -> S3File:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def uri(self) -> str:
        """Current URI (changes after rename)."""
        return self._uri

    @property
    def read_state(self) -> CursorState:
        return self._reader.state

    @property
    def write_state(self) -> CursorState:
        return self._writer.state

    # --- cursor I/O ---

    def read(self, size: int = -1) -> bytes:
        """
        Read up to size bytes (all remaining when size < 0) from the read cursor.

        Returns b"" at end of stream; the cursor is then finished and later
        calls keep returning b"" without re-opening the object.
        """
        with self._reader.lock:
            if self._reader.state == CursorState.EXHAUSTED:
                return b""
            cursor = self._reader.acquire(self._open_read_cursor)
            try:
                data = cursor.read(None if size is None or size < 0 else size)
            except FileStoreError:
                self._close_quietly(self._reader.release())
                raise
            if not data and size != 0:
                logger.debug("s3-file: uri=%s read cursor exhausted", self._uri)
                self._close_quietly(self._reader.release(CursorState.EXHAUSTED))
            return data

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Read into a writable buffer; returns the number of bytes read (0 at end of stream)."""
        view = memoryview(buffer).cast("B")
        data = self.read(len(view))
        view[: len(data)] = data
        return len(data)

    def write(self, data: bytes) -> int:
        """Append data to the write cursor. Not durable until close()."""
        with self._writer.lock:
            cursor = self._writer.acquire(self._open_write_cursor)
            try:
                return cursor.write(data)
            except FileStoreError:
                # the writer already aborted its upload
                self._writer.release()
                raise

    def _open_read_cursor(self) -> ObjectReader:
        client = self._ensure_client()
        key = require_object_key(self._uri)
        reader = client.open_reader(key.bucket, key.key)
        logger.debug("s3-file: uri=%s read cursor opened", self._uri)
        return reader

    def _open_write_cursor(self) -> ObjectWriter:
        client = self._ensure_client()
        key = require_object_key(self._uri)
        writer = client.open_writer(key.bucket, key.key)
        logger.debug("s3-file: uri=%s write cursor opened", self._uri)
        return writer

    # --- whole-object I/O (independent streams) ---

    def open_reader(self) -> ObjectReader:
        """Open a fresh read stream; the caller must close it."""
        client = self._ensure_client()
        key = require_object_key(self._uri)
        return client.open_reader(key.bucket, key.key)

    def open_writer(self) -> ObjectWriter:
        """Open a fresh write stream; the object is written when the caller closes it."""
        client = self._ensure_client()
        key = require_object_key(self._uri)
        return client.open_writer(key.bucket, key.key)

    def read_all(self) -> bytes:
        """Return the whole object. Raises ObjectNotFoundError or BackendError."""
        reader = self.open_reader()
        try:
            return reader.read()
        finally:
            reader.close()

    def write_all(self, data: bytes) -> int:
        """
        Write data as the whole object and commit it before returning.

        Partial uploads are aborted on failure; an existing object is left as
        the backend leaves it (last successful commit wins).
        """
        writer = self.open_writer()
        try:
            written = writer.write(data)
            writer.close()
        except BaseException:
            writer.abort()
            raise
        logger.debug("s3-file: uri=%s wrote %s byte(s)", self._uri, written)
        return written

    def copy(self, sink: BinaryIO) -> int:
        """Stream the object into sink; returns bytes copied. Reader and sink are always closed."""
        reader: ObjectReader | None = None
        try:
            reader = self.open_reader()
            copied = 0
            while True:
                chunk = reader.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                sink.write(chunk)
                copied += len(chunk)
            return copied
        finally:
            try:
                if reader is not None:
                    reader.close()
            finally:
                sink.close()

    # --- metadata and namespace operations ---

    def stat(self) -> Presence:
        """Probe the object: found (with attributes), not found, or error."""
        try:
            client = self._ensure_client()
            key = require_object_key(self._uri)
            attributes: ObjectAttributes = client.get_attributes(key.bucket, key.key)
        except ObjectNotFoundError:
            return Presence.not_found()
        except FileStoreError as e:
            return Presence.failed(e)
        return Presence.found(attributes)

    def exists(self) -> bool:
        """
        True iff the object's attributes can be fetched.

        Every failure (not found, access denied, network, bad URI) is reported
        as False; use stat() to tell them apart.
        """
        presence = self.stat()
        if presence.error is not None:
            logger.debug("s3-file: uri=%s exists check failed: %s", self._uri, presence.error)
        return bool(presence)

    def delete(self) -> None:
        """Delete the object. Raises ObjectNotFoundError if it does not exist."""
        client = self._ensure_client()
        key = require_object_key(self._uri)
        # DeleteObject succeeds for missing keys, so check first
        client.get_attributes(key.bucket, key.key)
        client.delete(key.bucket, key.key)
        logger.info("s3-file: uri=%s deleted", self._uri)

    def rename(self, pattern: str) -> str:
        """
        Move the object to the URI rendered from pattern and return it.

        {{path}}, {{file}} and {{ext}} expand to the parts of the current URI,
        e.g. "{{path}}/renamed.{{ext}}". Object stores have no rename, so this copies to the
        new key and then deletes the old one:

        - copy fails: only the original exists, the error is raised as is;
        - delete fails: both objects exist, RenameDuplicateError is raised and
          the handle keeps its old URI.

        Open cursors are finished first (a pending write is committed).
        """
        new_uri = render_rename_pattern(self._uri, pattern)
        src = require_object_key(self._uri)
        dst = require_object_key(new_uri)
        if src == dst:
            return self._uri
        if src.scheme != dst.scheme:
            raise MalformedPatternError(
                f"rename cannot move {self._uri} to another backend: {new_uri}", uri=self._uri
            )
        client = self._ensure_client()
        self._finish_open_cursors()

        client.copy(src.bucket, src.key, dst.bucket, dst.key)
        try:
            client.delete(src.bucket, src.key)
        except FileStoreError as e:
            logger.warning(
                "s3-file: rename left a duplicate: source=%s destination=%s error=%s",
                self._uri,
                new_uri,
                e,
            )
            raise RenameDuplicateError(
                f"rename copied {self._uri} to {new_uri} but could not delete the source; "
                f"both objects now exist: {e}",
                source_uri=self._uri,
                destination_uri=new_uri,
            ) from e

        logger.info("s3-file: renamed %s -> %s", self._uri, new_uri)
        self._uri = new_uri
        return new_uri

    def _finish_open_cursors(self) -> None:
        if self._writer.state == CursorState.OPEN:
            writer = self._writer.release()
            if writer is not None:
                writer.close()
        if self._reader.state == CursorState.OPEN:
            self._close_quietly(self._reader.release())

    # --- client lifecycle ---

    def _ensure_client(self) -> RemoteClient:
        with self._client_lock:
            if self._client is None:
                self._client = create_client(self._client_factory, uri=self._uri)
            return self._client

    def close(self) -> None:
        """
        Commit a pending write, close the read cursor and release the client.

        Cursors cannot be reopened afterwards. Safe to call more than once.
        """
        writer = self._writer.release()
        reader = self._reader.release()
        try:
            if writer is not None:
                writer.close()
        finally:
            self._close_quietly(reader)
            with self._client_lock:
                client, self._client = self._client, None
            if client is not None:
                client.close()

    def _close_quietly(self, reader: ObjectReader | None) -> None:
        if reader is None:
            return
        try:
            reader.close()
        except Exception as e:
            logger.warning("s3-file: uri=%s closing read stream failed: %s", self._uri, e)
