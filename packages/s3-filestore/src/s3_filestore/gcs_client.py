"""GCS implementation of RemoteClient for gs:// (and gcs://) URIs, via google-cloud-storage."""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Iterator
from typing import Any

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.credentials import AnonymousCredentials
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage as gcs_storage
from requests.exceptions import RequestException, Timeout

from .config import (
    DEFAULT_UPLOAD_PART_SIZE_BYTES,
    REQUEST_TIMEOUT_SECONDS,
    FileStoreSettings,
    get_settings,
)
from .deadline import Deadline
from .errors import (
    BackendError,
    ClientInitError,
    FileStoreError,
    ListingTimeoutError,
    ObjectNotFoundError,
)
from .models import GCS_SCHEME, ObjectAttributes
from .uri import build_uri

logger = logging.getLogger(__name__)

# Resumable upload chunks must be multiples of 256 KiB
UPLOAD_CHUNK_ALIGNMENT = 256 * 1024
EMULATOR_PROJECT = "local-emulator"

GCS_ERRORS = (GoogleAPIError, GoogleAuthError, RequestException)


def translate_gcs_error(e: Exception, action: str, uri: str) -> FileStoreError:
    """Map a google-cloud-storage exception to ObjectNotFoundError or BackendError."""
    if isinstance(e, NotFound):
        return ObjectNotFoundError(f"{action}: {uri} not found", uri=uri)
    return BackendError(f"{action} {uri} failed: {e}", uri=uri)


def aligned_chunk_size(part_size: int) -> int:
    """Round part_size down to a multiple of UPLOAD_CHUNK_ALIGNMENT."""
    return max(UPLOAD_CHUNK_ALIGNMENT, part_size - part_size % UPLOAD_CHUNK_ALIGNMENT)


def _gs_uri(bucket: str, key: str) -> str:
    return build_uri(bucket, key, GCS_SCHEME)


class GCSObjectReader:
    """ObjectReader over a BlobReader."""

    def __init__(self, stream: Any, uri: str) -> None:
        self._stream = stream
        self._uri = uri

    def read(self, amt: int | None = None) -> bytes:
        try:
            return self._stream.read(-1 if amt is None else amt)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "read", self._uri) from e

    def close(self) -> None:
        self._stream.close()


class GCSObjectWriter:
    """
    ObjectWriter that spools data locally and uploads it on close().

    The spool stays in memory up to one part and spills to a temporary file
    beyond that. close() uploads it (resumable, in part-sized chunks, for large
    payloads); abort() discards it, so nothing is ever committed.
    """

    def __init__(
        self, blob: Any, uri: str, *, part_size: int = DEFAULT_UPLOAD_PART_SIZE_BYTES
    ) -> None:
        self._blob = blob
        self._uri = uri
        self._part_size = aligned_chunk_size(part_size)
        self._spool = tempfile.SpooledTemporaryFile(max_size=self._part_size)
        self._size = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError(f"write to closed writer for {self._uri}")
        self._spool.write(data)
        self._size += len(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._spool.seek(0)
            if self._size > self._part_size:
                self._blob.chunk_size = self._part_size
            self._blob.upload_from_file(self._spool, size=self._size, retry=None)
            logger.debug("gcs writer: uri=%s uploaded %s byte(s)", self._uri, self._size)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "commit", self._uri) from e
        finally:
            self._spool.close()

    def abort(self) -> None:
        self._closed = True
        self._spool.close()


class GCSRemoteClient:
    """RemoteClient implementation using Google Cloud Storage. No retries."""

    def __init__(
        self,
        client: Any,
        *,
        upload_part_size: int = DEFAULT_UPLOAD_PART_SIZE_BYTES,
    ) -> None:
        self._client = client
        self._upload_part_size = upload_part_size
        self._closed = False

    @classmethod
    def from_settings(cls, settings: FileStoreSettings | None = None) -> GCSRemoteClient:
        """Build a storage.Client (default credentials, or anonymous for an emulator)."""
        settings = settings or get_settings()
        project = settings.google_cloud_project.strip() or None
        try:
            if settings.use_emulator:
                client = gcs_storage.Client(
                    project=project or EMULATOR_PROJECT,
                    credentials=AnonymousCredentials(),
                    client_options={"api_endpoint": settings.emulator_url},
                )
            else:
                client = gcs_storage.Client(project=project)
        except (GoogleAuthError, ValueError, OSError) as e:
            raise ClientInitError(f"could not create GCS client: {e}") from e
        return cls(client, upload_part_size=settings.filestore_upload_part_size_bytes)

    def open_reader(self, bucket: str, key: str) -> GCSObjectReader:
        uri = _gs_uri(bucket, key)
        blob = self._client.bucket(bucket).blob(key)
        try:
            # fail here, not on first read, when the object is missing
            blob.reload(retry=None)
            stream = blob.open("rb", retry=None)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "open reader", uri) from e
        return GCSObjectReader(stream, uri)

    def open_writer(self, bucket: str, key: str) -> GCSObjectWriter:
        blob = self._client.bucket(bucket).blob(key)
        return GCSObjectWriter(blob, _gs_uri(bucket, key), part_size=self._upload_part_size)

    def get_attributes(self, bucket: str, key: str) -> ObjectAttributes:
        uri = _gs_uri(bucket, key)
        try:
            blob = self._client.bucket(bucket).get_blob(key, retry=None)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "head", uri) from e
        if blob is None:
            raise ObjectNotFoundError(f"head: {uri} not found", uri=uri)
        return self._attributes(bucket, blob)

    def delete(self, bucket: str, key: str) -> None:
        try:
            self._client.bucket(bucket).delete_blob(key, retry=None)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "delete", _gs_uri(bucket, key)) from e

    def copy(self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str) -> None:
        """Server-side rewrite; large objects take several rewrite calls."""
        source = self._client.bucket(src_bucket).blob(src_key)
        destination = self._client.bucket(dst_bucket).blob(dst_key)
        try:
            token, _, _ = destination.rewrite(source, retry=None)
            while token is not None:
                token, _, _ = destination.rewrite(source, token=token, retry=None)
        except GCS_ERRORS as e:
            raise translate_gcs_error(e, "copy", _gs_uri(src_bucket, src_key)) from e

    def list_pages(
        self,
        bucket: str,
        prefix: str,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[list[ObjectAttributes]]:
        uri = _gs_uri(bucket, prefix)
        token: str | None = None
        while True:
            timeout = REQUEST_TIMEOUT_SECONDS
            if deadline is not None:
                deadline.check("list", uri=uri)
                timeout = min(timeout, deadline.remaining())
            try:
                blobs = self._client.list_blobs(
                    bucket,
                    prefix=prefix or None,
                    page_token=token,
                    timeout=timeout,
                    retry=None,
                )
                page = next(blobs.pages, None)
                items = [] if page is None else [self._attributes(bucket, b) for b in page]
            except Timeout as e:
                raise ListingTimeoutError(f"list {uri} timed out: {e}", uri=uri) from e
            except NotFound as e:
                # a missing bucket is not a missing object
                raise BackendError(f"list {uri} failed: {e}", uri=uri) from e
            except GCS_ERRORS as e:
                raise translate_gcs_error(e, "list", uri) from e
            yield items
            token = blobs.next_page_token
            if not token:
                return

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()

    @staticmethod
    def _attributes(bucket: str, blob: Any) -> ObjectAttributes:
        return ObjectAttributes(
            scheme=GCS_SCHEME,
            bucket=bucket,
            key=blob.name,
            size=blob.size or 0,
            etag=blob.etag,
            last_modified=blob.updated,
            content_type=blob.content_type,
        )
