"""S3 implementation of RemoteClient, ObjectReader and ObjectWriter."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

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
from .interfaces import ClientFactory, RemoteClient
from .models import ObjectAttributes
from .uri import build_uri

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

# One attempt per call: failures surface to the caller, who decides about retries.
_NO_RETRIES = {"mode": "standard", "total_max_attempts": 1}


def translate_error(e: Exception, action: str, uri: str) -> FileStoreError:
    """Map a botocore exception to ObjectNotFoundError or BackendError."""
    if isinstance(e, ClientError):
        code = str(e.response.get("Error", {}).get("Code", ""))
        if code in NOT_FOUND_CODES:
            return ObjectNotFoundError(f"{action}: {uri} not found", uri=uri)
    return BackendError(f"{action} {uri} failed: {e}", uri=uri)


def create_client(factory: ClientFactory, *, uri: str | None = None) -> RemoteClient:
    """Call a client factory; any failure becomes ClientInitError."""
    try:
        return factory()
    except ClientInitError:
        raise
    except Exception as e:
        raise ClientInitError(f"could not create remote client: {e}", uri=uri) from e


class S3ObjectReader:
    """ObjectReader over a GetObject response body."""

    def __init__(self, body: Any, uri: str) -> None:
        self._body = body
        self._uri = uri

    def read(self, amt: int | None = None) -> bytes:
        try:
            return self._body.read(amt)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, "read", self._uri) from e

    def close(self) -> None:
        self._body.close()


class S3ObjectWriter:
    """
    ObjectWriter that buffers in memory and uploads on close().

    Small payloads are sent with a single PutObject. Once a full part is
    buffered the writer switches to the multipart API and uploads parts as they
    fill; close() uploads the tail and completes the upload. Any failure aborts
    the multipart upload so no parts are left behind.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        key: str,
        *,
        part_size: int = DEFAULT_UPLOAD_PART_SIZE_BYTES,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._key = key
        self._uri = build_uri(bucket, key)
        self._part_size = part_size
        self._buffer = bytearray()
        self._upload_id: str | None = None
        self._parts: list[dict] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError(f"write to closed writer for {self._uri}")
        self._buffer.extend(data)
        while len(self._buffer) >= self._part_size:
            chunk = bytes(self._buffer[: self._part_size])
            del self._buffer[: self._part_size]
            self._upload_part(chunk)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._upload_id is None:
                self._client.put_object(
                    Bucket=self._bucket, Key=self._key, Body=bytes(self._buffer)
                )
            else:
                if self._buffer:
                    self._upload_part(bytes(self._buffer))
                self._client.complete_multipart_upload(
                    Bucket=self._bucket,
                    Key=self._key,
                    UploadId=self._upload_id,
                    MultipartUpload={"Parts": self._parts},
                )
                self._upload_id = None
                logger.debug("s3 writer: uri=%s completed %s part(s)", self._uri, len(self._parts))
        except (BotoCoreError, ClientError) as e:
            self.abort()
            raise translate_error(e, "commit", self._uri) from e
        finally:
            self._buffer.clear()

    def abort(self) -> None:
        self._closed = True
        self._buffer.clear()
        if self._upload_id is None:
            return
        upload_id, self._upload_id = self._upload_id, None
        try:
            self._client.abort_multipart_upload(
                Bucket=self._bucket, Key=self._key, UploadId=upload_id
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(
                "s3 writer: uri=%s abort multipart upload %s failed: %s", self._uri, upload_id, e
            )

    def _upload_part(self, chunk: bytes) -> None:
        try:
            if self._upload_id is None:
                resp = self._client.create_multipart_upload(Bucket=self._bucket, Key=self._key)
                self._upload_id = resp["UploadId"]
            part_number = len(self._parts) + 1
            part_resp = self._client.upload_part(
                Bucket=self._bucket,
                Key=self._key,
                UploadId=self._upload_id,
                PartNumber=part_number,
                Body=chunk,
            )
        except (BotoCoreError, ClientError) as e:
            self.abort()
            raise translate_error(e, "upload part", self._uri) from e
        self._parts.append({"ETag": part_resp["ETag"], "PartNumber": part_number})


class S3RemoteClient:
    """RemoteClient implementation using S3."""

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
    def from_settings(cls, settings: FileStoreSettings | None = None) -> S3RemoteClient:
        """Build a boto3 S3 client (default credential chain, or unsigned for an emulator)."""
        settings = settings or get_settings()
        config_kwargs: dict[str, Any] = {
            "retries": dict(_NO_RETRIES),
            "connect_timeout": REQUEST_TIMEOUT_SECONDS,
            "read_timeout": REQUEST_TIMEOUT_SECONDS,
        }
        if settings.use_emulator:
            config_kwargs["signature_version"] = UNSIGNED
            config_kwargs["s3"] = {"addressing_style": "path"}
        try:
            client = boto3.client(
                "s3",
                region_name=settings.aws_region,
                endpoint_url=settings.endpoint_url,
                config=Config(**config_kwargs),
            )
        except (BotoCoreError, ValueError) as e:
            raise ClientInitError(f"could not create S3 client: {e}") from e
        return cls(client, upload_part_size=settings.filestore_upload_part_size_bytes)

    def open_reader(self, bucket: str, key: str) -> S3ObjectReader:
        uri = build_uri(bucket, key)
        try:
            resp = self._client.get_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, "open reader", uri) from e
        return S3ObjectReader(resp["Body"], uri)

    def open_writer(self, bucket: str, key: str) -> S3ObjectWriter:
        return S3ObjectWriter(self._client, bucket, key, part_size=self._upload_part_size)

    def get_attributes(self, bucket: str, key: str) -> ObjectAttributes:
        try:
            resp = self._client.head_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, "head", build_uri(bucket, key)) from e
        return ObjectAttributes(
            bucket=bucket,
            key=key,
            size=resp.get("ContentLength", 0),
            etag=resp.get("ETag"),
            last_modified=resp.get("LastModified"),
            content_type=resp.get("ContentType"),
        )

    def delete(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, "delete", build_uri(bucket, key)) from e

    def copy(self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str) -> None:
        """Server-side managed copy (boto3 switches to multipart copy for large objects)."""
        try:
            self._client.copy(
                CopySource={"Bucket": src_bucket, "Key": src_key},
                Bucket=dst_bucket,
                Key=dst_key,
            )
        except (BotoCoreError, ClientError) as e:
            raise translate_error(e, "copy", build_uri(src_bucket, src_key)) from e

    def list_pages(
        self,
        bucket: str,
        prefix: str,
        *,
        deadline: Deadline | None = None,
    ) -> Iterator[list[ObjectAttributes]]:
        uri = build_uri(bucket, prefix)
        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=bucket, Prefix=prefix))
        while True:
            if deadline is not None:
                deadline.check("list", uri=uri)
            try:
                page = next(pages)
            except StopIteration:
                return
            except (ConnectTimeoutError, ReadTimeoutError) as e:
                raise ListingTimeoutError(f"list {uri} timed out: {e}", uri=uri) from e
            except (BotoCoreError, ClientError) as e:
                raise translate_error(e, "list", uri) from e
            yield [
                ObjectAttributes(
                    bucket=bucket,
                    key=obj["Key"],
                    size=obj.get("Size", 0),
                    etag=obj.get("ETag"),
                    last_modified=obj.get("LastModified"),
                )
                for obj in page.get("Contents", []) or []
            ]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()
