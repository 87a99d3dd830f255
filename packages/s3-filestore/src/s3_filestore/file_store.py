"""
S3FileStore: a bucket + prefix (s3:// or gs://) viewed as a directory of S3File handles.

Directories are synthetic: listing enumerates every key under ``prefix/`` and
skips zero-size keys (folder placeholders created by consoles and sync tools).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from .client import create_client
from .config import get_settings
from .deadline import Deadline
from .env_config import backend_scheme, client_factory_from_env
from .errors import (
    ClientInitError,
    InvalidFilterError,
    InvalidTimeoutError,
    ListingTimeoutError,
)
from .file import S3File
from .interfaces import ClientFactory, RemoteClient
from .models import ObjectAttributes
from .uri import build_uri, parse_uri, resolve_uri, uri_scheme

logger = logging.getLogger(__name__)


def compile_filter(filter_pattern: str) -> re.Pattern[str] | None:
    """Compile a listing filter; empty means no filtering."""
    if not filter_pattern:
        return None
    try:
        return re.compile(filter_pattern)
    except re.error as e:
        raise InvalidFilterError(f"invalid filter {filter_pattern!r}: {e}") from e


def listing_prefix(prefix: str) -> str:
    """Key prefix to list for a store prefix: 'a' and 'a/' both list 'a/'; '' lists the bucket."""
    stripped = prefix.strip("/")
    return f"{stripped}/" if stripped else ""


class S3FileStore:
    """File store over ``s3://bucket/prefix``. Holds no object content."""

    def __init__(
        self,
        uri: str,
        *,
        client_factory: ClientFactory | None = None,
        listing_timeout: float | None = None,
    ) -> None:
        self._uri = uri
        self._client_factory = client_factory or client_factory_from_env(uri=uri)
        self._listing_timeout = listing_timeout
        self._client: RemoteClient | None = None
        try:
            self._client = create_client(self._client_factory, uri=uri)
        except ClientInitError as e:
            # apply() uses its own client; the store stays usable
            logger.warning("s3-file-store: uri=%s could not create client: %s", uri, e)

    def __repr__(self) -> str:
        return f"S3FileStore({self._uri!r})"

    def __enter__(self) -> S3FileStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def uri(self) -> str:
        return self._uri

    def apply(
        self,
        filter_pattern: str,
        visit: Callable[[str], None],
        *,
        timeout: float | None = None,
    ) -> int:
        """
        Call visit(uri) for every non-empty object under the store prefix.

        filter_pattern is a regular expression searched in the full object URI
        (empty = all objects). Objects are visited in backend order. The whole
        enumeration is bounded by timeout (default: listing_timeout, then
        FILESTORE_LISTING_TIMEOUT_SECONDS); on expiry ListingTimeoutError is
        raised and visits already made stand. A page request still in flight at
        expiry is abandoned rather than waited for.

        Returns the number of visited objects.
        """
        bucket, prefix = parse_uri(self._uri)
        scheme = uri_scheme(self._uri)
        matcher = compile_filter(filter_pattern)
        deadline = Deadline(self._resolve_timeout(timeout))
        key_prefix = listing_prefix(prefix)

        visited = 0
        skipped = 0
        client = create_client(self._client_factory, uri=self._uri)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="file-store-list")
        try:
            pages = client.list_pages(bucket, key_prefix, deadline=deadline)
            for page in self._pages_within(pages, deadline, executor):
                for attributes in page:
                    if attributes.size <= 0:
                        skipped += 1
                        continue
                    candidate = build_uri(bucket, attributes.key, scheme)
                    if matcher is not None and not matcher.search(candidate):
                        continue
                    deadline.check("apply", uri=self._uri)
                    visit(candidate)
                    visited += 1
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            client.close()
        logger.debug(
            "s3-file-store: uri=%s filter=%r visited=%s skipped_placeholders=%s",
            self._uri,
            filter_pattern,
            visited,
            skipped,
        )
        return visited

    def _pages_within(
        self,
        pages: Iterator[list[ObjectAttributes]],
        deadline: Deadline,
        executor: ThreadPoolExecutor,
    ) -> Iterator[list[ObjectAttributes]]:
        """Fetch each page on the executor, waiting no longer than the deadline allows."""
        while True:
            deadline.check("list", uri=self._uri)
            future = executor.submit(next, pages, None)
            try:
                page = future.result(timeout=deadline.remaining())
            except FutureTimeoutError as e:
                logger.warning(
                    "s3-file-store: uri=%s abandoned a page request at the deadline", self._uri
                )
                raise ListingTimeoutError(
                    f"list exceeded its {deadline.timeout_seconds:g}s deadline", uri=self._uri
                ) from e
            if page is None:
                return
            yield page

    def list(self, filter_pattern: str = "") -> list[S3File]:
        """Return S3File handles for all matching objects, in listing order."""
        files: list[S3File] = []
        self.apply(
            filter_pattern,
            lambda uri: files.append(S3File(uri, client_factory=self._client_factory)),
        )
        return files

    def exists(self, uri_or_name: str) -> bool:
        """
        True if the object exists. Names without a scheme are relative to the store URI.

        Like S3File.exists(), any error is reported as False.
        """
        uri = self._resolve(uri_or_name)
        with S3File(uri, client_factory=self._factory_for(uri)) as f:
            return f.exists()

    def delete(self, uri_or_name: str) -> None:
        """Delete an object by URI or store-relative name. Raises ObjectNotFoundError if absent."""
        uri = self._resolve(uri_or_name)
        with S3File(uri, client_factory=self._factory_for(uri)) as f:
            f.delete()

    def close(self) -> None:
        """Release the store's client. Safe to call more than once."""
        client, self._client = self._client, None
        if client is not None:
            client.close()

    def _resolve(self, uri_or_name: str) -> str:
        return resolve_uri(self._uri, uri_or_name)

    def _factory_for(self, uri: str) -> ClientFactory:
        # absolute URIs may point at the other backend
        if backend_scheme(uri) == backend_scheme(self._uri):
            return self._client_factory
        return client_factory_from_env(uri=uri)

    def _resolve_timeout(self, timeout: float | None) -> float:
        if timeout is None:
            timeout = self._listing_timeout
        if timeout is None:
            return get_settings().filestore_listing_timeout_seconds
        if timeout <= 0:
            raise InvalidTimeoutError(
                f"listing timeout must be positive, got {timeout}s", uri=self._uri
            )
        return timeout
