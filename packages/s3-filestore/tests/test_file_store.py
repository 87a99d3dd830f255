"""Tests for S3FileStore: listing, filtering, placeholders, timeout, delegation."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from s3_filestore import (
    ClientInitError,
    FileStoreError,
    InvalidFilterError,
    InvalidTimeoutError,
    ListingTimeoutError,
    ObjectAttributes,
    ObjectNotFoundError,
    S3File,
    S3FileStore,
)
from s3_filestore.file_store import compile_filter, listing_prefix

OBJECTS = {
    "dir/a.txt": b"alpha",
    "dir/b.csv": b"id,name\n1,b\n",
    "dir/sub/c.txt": b"gamma",
    "dir/placeholder/": b"",
    "dirx/other.txt": b"outside",
    "top.txt": b"top",
}


@pytest.fixture
def populated_bucket(s3, s3_bucket):
    for key, body in OBJECTS.items():
        s3.put_object(Bucket=s3_bucket, Key=key, Body=body)
    return s3_bucket


@pytest.fixture
def store(populated_bucket, client_factory):
    s = S3FileStore(f"s3://{populated_bucket}/dir", client_factory=client_factory)
    yield s
    s.close()


def _attrs(key: str, size: int) -> ObjectAttributes:
    return ObjectAttributes(bucket="b", key=key, size=size)


class FakeClient:
    """RemoteClient returning canned listing pages."""

    def __init__(self, pages: list[list[ObjectAttributes]]) -> None:
        self.pages = pages
        self.listed: list[tuple[str, str]] = []
        self.closed = False

    def list_pages(self, bucket, prefix, *, deadline=None):
        self.listed.append((bucket, prefix))
        for page in self.pages:
            if deadline is not None:
                deadline.check("list")
            yield page

    def close(self) -> None:
        self.closed = True


class StallingClient(FakeClient):
    """Serves the first page, then blocks on the next request until released."""

    def __init__(self, first_page: list[ObjectAttributes]) -> None:
        super().__init__([first_page])
        self.release = threading.Event()

    def list_pages(self, bucket, prefix, *, deadline=None):
        yield from super().list_pages(bucket, prefix, deadline=deadline)
        self.release.wait(timeout=30)
        yield [_attrs("dir/late.txt", 1)]


def test_listing_prefix() -> None:
    assert listing_prefix("dir") == "dir/"
    assert listing_prefix("dir/") == "dir/"
    assert listing_prefix("/a/b/") == "a/b/"
    assert listing_prefix("") == ""


def test_compile_filter() -> None:
    assert compile_filter("") is None
    assert compile_filter(r"\.txt$").search("s3://b/x.txt")
    with pytest.raises(InvalidFilterError):
        compile_filter("([")


class TestList:
    def test_list_all_returns_each_real_object_once(self, store, populated_bucket) -> None:
        files = store.list("")
        assert all(isinstance(f, S3File) for f in files)
        assert [f.uri for f in files] == [
            f"s3://{populated_bucket}/dir/a.txt",
            f"s3://{populated_bucket}/dir/b.csv",
            f"s3://{populated_bucket}/dir/sub/c.txt",
        ]

    def test_list_with_filter_returns_matching_subset(self, store, populated_bucket) -> None:
        uris = [f.uri for f in store.list(r"\.txt$")]
        assert uris == [
            f"s3://{populated_bucket}/dir/a.txt",
            f"s3://{populated_bucket}/dir/sub/c.txt",
        ]

    def test_filter_matches_full_uri(self, store, populated_bucket) -> None:
        uris = [f.uri for f in store.list(f"^s3://{populated_bucket}/dir/sub/")]
        assert uris == [f"s3://{populated_bucket}/dir/sub/c.txt"]

    def test_listed_handles_are_usable(self, store) -> None:
        files = store.list(r"b\.csv$")
        assert len(files) == 1
        with files[0] as f:
            assert f.read_all() == b"id,name\n1,b\n"

    @pytest.mark.parametrize("key", ["dir/a#1.txt", "dir/q?v=1.txt", "dir/sp ace.txt"])
    def test_keys_with_url_delimiters_list_and_read_back(
        self, s3, populated_bucket, client_factory, key
    ) -> None:
        s3.put_object(Bucket=populated_bucket, Key=key, Body=key.encode())
        with S3FileStore(f"s3://{populated_bucket}/dir", client_factory=client_factory) as s:
            matches = [f for f in s.list() if f.uri == f"s3://{populated_bucket}/{key}"]
            assert len(matches) == 1
            with matches[0] as f:
                assert f.read_all() == key.encode()
            assert s.exists(key.removeprefix("dir/")) is True

    def test_bucket_root_store_lists_everything(self, populated_bucket, client_factory) -> None:
        with S3FileStore(f"s3://{populated_bucket}", client_factory=client_factory) as s:
            assert len(s.list()) == 5


class TestApply:
    def test_apply_returns_visit_count(self, store) -> None:
        visited: list[str] = []
        assert store.apply("", visited.append) == 3
        assert len(visited) == 3

    def test_zero_size_placeholders_are_skipped(self) -> None:
        client = FakeClient([[_attrs("dir/", 0), _attrs("dir/real.txt", 4)]])
        s = S3FileStore("s3://b/dir", client_factory=lambda: client)
        visit = MagicMock()
        s.apply("", visit)
        visit.assert_called_once_with("s3://b/dir/real.txt")
        assert client.listed == [("b", "dir/")]

    def test_invalid_filter_fails_before_listing(self) -> None:
        factory = MagicMock()
        s = S3FileStore("s3://b/dir", client_factory=factory)
        factory.reset_mock()
        visit = MagicMock()
        with pytest.raises(InvalidFilterError):
            s.apply("(unclosed", visit)
        visit.assert_not_called()
        factory.assert_not_called()

    def test_transient_client_is_closed(self) -> None:
        clients: list[FakeClient] = []

        def factory():
            clients.append(FakeClient([[_attrs("dir/x", 1)]]))
            return clients[-1]

        s = S3FileStore("s3://b/dir", client_factory=factory)
        s.apply("", lambda uri: None)
        eager, transient = clients
        assert transient.closed
        assert not eager.closed
        s.close()
        assert eager.closed

    def test_transient_client_is_closed_when_visit_fails(self) -> None:
        client = FakeClient([[_attrs("dir/x", 1)]])
        s = S3FileStore("s3://b/dir", client_factory=lambda: client)
        with pytest.raises(RuntimeError):
            s.apply("", MagicMock(side_effect=RuntimeError("visitor failed")))
        assert client.closed

    def test_timeout_keeps_earlier_visits(self) -> None:
        client = FakeClient(
            [
                [_attrs("dir/1", 1), _attrs("dir/2", 1)],
                [_attrs("dir/3", 1), _attrs("dir/4", 1)],
            ]
        )
        s = S3FileStore("s3://b/dir", client_factory=lambda: client)
        clock = [0.0]
        visited: list[str] = []

        def visit(uri: str) -> None:
            visited.append(uri)
            clock[0] += 50.0

        with patch("s3_filestore.deadline.time.monotonic", side_effect=lambda: clock[0]):
            with pytest.raises(ListingTimeoutError):
                s.apply("", visit, timeout=120)
        assert visited == ["s3://b/dir/1", "s3://b/dir/2", "s3://b/dir/3"]
        assert client.closed

    def test_stalled_page_request_is_abandoned_at_deadline(self) -> None:
        client = StallingClient([_attrs("dir/1", 1), _attrs("dir/2", 1)])
        s = S3FileStore("s3://b/dir", client_factory=lambda: client)
        visited: list[str] = []
        started = time.monotonic()
        try:
            with pytest.raises(ListingTimeoutError, match="deadline"):
                s.apply("", visited.append, timeout=0.3)
            elapsed = time.monotonic() - started
        finally:
            client.release.set()
        assert elapsed < 5
        assert visited == ["s3://b/dir/1", "s3://b/dir/2"]
        assert client.closed

    @pytest.mark.parametrize("timeout", [0, -1])
    def test_non_positive_timeout_is_rejected_before_listing(self, timeout) -> None:
        factory = MagicMock()
        s = S3FileStore("s3://b/dir", client_factory=factory)
        factory.reset_mock()
        with pytest.raises(InvalidTimeoutError) as excinfo:
            s.apply("", MagicMock(), timeout=timeout)
        assert isinstance(excinfo.value, FileStoreError)
        assert excinfo.value.uri == "s3://b/dir"
        factory.assert_not_called()

    def test_non_positive_store_timeout_is_rejected(self) -> None:
        s = S3FileStore("s3://b/dir", client_factory=MagicMock(), listing_timeout=-1)
        with pytest.raises(InvalidTimeoutError):
            s.list()

    def test_store_timeout_default_is_used(self) -> None:
        client = FakeClient([[_attrs("dir/1", 1)]])
        s = S3FileStore("s3://b/dir", client_factory=lambda: client, listing_timeout=5)
        with patch("s3_filestore.file_store.Deadline") as deadline_cls:
            deadline_cls.return_value.expired = False
            deadline_cls.return_value.remaining.return_value = 5.0
            s.apply("", lambda uri: None)
        deadline_cls.assert_called_once_with(5)

    def test_client_init_failure(self) -> None:
        def factory():
            raise RuntimeError("no credentials")

        s = S3FileStore("s3://b/dir", client_factory=factory)
        with pytest.raises(ClientInitError):
            s.apply("", lambda uri: None)
        s.close()


class TestDelegation:
    def test_exists_relative_and_absolute(self, store, populated_bucket) -> None:
        assert store.exists("a.txt") is True
        assert store.exists("sub/c.txt") is True
        assert store.exists(f"s3://{populated_bucket}/top.txt") is True
        assert store.exists("missing.txt") is False

    def test_delete_relative_name(self, store, populated_bucket) -> None:
        store.delete("a.txt")
        assert store.exists("a.txt") is False
        assert [f.uri for f in store.list(r"a\.txt$")] == []

    def test_delete_absolute_uri(self, store, populated_bucket) -> None:
        store.delete(f"s3://{populated_bucket}/top.txt")
        assert store.exists(f"s3://{populated_bucket}/top.txt") is False

    def test_delete_missing(self, store) -> None:
        with pytest.raises(ObjectNotFoundError):
            store.delete("missing.txt")

    def test_close_is_idempotent(self) -> None:
        client = MagicMock()
        s = S3FileStore("s3://b/dir", client_factory=lambda: client)
        s.close()
        s.close()
        client.close.assert_called_once()


class TestGCSStore:
    def test_listing_builds_gs_uris(self) -> None:
        client = FakeClient([[_attrs("media/a.mp4", 10), _attrs("media/", 0)]])
        s = S3FileStore("gs://b/media", client_factory=lambda: client)
        visited: list[str] = []
        assert s.apply("", visited.append) == 1
        assert visited == ["gs://b/media/a.mp4"]

    def test_gcs_alias_lists_with_canonical_scheme(self) -> None:
        client = FakeClient([[_attrs("media/a.mp4", 10)]])
        s = S3FileStore("gcs://b/media", client_factory=lambda: client)
        assert [f.uri for f in s.list()] == ["gs://b/media/a.mp4"]

    def test_absolute_uri_on_other_backend_gets_its_own_client(self) -> None:
        store_factory = MagicMock()
        s = S3FileStore("gs://b/media", client_factory=store_factory)
        other_factory = MagicMock()
        other_factory.return_value.get_attributes.side_effect = ObjectNotFoundError("gone")
        with patch(
            "s3_filestore.file_store.client_factory_from_env", return_value=other_factory
        ) as from_env:
            assert s.exists("s3://other/x.txt") is False
        from_env.assert_called_once_with(uri="s3://other/x.txt")
        other_factory.assert_called_once()
        assert store_factory.return_value.get_attributes.call_count == 0
