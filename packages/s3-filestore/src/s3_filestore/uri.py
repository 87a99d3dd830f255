"""
Store URI parsing and resolution. Single place for scheme://bucket/key handling.

Buckets have no directories: a "directory" is only a key prefix, and relative
names are joined onto a base URI with '/'. The key is everything after the
first '/' following the bucket, taken verbatim: '#', '?' and spaces are part of
the key, not URL syntax.
"""

import posixpath
import re
from urllib.parse import urlparse

from .errors import InvalidObjectKeyError, MalformedPatternError, MalformedURIError
from .models import CANONICAL_SCHEME, GCS_SCHEME, ObjectKey

S3_SCHEMES = (CANONICAL_SCHEME, "s3a")
GCS_SCHEMES = (GCS_SCHEME, "gcs")
STORE_SCHEMES = S3_SCHEMES + GCS_SCHEMES

PATH_PLACEHOLDER = "{{path}}"
FILE_PLACEHOLDER = "{{file}}"
EXT_PLACEHOLDER = "{{ext}}"

_PLACEHOLDER_RE = re.compile(r"\{\{[^{}]*\}\}")


def has_store_scheme(value: str) -> bool:
    """Return True if value starts with a recognized store scheme (s3://, s3a://, gs://, gcs://)."""
    return any(value.startswith(f"{scheme}://") for scheme in STORE_SCHEMES)


def _split(uri: str) -> tuple[str, str, str]:
    """Return (scheme, bucket, key) or raise MalformedURIError."""
    if not uri or not isinstance(uri, str):
        raise MalformedURIError("URI is required", uri=uri or None)
    scheme, sep, rest = uri.partition("://")
    scheme = scheme.lower()
    if not sep or scheme not in STORE_SCHEMES:
        raise MalformedURIError(f"Unsupported URI scheme in {uri!r}", uri=uri)
    bucket, _, key = rest.partition("/")
    if not bucket:
        raise MalformedURIError(f"URI has no bucket: {uri!r}", uri=uri)
    # urlparse only vets the authority part; it would cut keys at '#' or '?'
    try:
        netloc = urlparse(uri).netloc
    except ValueError as e:
        raise MalformedURIError(f"Cannot parse URI {uri!r}: {e}", uri=uri) from e
    if netloc != bucket:
        raise MalformedURIError(f"Invalid bucket name in {uri!r}", uri=uri)
    return scheme, bucket, key.lstrip("/")


def parse_uri(uri: str) -> tuple[str, str]:
    """
    Split a store URI into (bucket, key).

    Args:
        uri: e.g. s3://my-bucket/path/to/object.txt

    Returns:
        (bucket, key). The key has no leading '/' and is "" for a bucket root.

    Raises:
        MalformedURIError: empty string, unparseable URI, unknown scheme or no bucket.
    """
    _, bucket, key = _split(uri)
    return bucket, key


def uri_scheme(uri: str) -> str:
    """Canonical scheme of uri: "s3" for s3/s3a, "gs" for gs/gcs."""
    scheme, _, _ = _split(uri)
    return GCS_SCHEME if scheme in GCS_SCHEMES else CANONICAL_SCHEME


def require_object_key(uri: str) -> ObjectKey:
    """Like parse_uri but the key must be non-empty (raises InvalidObjectKeyError)."""
    bucket, key = parse_uri(uri)
    if not key:
        raise InvalidObjectKeyError(f"URI has no object key: {uri!r}", uri=uri)
    return ObjectKey(scheme=uri_scheme(uri), bucket=bucket, key=key)


def build_uri(bucket: str, key: str, scheme: str = CANONICAL_SCHEME) -> str:
    """Return scheme://bucket/key (key leading '/' dropped, otherwise verbatim)."""
    return f"{scheme}://{bucket}/{key.lstrip('/')}"


def resolve_uri(base: str, maybe_relative: str) -> str:
    """
    Resolve a name against a base URI.

    Values that already carry a store scheme are returned unchanged; anything
    else is joined onto base with a single '/'.
    """
    if has_store_scheme(maybe_relative):
        return maybe_relative
    return f"{base.rstrip('/')}/{maybe_relative.lstrip('/')}"


def split_uri(uri: str) -> tuple[str, str, str]:
    """
    Split an object URI into (path, file, ext) for rename templates.

    s3://b/dir/file.txt -> ("s3://b/dir", "file", "txt")
    gs://b/file         -> ("gs://b", "file", "")
    """
    scheme, bucket, key = _split(uri)
    if not key:
        raise InvalidObjectKeyError(f"URI has no object key: {uri!r}", uri=uri)
    directory, filename = posixpath.split(key)
    path = f"{scheme}://{bucket}"
    if directory:
        path = f"{path}/{directory}"
    stem, ext = posixpath.splitext(filename)
    return path, stem, ext.lstrip(".")


def render_rename_pattern(uri: str, pattern: str) -> str:
    """
    Render a rename pattern for the object at uri.

    {{path}}, {{file}} and {{ext}} are replaced by the parts of uri (see
    split_uri); other text is kept verbatim. A result without a scheme is
    resolved against the source object's directory. The result must be an
    object URI.
    """
    if not pattern or not pattern.strip():
        raise MalformedPatternError("Rename pattern is required", uri=uri)
    try:
        path, file, ext = split_uri(uri)
    except (MalformedURIError, InvalidObjectKeyError) as e:
        raise MalformedPatternError(f"Cannot split {uri!r} for rename: {e}", uri=uri) from e

    rendered = (
        pattern.replace(PATH_PLACEHOLDER, path)
        .replace(FILE_PLACEHOLDER, file)
        .replace(EXT_PLACEHOLDER, ext)
    )
    leftover = _PLACEHOLDER_RE.search(rendered)
    if leftover:
        raise MalformedPatternError(
            f"Unknown placeholder {leftover.group(0)} in rename pattern {pattern!r}", uri=uri
        )
    if "://" not in rendered:
        # Bare names stay next to the source object.
        rendered = resolve_uri(path, rendered)
    try:
        require_object_key(rendered)
    except (MalformedURIError, InvalidObjectKeyError) as e:
        raise MalformedPatternError(
            f"Rename pattern {pattern!r} renders to invalid URI {rendered!r}", uri=uri
        ) from e
    return rendered
