"""Pydantic models for object identity, object attributes and existence checks."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

CANONICAL_SCHEME = "s3"
GCS_SCHEME = "gs"


class ObjectKey(BaseModel):
    """Bucket + object key parsed from a store URI. The key never starts with '/'."""

    model_config = ConfigDict(frozen=True)

    scheme: str = CANONICAL_SCHEME
    bucket: str = Field(..., min_length=1)
    key: str = ""

    @property
    def uri(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.key}"


class ObjectAttributes(BaseModel):
    """Metadata of one object (HeadObject response or listing entry)."""

    scheme: str = CANONICAL_SCHEME
    bucket: str
    key: str
    size: int = Field(0, ge=0)
    etag: str | None = None
    last_modified: datetime | None = None
    content_type: str | None = None

    @property
    def uri(self) -> str:
        return f"{self.scheme}://{self.bucket}/{self.key}"


class PresenceState(str, Enum):
    """Outcome of an existence check before it is collapsed to a bool."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


class Presence(BaseModel):
    """Result of S3File.stat(): found (with attributes), not found, or failed (with the error)."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: PresenceState
    attributes: ObjectAttributes | None = None
    error: Exception | None = None

    @classmethod
    def found(cls, attributes: ObjectAttributes) -> "Presence":
        return cls(state=PresenceState.FOUND, attributes=attributes)

    @classmethod
    def not_found(cls) -> "Presence":
        return cls(state=PresenceState.NOT_FOUND)

    @classmethod
    def failed(cls, error: Exception) -> "Presence":
        return cls(state=PresenceState.ERROR, error=error)

    def __bool__(self) -> bool:
        return self.state == PresenceState.FOUND
