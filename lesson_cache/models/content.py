"""
Pydantic models for content descriptors and the records stored in the local
cache index.

Persisted and remote field names keep their camelCase wire form through
aliases, so a Firestore document can be validated straight into a
`ContentDescriptor` and the index blob stays readable by other clients.
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Keys the record sets itself; a descriptor carrying them must not shadow them.
_RECORD_OWNED_KEYS = ("mediaUrls", "media_urls", "downloadedAt", "downloaded_at")


def check_content_id(value: str) -> str:
    """
    Ensures a content id can safely name a directory under the download root.

    Names starting with '.' are reserved for the cache's own directories
    (the staging area and the copies set aside during a re-download).

    Raises:
        ValueError: If the id is empty, starts with '.', or contains a path
        separator.
    """
    if not value or not value.strip():
        raise ValueError("Content id cannot be empty.")
    if value.startswith("."):
        raise ValueError(f"Content id '{value}' cannot start with '.'.")
    if "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"Content id '{value}' cannot be used as a directory name.")
    return value


class ContentDescriptor(BaseModel):
    """
    A downloadable learning item as described by the remote store.

    Any field beyond `id` and `mediaUrls` is opaque to the cache and is passed
    through unchanged into the stored record.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    media_urls: list[str] = Field(default_factory=list, alias="mediaUrls")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Accepts numeric ids from loosely typed sources."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return check_content_id(v)

    @field_validator("media_urls", mode="before")
    @classmethod
    def default_media_urls(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("media_urls")
    @classmethod
    def validate_media_urls(cls, v: list[str]) -> list[str]:
        for url in v:
            if not url or not url.strip():
                raise ValueError("Media URLs cannot be empty strings.")
        return v


class CachedMediaEntry(BaseModel):
    """Pairs a remote media URL with the local file it was saved to."""

    model_config = ConfigDict(populate_by_name=True)

    remote_url: str = Field(alias="remoteUrl")
    local_path: str = Field(alias="localPath")


class OfflineContentRecord(BaseModel):
    """A cached copy of a content descriptor with its media resolved locally."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    media_urls: list[CachedMediaEntry] = Field(default_factory=list, alias="mediaUrls")
    downloaded_at: datetime = Field(alias="downloadedAt")

    @classmethod
    def from_descriptor(
        cls,
        descriptor: ContentDescriptor,
        entries: list[CachedMediaEntry],
        downloaded_at: datetime,
    ) -> "OfflineContentRecord":
        """Builds a record from a descriptor, replacing its media URLs."""
        fields = descriptor.model_dump(by_alias=True)
        for key in _RECORD_OWNED_KEYS:
            fields.pop(key, None)
        return cls(**fields, mediaUrls=entries, downloadedAt=downloaded_at)

    @property
    def local_paths(self) -> list[Path]:
        return [Path(entry.local_path) for entry in self.media_urls]

    def to_json_dict(self) -> dict[str, Any]:
        """Serializes the record into its persisted (camelCase) form."""
        return self.model_dump(mode="json", by_alias=True)
