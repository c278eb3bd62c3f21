"""
Pydantic model for the cache manager configuration.
Provides validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_INDEX_KEY = "@offline_content"
DEFAULT_CONTENT_COLLECTION = "content"


class CacheConfig(BaseModel):
    """A validated configuration model for the offline cache."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Local storage
    download_dir: Path
    index_path: Path
    index_key: str = DEFAULT_INDEX_KEY

    # Fetching
    max_concurrent_fetches: int = 8
    fetch_attempts: int = 3
    retry_base_delay: float = 1.5

    # Remote flag mirror (Firestore)
    remote_sync: bool = True
    content_collection: str = DEFAULT_CONTENT_COLLECTION
    firebase_credentials: str = ""
    firebase_project_id: str = ""

    # Logging
    log_dir: str = ""

    # Internal fields not loaded from INI file
    config_path: str = Field("", repr=False)

    @field_validator("download_dir", "index_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expands '~' so every stored local path is absolute."""
        return v.expanduser().absolute()

    @field_validator("index_key", "content_collection")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Value cannot be empty.")
        return v

    @field_validator("max_concurrent_fetches")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of parallel fetches."""
        if v < 1 or v > 32:
            raise ValueError("Max concurrent fetches must be between 1 and 32.")
        return v

    @field_validator("fetch_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError("Fetch attempts must be between 1 and 10.")
        return v

    @field_validator("retry_base_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry base delay cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_index_location(self) -> "CacheConfig":
        """The index file must not live inside a content directory."""
        try:
            self.index_path.relative_to(self.download_dir)
        except ValueError:
            return self
        raise ValueError(
            "The index file cannot be stored inside the download directory."
        )

    @property
    def staging_dir(self) -> Path:
        """Where in-flight downloads are assembled before being moved in place."""
        return self.download_dir / ".staging"

    @property
    def json_log_dir(self) -> Path | None:
        return Path(self.log_dir).expanduser() if self.log_dir else None

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
