"""
Defines custom exceptions for the cache manager to allow for more specific error
handling.
"""


class LessonCacheError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(LessonCacheError):
    """Raised for issues related to configuration loading or validation."""


class InvalidContentError(LessonCacheError):
    """Raised when a content descriptor cannot be cached (bad id, bad payload)."""


class MediaFetchError(LessonCacheError):
    """Raised when a media file cannot be fetched after all attempts."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch '{url}': {reason}")
        self.url = url
        self.reason = reason


class IndexPersistenceError(LessonCacheError):
    """Raised when the local cache index cannot be read or written."""


class RemoteSyncError(LessonCacheError):
    """Raised by record stores when a remote partial update fails."""
