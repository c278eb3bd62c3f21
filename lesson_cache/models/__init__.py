"""
Data Models Layer.

This package contains the Pydantic models and dataclasses that define the core
data structures: configuration, content descriptors, cached records and
integrity reports.
"""

from .config import CacheConfig
from .content import CachedMediaEntry, ContentDescriptor, OfflineContentRecord
from .report import IntegrityReport

__all__ = [
    "CacheConfig",
    "CachedMediaEntry",
    "ContentDescriptor",
    "IntegrityReport",
    "OfflineContentRecord",
]
