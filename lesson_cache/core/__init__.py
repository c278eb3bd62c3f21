"""
Core cache engine.

The `OfflineManager` coordinates the media fetcher, the local cache index and
the remote flag synchronizer behind a small async API.
"""

from .offline_manager import OfflineManager

__all__ = ["OfflineManager"]
