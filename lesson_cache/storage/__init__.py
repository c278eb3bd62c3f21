"""
Storage Layer.

This package handles all local persistence: the key-value store file, the
cache index kept inside it, and the configuration file.
"""

from .config_manager import ConfigManager
from .index import CacheIndex
from .kv_store import JsonKeyValueStore

__all__ = ["CacheIndex", "ConfigManager", "JsonKeyValueStore"]
