"""
Media Fetching Layer.

This package is responsible for pulling remote media bytes onto local disk.
"""

from .fetcher import MediaFetcher

__all__ = ["MediaFetcher"]
