"""
lesson-cache: offline content cache for learning bundles.

Pulls a content record and its media files into local storage and keeps an
index of what is cached, mirrored into the remote content store.
"""

__version__ = "0.3.0"
