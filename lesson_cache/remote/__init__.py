"""
Remote Mirror Layer.

This package handles the best-effort mirroring of cache state into the remote
document store (Firestore).
"""

from .record_store import (
    FirestoreRecordStore,
    NullRecordStore,
    RecordStore,
    create_firestore_store,
)
from .sync import RemoteFlagSynchronizer

__all__ = [
    "FirestoreRecordStore",
    "NullRecordStore",
    "RecordStore",
    "RemoteFlagSynchronizer",
    "create_firestore_store",
]
