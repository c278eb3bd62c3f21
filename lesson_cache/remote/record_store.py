"""
The remote record store boundary: a partial-field update of one content
document, keyed by content id.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore

from lesson_cache.exceptions import ConfigurationError, RemoteSyncError

log = logging.getLogger(__name__)


class RecordStore(ABC):
    """Anything that can apply a partial update to a remote content record."""

    @abstractmethod
    async def update_fields(self, content_id: str, fields: dict[str, Any]) -> None:
        """
        Applies `fields` to the record `content_id`, leaving other fields alone.

        Raises:
            RemoteSyncError: If the update was not applied.
        """


class NullRecordStore(RecordStore):
    """Used when remote mirroring is switched off."""

    async def update_fields(self, content_id: str, fields: dict[str, Any]) -> None:
        log.debug(f"Remote sync disabled; not updating '{content_id}'.")


class FirestoreRecordStore(RecordStore):
    """Updates documents of one Firestore collection through firebase-admin."""

    def __init__(self, client: Any, collection_name: str = "content"):
        self._client = client
        self.collection_name = collection_name

    def _update_sync(self, content_id: str, fields: dict[str, Any]) -> None:
        self._client.collection(self.collection_name).document(content_id).update(
            fields
        )

    async def update_fields(self, content_id: str, fields: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._update_sync, content_id, fields)
        except Exception as e:
            raise RemoteSyncError(
                f"Firestore update of '{self.collection_name}/{content_id}' "
                f"failed: {e}"
            ) from e


def create_firestore_store(
    collection_name: str,
    credentials_path: str = "",
    project_id: str = "",
) -> FirestoreRecordStore:
    """
    Connects to Firestore, reusing an already initialized Firebase app.

    Without a credentials file, Google application default credentials are used.

    Raises:
        ConfigurationError: If Firebase cannot be initialized.
    """
    try:
        app = firebase_admin.get_app()
        log.debug(f"Using existing Firebase app: {app.name}")
    except ValueError:
        options = {"projectId": project_id} if project_id else None
        try:
            cred = credentials.Certificate(credentials_path) if credentials_path else None
            app = firebase_admin.initialize_app(cred, options)
        except (ValueError, OSError) as e:
            raise ConfigurationError(f"Firebase initialization failed: {e}") from e
        log.debug(f"Initialized Firebase app for project '{project_id or 'default'}'.")

    try:
        client = firestore.client(app)
    except Exception as e:
        raise ConfigurationError(f"Could not connect to Firestore: {e}") from e
    return FirestoreRecordStore(client, collection_name)
