"""
Document database access.

All records live in Cloud Firestore. Every query is scoped to one owner
(``userId == owner``) before it is ordered and limited, both for
point-in-time reads and for live subscriptions.
"""

from typing import Any, Callable, Dict, List, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from health_companion.core.errors import ReadError, WriteError
from health_companion.core.firebase import get_firebase_app
from health_companion.core.signals import Unsubscribe
from health_companion.utils.logger import get_logger

logger = get_logger("document_store")

# Owner identifier field in every collection
OWNER_FIELD = "userId"

Document = Dict[str, Any]
SnapshotCallback = Callable[[List[Document]], None]


class DocumentStore(Protocol):
    """What the registry and the conversation engine need from a database."""

    def add(self, collection: str, document: Document) -> str:
        ...

    def query(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool,
        limit: int,
    ) -> List[Document]:
        ...

    def watch(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool,
        limit: int,
        callback: SnapshotCallback,
    ) -> Unsubscribe:
        ...


class FirestoreDocumentStore:
    """``DocumentStore`` backed by Cloud Firestore."""

    def __init__(self, client: Optional[firestore.Client] = None):
        self._client = client or firestore.client(get_firebase_app())

    def _owner_query(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool,
        limit: int,
    ):
        direction = (
            firestore.Query.DESCENDING if descending
            else firestore.Query.ASCENDING
        )
        return (
            self._client.collection(collection)
            .where(filter=FieldFilter(OWNER_FIELD, "==", owner_id))
            .order_by(order_by, direction=direction)
            .limit(limit)
        )

    def add(self, collection: str, document: Document) -> str:
        """
        Create a document with a generated id.

        Returns:
            The new document id

        Raises:
            WriteError: Firestore rejected the write
        """
        try:
            _, ref = self._client.collection(collection).add(document)
        except google_exceptions.GoogleAPIError as exc:
            logger.error("Firestore write failed", collection=collection, error=str(exc))
            raise WriteError(f"Could not save to {collection}: {exc}") from exc

        logger.info("Document created", collection=collection, document_id=ref.id)
        return ref.id

    def query(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool,
        limit: int,
    ) -> List[Document]:
        """Point-in-time read of an owner's documents."""
        query = self._owner_query(collection, owner_id, order_by, descending, limit)
        try:
            return [doc.to_dict() for doc in query.stream()]
        except google_exceptions.GoogleAPIError as exc:
            logger.error("Firestore query failed", collection=collection, error=str(exc))
            raise ReadError(f"Could not load {collection}: {exc}") from exc

    def watch(
        self,
        collection: str,
        owner_id: str,
        order_by: str,
        descending: bool,
        limit: int,
        callback: SnapshotCallback,
    ) -> Unsubscribe:
        """
        Subscribe to an owner's documents.

        ``callback`` receives the complete, ordered result set on every
        change. It runs on a Firestore background thread.
        """
        query = self._owner_query(collection, owner_id, order_by, descending, limit)

        def on_snapshot(docs, changes, read_time) -> None:
            callback([doc.to_dict() for doc in docs])

        watch = query.on_snapshot(on_snapshot)
        logger.info("Subscription opened", collection=collection)
        return watch.unsubscribe
