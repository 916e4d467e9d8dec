"""In-process document store.

Behaves like the hosted backend from a client's point of view: writes are
atomic per document, every change pushes a full (scoped) snapshot of the
collection to its listeners, array appends have add-to-set semantics, and
writes tagged with an idempotency key are applied at most once. Used for
local development and tests.
"""

import asyncio
import copy
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional
from uuid import uuid4

from cb_core_lib.exceptions import RemoteUnavailable
from cb_core_lib.store.base import (
    CollectionSnapshot,
    DocumentPredicate,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    Subscription,
)

logger = logging.getLogger(__name__)


class _MemorySubscription(Subscription):
    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection: str,
        callback: SnapshotCallback,
        doc_id: Optional[str],
        predicate: Optional[DocumentPredicate],
        on_error: Optional[ErrorCallback],
    ):
        self._store = store
        self.collection = collection
        self.callback = callback
        self.doc_id = doc_id
        self.predicate = predicate
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._store._detach(self)

    def matches(self, doc: DocumentSnapshot) -> bool:
        if self.doc_id is not None and doc.id != self.doc_id:
            return False
        if self.predicate is not None and not self.predicate(doc):
            return False
        return True


class InMemoryDocumentStore(DocumentStore):
    """Document store kept in a dict of collections."""

    def __init__(self, max_applied_keys: int = 10_000):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscriptions: List[_MemorySubscription] = []
        # Oldest keys are forgotten first; a replay older than that is applied again
        self._applied_keys: "OrderedDict[str, str]" = OrderedDict()
        self.max_applied_keys = max_applied_keys
        self._lock = asyncio.Lock()
        self._unavailable = False
        self.write_count = 0

        logger.info("Initialized InMemoryDocumentStore")

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------
    def set_unavailable(self, unavailable: bool = True) -> None:
        """Make every subsequent call fail with RemoteUnavailable."""
        self._unavailable = unavailable

    def seed(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        """Insert a document without notifying listeners."""
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(document)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _check_available(self, operation: str, collection: str) -> None:
        if self._unavailable:
            raise RemoteUnavailable(
                f"Document store unavailable during {operation} on {collection}",
                context={"operation": operation, "collection": collection},
            )

    def _require(self, collection: str, doc_id: str) -> Dict[str, Any]:
        document = self._collections.get(collection, {}).get(doc_id)
        if document is None:
            raise RemoteUnavailable(
                f"No document {collection}/{doc_id}",
                error_code="NOT_FOUND",
                context={"collection": collection, "doc_id": doc_id},
            )
        return document

    def _already_applied(self, idempotency_key: Optional[str]) -> bool:
        if idempotency_key is None:
            return False
        if idempotency_key in self._applied_keys:
            logger.info(f"Skipping replayed write with idempotency key {idempotency_key}")
            return True
        return False

    def _remember(self, idempotency_key: Optional[str], doc_id: str) -> None:
        if idempotency_key is None:
            return
        self._applied_keys[idempotency_key] = doc_id
        while len(self._applied_keys) > self.max_applied_keys:
            self._applied_keys.popitem(last=False)

    def _snapshot_for(self, subscription: _MemorySubscription) -> CollectionSnapshot:
        docs = [
            DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(subscription.collection, {}).items()
        ]
        return CollectionSnapshot(
            collection=subscription.collection,
            documents=[doc for doc in docs if subscription.matches(doc)],
        )

    def _deliver(self, subscription: _MemorySubscription) -> None:
        if not subscription.active:
            return
        try:
            subscription.callback(self._snapshot_for(subscription))
        except Exception as e:
            if subscription.on_error is None:
                logger.error(f"Snapshot listener on {subscription.collection} failed: {e}")
                raise
            subscription.on_error(e)

    def _notify(self, collection: str) -> None:
        for subscription in list(self._subscriptions):
            if subscription.collection == collection:
                self._deliver(subscription)

    def _detach(self, subscription: _MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # ------------------------------------------------------------------
    # DocumentStore API
    # ------------------------------------------------------------------
    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        doc_id: Optional[str] = None,
        predicate: Optional[DocumentPredicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        self._check_available("subscribe", collection)
        subscription = _MemorySubscription(self, collection, callback, doc_id, predicate, on_error)
        self._subscriptions.append(subscription)
        self._deliver(subscription)
        return subscription

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        self._check_available("get", collection)
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return DocumentSnapshot(id=doc_id, data=copy.deepcopy(data))

    async def create(
        self,
        collection: str,
        document: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        self._check_available("create", collection)
        async with self._lock:
            if self._already_applied(idempotency_key):
                return self._applied_keys[idempotency_key]
            doc_id = uuid4().hex[:20]
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(document)
            self._remember(idempotency_key, doc_id)
            self.write_count += 1
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        self._check_available("set", collection)
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(document)
            self.write_count += 1
        self._notify(collection)

    async def update(
        self,
        collection: str,
        doc_id: str,
        partial: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> None:
        self._check_available("update", collection)
        async with self._lock:
            if self._already_applied(idempotency_key):
                return
            document = self._require(collection, doc_id)
            for key, value in partial.items():
                if value is None:
                    document.pop(key, None)
                else:
                    document[key] = copy.deepcopy(value)
            self._remember(idempotency_key, doc_id)
            self.write_count += 1
        self._notify(collection)

    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        element: Any,
        updates: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        self._check_available("append", collection)
        async with self._lock:
            if self._already_applied(idempotency_key):
                return
            document = self._require(collection, doc_id)
            array = document.setdefault(array_field, [])
            if element not in array:
                array.append(copy.deepcopy(element))
            for key, value in (updates or {}).items():
                document[key] = copy.deepcopy(value)
            self._remember(idempotency_key, doc_id)
            self.write_count += 1
        self._notify(collection)

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()
