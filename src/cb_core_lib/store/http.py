"""HTTP client for the hosted document store.

REST layout (relative to base_url):
    GET    /health                              liveness probe
    GET    /{collection}/{id}                   one document ({"id", "data"}), 404 if absent
    POST   /{collection}                        create, returns {"id"}
    PUT    /{collection}/{id}                   create or overwrite
    PATCH  /{collection}/{id}                   partial update (null deletes a field)
    POST   /{collection}/{id}:append            {"field", "element", "updates"}
    GET    /{collection}/stream[?docId=...]     server-sent events, one full
                                                snapshot ({"documents": [...]}) per event

Timestamps travel as {"_seconds": int, "_nanoseconds": int} objects.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from cb_core_lib.clients.base import BaseServiceClient, TokenSource
from cb_core_lib.exceptions import RemoteUnavailable
from cb_core_lib.store.base import (
    CollectionSnapshot,
    DocumentPredicate,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    SnapshotCallback,
    StoreTimestamp,
    Subscription,
)
from cb_core_lib.utils import service_startup_retry

logger = logging.getLogger(__name__)


def to_wire_value(value: Any) -> Any:
    """Replace StoreTimestamp objects with their JSON form, recursively."""
    if isinstance(value, StoreTimestamp):
        return value.to_wire()
    if isinstance(value, dict):
        return {k: to_wire_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire_value(v) for v in value]
    return value


def from_wire_value(value: Any) -> Any:
    """Inverse of to_wire_value."""
    if StoreTimestamp.is_wire(value):
        return StoreTimestamp.from_wire(value)
    if isinstance(value, dict):
        return {k: from_wire_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_wire_value(v) for v in value]
    return value


def _parse_snapshot(collection: str, payload: Any) -> CollectionSnapshot:
    """Build a snapshot from one stream event.

    Raises:
        ValueError: If the event is not a list of documents with ids
    """
    documents = payload.get("documents", []) if isinstance(payload, dict) else None
    if not isinstance(documents, list):
        raise ValueError(f"Malformed {collection} snapshot event")

    parsed = []
    for doc in documents:
        if not isinstance(doc, dict) or not isinstance(doc.get("id"), str):
            raise ValueError(f"Malformed document in {collection} snapshot event")
        parsed.append(DocumentSnapshot(id=doc["id"], data=from_wire_value(doc.get("data") or {})))
    return CollectionSnapshot(collection=collection, documents=parsed)


def _log_stream_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Snapshot stream stopped: {task.exception()!r}")


class _StreamSubscription(Subscription):
    def __init__(self):
        self.task: Optional[asyncio.Task] = None
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self.task is not None and not self.task.done():
            self.task.cancel()


@service_startup_retry
async def _verify_store_connection(store: "HttpDocumentStore") -> None:
    """Verify the store answers its health probe, with startup retry.

    Raises:
        RemoteUnavailable: If the store stays unreachable after all attempts
    """
    await store.ping()
    logger.info("Document store connection verified")


class HttpDocumentStore(BaseServiceClient, DocumentStore):
    """Async HTTP client for the hosted document store.

    Usage:
        store = HttpDocumentStore(base_url="https://store.carebridge.example/v1",
                                  token_source=session_manager.get_token)
        await store.verify_connection()
        case_id = await store.create("cases", document)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        token_source: Optional[TokenSource] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        stream_path: str = "stream",
    ):
        super().__init__(
            base_url=base_url,
            timeout=timeout,
            token_source=token_source,
            transport=transport,
        )
        self.stream_path = stream_path
        self._subscriptions: list = []

    def _url(self, collection: str, doc_id: Optional[str] = None, suffix: str = "") -> str:
        url = f"{self.base_url}/{collection}"
        if doc_id is not None:
            url = f"{url}/{doc_id}"
        return f"{url}{suffix}"

    def _unavailable(self, operation: str, collection: str, error: Exception) -> RemoteUnavailable:
        logger.error(f"Document store {operation} on {collection} failed: {error}")
        status = error.response.status_code if isinstance(error, httpx.HTTPStatusError) else None
        return RemoteUnavailable(
            f"Document store {operation} failed: {error}",
            error_code="NOT_FOUND" if status == 404 else None,
            context={"operation": operation, "collection": collection, "status": status},
        )

    async def ping(self) -> None:
        try:
            async with self._get_client() as client:
                response = await client.get(f"{self.base_url}/health", headers=await self._headers())
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._unavailable("ping", "health", e) from e

    async def verify_connection(self) -> None:
        await _verify_store_connection(self)

    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        try:
            async with self._get_client() as client:
                response = await client.get(self._url(collection, doc_id), headers=await self._headers())
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            raise self._unavailable("get", collection, e) from e
        return DocumentSnapshot(id=payload["id"], data=from_wire_value(payload.get("data") or {}))

    async def create(
        self,
        collection: str,
        document: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        try:
            async with self._get_client() as client:
                response = await client.post(
                    self._url(collection),
                    json=to_wire_value(document),
                    headers=await self._headers(idempotency_key=idempotency_key),
                )
                response.raise_for_status()
                return response.json()["id"]
        except httpx.HTTPError as e:
            raise self._unavailable("create", collection, e) from e

    async def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        try:
            async with self._get_client() as client:
                response = await client.put(
                    self._url(collection, doc_id),
                    json=to_wire_value(document),
                    headers=await self._headers(),
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._unavailable("set", collection, e) from e

    async def update(
        self,
        collection: str,
        doc_id: str,
        partial: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> None:
        try:
            async with self._get_client() as client:
                response = await client.patch(
                    self._url(collection, doc_id),
                    json=to_wire_value(partial),
                    headers=await self._headers(idempotency_key=idempotency_key),
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._unavailable("update", collection, e) from e

    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        element: Any,
        updates: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        body = {
            "field": array_field,
            "element": to_wire_value(element),
            "updates": to_wire_value(updates or {}),
        }
        try:
            async with self._get_client() as client:
                response = await client.post(
                    self._url(collection, doc_id, ":append"),
                    json=body,
                    headers=await self._headers(idempotency_key=idempotency_key),
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._unavailable("append", collection, e) from e

    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        doc_id: Optional[str] = None,
        predicate: Optional[DocumentPredicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        subscription = _StreamSubscription()
        subscription.task = asyncio.create_task(
            self._stream(collection, callback, subscription, doc_id, predicate, on_error)
        )
        subscription.task.add_done_callback(_log_stream_failure)
        self._subscriptions.append(subscription)
        return subscription

    async def _stream(
        self,
        collection: str,
        callback: SnapshotCallback,
        subscription: _StreamSubscription,
        doc_id: Optional[str],
        predicate: Optional[DocumentPredicate],
        on_error: Optional[ErrorCallback],
    ) -> None:
        params = {"docId": doc_id} if doc_id else None
        try:
            # Snapshots may be minutes apart
            async with self._get_client(timeout=httpx.Timeout(self.timeout, read=None)) as client:
                async with client.stream(
                    "GET",
                    self._url(collection, suffix=f"/{self.stream_path}"),
                    params=params,
                    headers=await self._headers(),
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not subscription.active:
                            break
                        if not line.startswith("data:"):
                            continue
                        snapshot = _parse_snapshot(collection, json.loads(line[len("data:"):]))
                        if predicate is not None:
                            snapshot.documents = [d for d in snapshot.documents if predicate(d)]
                        callback(snapshot)
        except asyncio.CancelledError:
            logger.debug(f"Snapshot stream for {collection} cancelled")
            raise
        except Exception as e:
            # Nobody awaits the stream task, so every failure goes to on_error
            error = e if isinstance(e, RemoteUnavailable) else self._unavailable("subscribe", collection, e)
            if on_error is not None:
                on_error(error)
        finally:
            subscription._active = False

    async def close(self):
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
