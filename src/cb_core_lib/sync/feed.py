"""Live, decoded view of the store's collections.

SnapshotFeed subscribes to one or more collections and keeps the latest
decoded entities. Every snapshot replaces the previous view of its
collection wholesale (last snapshot wins); nothing is merged. After close(),
snapshots still in flight are dropped quietly, so a view torn down while a
request is pending never receives stale updates.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from cb_core_lib.models import Case, Patient, PhysicianProfile
from cb_core_lib.store.base import (
    CASES,
    PATIENTS,
    USERS,
    CollectionSnapshot,
    DocumentPredicate,
    DocumentStore,
    Subscription,
)
from cb_core_lib.sync.adapter import decode_snapshot

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], None]


def involving(user_id: str) -> DocumentPredicate:
    """Scope a cases subscription to the cases user_id takes part in."""
    def predicate(doc) -> bool:
        created_by = (doc.data.get("createdBy") or {}).get("id")
        assigned_to = (doc.data.get("assignedTo") or {}).get("id")
        return user_id in (created_by, assigned_to)
    return predicate


class SnapshotFeed:
    """Latest decoded snapshot per collection."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self._views: Dict[str, Dict[str, Any]] = {}
        self._subscriptions: List[Subscription] = []
        self._listeners: List[ChangeListener] = []
        self._errors: List[Exception] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def errors(self) -> List[Exception]:
        """Subscription failures reported by the store, oldest first."""
        return list(self._errors)

    async def watch(
        self,
        collection: str,
        doc_id: Optional[str] = None,
        predicate: Optional[DocumentPredicate] = None,
    ) -> Subscription:
        """Start receiving snapshots of collection (optionally scoped)."""
        if self._closed:
            raise RuntimeError("SnapshotFeed is closed")
        subscription = await self.store.subscribe(
            collection,
            self.receive,
            doc_id=doc_id,
            predicate=predicate,
            on_error=self._on_error,
        )
        self._subscriptions.append(subscription)
        return subscription

    async def watch_portal(self, user_id: Optional[str] = None) -> None:
        """Subscribe to patients, users and cases (cases scoped to user_id when given)."""
        await self.watch(PATIENTS)
        await self.watch(USERS)
        await self.watch(CASES, predicate=involving(user_id) if user_id else None)

    def receive(self, snapshot: CollectionSnapshot) -> None:
        """Replace the view of snapshot.collection with its decoded documents."""
        if self._closed:
            logger.debug(f"Dropping {snapshot.collection} snapshot delivered after close")
            return

        entities = decode_snapshot(snapshot)
        self._views[snapshot.collection] = {entity.id: entity for entity in entities}
        logger.debug(f"{snapshot.collection} view replaced with {len(entities)} document(s)")

        for listener in list(self._listeners):
            listener(snapshot.collection)

    def _on_error(self, error: Exception) -> None:
        logger.error(f"Snapshot subscription failed: {error}")
        self._errors.append(error)

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register listener(collection) for view replacements; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def close(self) -> None:
        self._closed = True
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def has_view(self, collection: str) -> bool:
        return collection in self._views

    def case(self, case_id: str) -> Optional[Case]:
        return self._views.get(CASES, {}).get(case_id)

    @property
    def cases(self) -> List[Case]:
        return list(self._views.get(CASES, {}).values())

    @property
    def patients(self) -> List[Patient]:
        return list(self._views.get(PATIENTS, {}).values())

    @property
    def users(self) -> List[PhysicianProfile]:
        return list(self._views.get(USERS, {}).values())

    def user(self, user_id: str) -> Optional[PhysicianProfile]:
        return self._views.get(USERS, {}).get(user_id)

    def specialists(self) -> List[PhysicianProfile]:
        return [u for u in self.users if u.is_specialist]

    def cases_for(self, user_id: str) -> List[Case]:
        return [c for c in self.cases if c.is_participant(user_id)]

    def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for case in self.cases:
            counts[case.status.value] = counts.get(case.status.value, 0) + 1
        return counts

    def recent_cases(self, limit: int = 5) -> List[Case]:
        return sorted(self.cases, key=lambda c: c.created_at, reverse=True)[:limit]
