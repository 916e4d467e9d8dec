"""
Document store collaborator interface.

The external backend stores schemaless key/value documents in named
collections and pushes full-collection snapshots to subscribers whenever a
collection changes. Instants are held in a backend-native StoreTimestamp type
that must be converted explicitly to and from domain datetimes (see
cb_core_lib.sync.adapter).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

PATIENTS = "patients"
USERS = "users"
CASES = "cases"

COLLECTIONS = (PATIENTS, USERS, CASES)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True, order=True)
class StoreTimestamp:
    """Backend-native timestamp: whole seconds since the epoch plus nanoseconds."""

    seconds: int
    nanoseconds: int = 0

    def __post_init__(self):
        if not 0 <= self.nanoseconds < 1_000_000_000:
            raise ValueError(f"nanoseconds out of range: {self.nanoseconds}")

    @classmethod
    def from_datetime(cls, value: datetime) -> 'StoreTimestamp':
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        return cls(
            seconds=delta.days * 86400 + delta.seconds,
            nanoseconds=delta.microseconds * 1000,
        )

    @classmethod
    def now(cls) -> 'StoreTimestamp':
        return cls.from_datetime(datetime.now(timezone.utc))

    def to_datetime(self) -> datetime:
        """Aware UTC datetime (sub-microsecond precision is truncated)."""
        return _EPOCH + timedelta(seconds=self.seconds, microseconds=self.nanoseconds // 1000)

    def to_wire(self) -> Dict[str, int]:
        return {"_seconds": self.seconds, "_nanoseconds": self.nanoseconds}

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'StoreTimestamp':
        return cls(seconds=int(data["_seconds"]), nanoseconds=int(data.get("_nanoseconds", 0)))

    @staticmethod
    def is_wire(value: Any) -> bool:
        return isinstance(value, dict) and "_seconds" in value


@dataclass
class DocumentSnapshot:
    """One document as delivered by the store: id plus its body."""

    id: str
    data: Dict[str, Any]


@dataclass
class CollectionSnapshot:
    """Full read of a (possibly scoped) collection, delivered on every change."""

    collection: str
    documents: List[DocumentSnapshot] = field(default_factory=list)

    def get(self, doc_id: str) -> Optional[DocumentSnapshot]:
        for doc in self.documents:
            if doc.id == doc_id:
                return doc
        return None

    def __len__(self) -> int:
        return len(self.documents)


SnapshotCallback = Callable[[CollectionSnapshot], None]
ErrorCallback = Callable[[Exception], None]
DocumentPredicate = Callable[[DocumentSnapshot], bool]


class Subscription(ABC):
    """Handle for a live snapshot listener."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivery. Safe to call more than once."""
        pass

    @property
    @abstractmethod
    def active(self) -> bool:
        pass


class DocumentStore(ABC):
    """Abstract base class for document store collaborators.

    Every method raises cb_core_lib.exceptions.RemoteUnavailable when the
    backend cannot be reached or rejects the call.
    """

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        doc_id: Optional[str] = None,
        predicate: Optional[DocumentPredicate] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Listen to a collection.

        The callback receives the current snapshot right away and a fresh full
        snapshot after every change. doc_id / predicate narrow the snapshot to
        the documents the caller cares about.
        """
        pass

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[DocumentSnapshot]:
        """Read one document, None if it does not exist."""
        pass

    @abstractmethod
    async def create(
        self,
        collection: str,
        document: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> str:
        """Insert a document and return its backend-assigned id."""
        pass

    @abstractmethod
    async def set(self, collection: str, doc_id: str, document: Dict[str, Any]) -> None:
        """Create or overwrite a document under a caller-chosen id."""
        pass

    @abstractmethod
    async def update(
        self,
        collection: str,
        doc_id: str,
        partial: Dict[str, Any],
        idempotency_key: Optional[str] = None,
    ) -> None:
        """Overwrite the given top-level fields of an existing document."""
        pass

    @abstractmethod
    async def append(
        self,
        collection: str,
        doc_id: str,
        array_field: str,
        element: Any,
        updates: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> None:
        """
        Atomically add element to an array field (add-to-set semantics: an
        identical element already present is not added again), optionally
        applying updates to other top-level fields in the same write.
        """
        pass

    async def close(self) -> None:
        """Release connections and stop all subscriptions."""
        pass
