"""
Document store collaborators.

DocumentStore is the only persistence seam: an in-process implementation for
development and tests, and an HTTP client for the hosted backend.
"""

from .base import (
    PATIENTS,
    USERS,
    CASES,
    COLLECTIONS,
    StoreTimestamp,
    DocumentSnapshot,
    CollectionSnapshot,
    Subscription,
    DocumentStore,
)
from .memory import InMemoryDocumentStore
from .http import HttpDocumentStore

__all__ = [
    "PATIENTS",
    "USERS",
    "CASES",
    "COLLECTIONS",
    "StoreTimestamp",
    "DocumentSnapshot",
    "CollectionSnapshot",
    "Subscription",
    "DocumentStore",
    "InMemoryDocumentStore",
    "HttpDocumentStore",
]
