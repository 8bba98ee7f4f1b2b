"""Transactional document store.

Documents live at slash-separated paths, Firestore-style:

    users/{uid}                       # receiptCount
    users/{uid}/memory/summary        # long-term memory summary
    users/{uid}/receipts/{entryId}    # journal entries
    refreshJobs/{uid}:{count}         # deferred refresh claims

Two backends share the optimistic transaction machinery in `base`:
`MemoryDocumentStore` (in-process) and `SqliteDocumentStore` (on disk).
"""

from scribe.store.base import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    DocumentSnapshot,
    DocumentStore,
    StoreError,
    Transaction,
    TransactionAborted,
)
from scribe.store.memory import MemoryDocumentStore
from scribe.store.sqlite import SqliteDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentNotFound",
    "DocumentSnapshot",
    "DocumentStore",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "StoreError",
    "Transaction",
    "TransactionAborted",
]
