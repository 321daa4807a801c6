"""
Document store abstraction for SnapDB.

This module provides a pluggable store backend interface supporting:
- SQLite (single database file, default)
- In-memory (for testing)

The store is the only shared mutable resource of the server. Snapshot
records live in it next to the collections they back up.

Invariants:
    - Batches are atomic and bounded by max_batch_size
    - Collection scans page through documents in ascending id order
    - There is no transaction spanning more than one batch

How to change safely:
    - New backends must implement the DocumentStore protocol
    - Verify batch limits and atomicity match the production backend
"""

from .base import (
    BatchLimitExceededError,
    Document,
    DocumentExistsError,
    DocumentStore,
    Mutation,
    MutationKind,
    StoreConnectionError,
    StoreError,
    StoreSerializationError,
    WriteBatch,
    create_document_store,
)
from .memory import InMemoryDocumentStore
from .sqlite import SqliteDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "Document",
    "Mutation",
    "MutationKind",
    "WriteBatch",
    "StoreError",
    "StoreConnectionError",
    "DocumentExistsError",
    "BatchLimitExceededError",
    "StoreSerializationError",
    # Factory
    "create_document_store",
    # Implementations
    "SqliteDocumentStore",
    "InMemoryDocumentStore",
]
