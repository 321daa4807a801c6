"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol that all backends must implement,
along with the shared document/mutation types, the write batch, the value
codec, and the store error hierarchy.

Invariants:
    - A document is addressed by (collection, doc_id) and its data is a JSON object
    - Timestamps are store-native values: datetime in, timezone-aware datetime out
    - "__ts__" is reserved for encoded timestamps and rejected as a field name
    - A WriteBatch commits all of its mutations or none of them
    - A WriteBatch never holds more than max_batch_size mutations

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
    - Never change the timestamp encoding of already persisted documents
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import StoreConfig

logger = logging.getLogger(__name__)

# Marker key for encoded timestamps inside stored JSON
TIMESTAMP_KEY = "__ts__"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class StoreError(Exception):
    """Base exception for document store operations."""

    pass


class StoreConnectionError(StoreError):
    """Store is unreachable, not connected, or failed to initialize."""

    pass


class DocumentExistsError(StoreError):
    """A document with the requested id already exists."""

    pass


class BatchLimitExceededError(StoreError):
    """More mutations were queued than the store accepts in one batch."""

    pass


class StoreSerializationError(StoreError):
    """Failed to encode or decode document data."""

    pass


class MutationKind(Enum):
    """Kinds of queued batch mutations."""

    SET = "set"
    DELETE = "delete"


@dataclass(frozen=True)
class Document:
    """A stored document.

    Attributes:
        collection: Collection name
        doc_id: Document identifier, unique within the collection
        data: Field values (never contains the id)
    """

    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Mutation:
    """A mutation queued in a WriteBatch."""

    kind: MutationKind
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None


class WriteBatch:
    """Accumulates set/delete mutations and commits them atomically.

    The batch is bound to the store that created it and is single-use:
    once committed, further mutations raise StoreError.

    Example:
        >>> batch = store.batch()
        >>> batch.delete("staff", "s-1")
        >>> batch.set("staff", "s-2", {"name": "Ada"})
        >>> await batch.commit()
    """

    def __init__(
        self,
        commit_fn: Callable[[list[Mutation]], Awaitable[None]],
        max_size: int,
    ) -> None:
        self._commit_fn = commit_fn
        self.max_size = max_size
        self._mutations: list[Mutation] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._mutations)

    @property
    def committed(self) -> bool:
        return self._committed

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Queue a full overwrite of (collection, doc_id) with data."""
        self._queue(Mutation(MutationKind.SET, collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        """Queue a delete of (collection, doc_id). Deleting a missing document is a no-op."""
        self._queue(Mutation(MutationKind.DELETE, collection, doc_id))

    def _queue(self, mutation: Mutation) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        if not mutation.doc_id:
            raise StoreError(f"Empty document id in {mutation.kind.value} on {mutation.collection}")
        if len(self._mutations) >= self.max_size:
            raise BatchLimitExceededError(
                f"Batch limit of {self.max_size} mutations exceeded"
            )
        self._mutations.append(mutation)

    async def commit(self) -> None:
        """Commit all queued mutations atomically.

        Raises:
            StoreError: If the batch was already committed or the store rejects it
        """
        if self._committed:
            raise StoreError("Batch already committed")
        await self._commit_fn(list(self._mutations))
        self._committed = True


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        delta = value - _EPOCH
        return {TIMESTAMP_KEY: (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds}
    raise TypeError(f"Object of type {type(value).__name__} is not storable")


def _decode_object(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and TIMESTAMP_KEY in obj and isinstance(obj[TIMESTAMP_KEY], int):
        return _EPOCH + timedelta(microseconds=obj[TIMESTAMP_KEY])
    return obj


def _reject_reserved_keys(value: Any) -> None:
    if isinstance(value, dict):
        if TIMESTAMP_KEY in value:
            raise StoreSerializationError(f"'{TIMESTAMP_KEY}' is a reserved field name")
        for item in value.values():
            _reject_reserved_keys(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _reject_reserved_keys(item)


def encode_data(data: dict[str, Any]) -> str:
    """Encode document data as stored JSON.

    Raises:
        StoreSerializationError: If a value cannot be stored, or a field is named "__ts__"
    """
    _reject_reserved_keys(data)
    try:
        return json.dumps(data, default=_encode_value, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise StoreSerializationError(f"Failed to encode document data: {e}")


def decode_data(raw: str) -> Any:
    """Decode stored JSON back into document values.

    Raises:
        StoreSerializationError: If the stored text is not valid JSON
    """
    try:
        return json.loads(raw, object_hook=_decode_object)
    except (json.JSONDecodeError, TypeError) as e:
        raise StoreSerializationError(f"Failed to decode document data: {e}")


def sort_key(value: Any) -> tuple[int, Any]:
    """Ordering key shared by backends for list_documents(order_by=...).

    Missing values sort first, then numbers and timestamps, then strings.
    """
    if value is None:
        return (0, 0)
    if isinstance(value, datetime):
        return (1, (value - _EPOCH).total_seconds())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    The store is consumed as a capability: collections of JSON documents,
    paged scans, and atomic batches bounded by max_batch_size. There is no
    transaction spanning more than one batch.

    Example:
        >>> store = SqliteDocumentStore("/var/lib/snapdb/store.db")
        >>> await store.connect()
        >>> async for doc in store.stream_documents("staff"):
        ...     print(doc.doc_id, doc.data)
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store.

        Raises:
            StoreConnectionError: If the store cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release store resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the store is connected."""
        ...

    @property
    @abstractmethod
    def max_batch_size(self) -> int:
        """Maximum number of mutations accepted in one batch."""
        ...

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a single document, or None if absent."""
        ...

    @abstractmethod
    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        doc_id: str | None = None,
    ) -> str:
        """Create a document, generating an id if none is given.

        Returns:
            The document id

        Raises:
            DocumentExistsError: If doc_id is already taken
        """
        ...

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns True if it existed."""
        ...

    @abstractmethod
    def stream_documents(
        self,
        collection: str,
        page_size: int = 500,
    ) -> AsyncIterator[Document]:
        """Iterate over every document of a collection in ascending id order.

        Pages through the collection page_size documents at a time, so the
        collection may be arbitrarily large.
        """
        ...

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        fields: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """List documents, optionally ordered by a field and projected.

        Args:
            collection: Collection name
            order_by: Field to order by (document id when None)
            descending: Reverse the order
            fields: If given, only these fields are decoded into Document.data
            limit: Maximum number of documents
        """
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        """Create an empty write batch."""
        ...


def create_document_store(config: StoreConfig) -> DocumentStore:
    """Factory function to create a document store from configuration.

    Args:
        config: Store configuration

    Returns:
        Appropriate DocumentStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryDocumentStore
    from .sqlite import SqliteDocumentStore

    if config.backend == StoreBackend.SQLITE:
        return SqliteDocumentStore(
            config.path,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
            max_batch_size=config.max_batch_size,
        )
    elif config.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore(max_batch_size=config.max_batch_size)
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
