"""
In-memory document store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Documents are stored encoded, so reads never alias caller objects
    - Same ordering and batch-limit behaviour as the SQLite backend

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with DocumentStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from typing import Any

from .base import (
    Document,
    DocumentExistsError,
    Mutation,
    MutationKind,
    StoreConnectionError,
    StoreError,
    WriteBatch,
    decode_data,
    encode_data,
    sort_key,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Besides the protocol it offers testing helpers to seed and inspect
    collections, count commits, and inject failures into reads and batch
    commits.

    Example:
        >>> store = InMemoryDocumentStore(max_batch_size=500)
        >>> await store.connect()
        >>> store.seed("staff", {"s-1": {"name": "Ada"}})
        >>> store.dump("staff")
        {'s-1': {'name': 'Ada'}}
    """

    def __init__(self, max_batch_size: int = 500) -> None:
        """Initialize in-memory store.

        Args:
            max_batch_size: Largest batch accepted by batch()
        """
        self._max_batch_size = max_batch_size
        self._collections: dict[str, dict[str, str]] = defaultdict(dict)
        self._connected = False
        self._commit_failure: tuple[Callable[[list[Mutation]], bool], Exception] | None = None
        self._read_failures: dict[str, Exception] = {}
        self.committed_batches: list[list[Mutation]] = []

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDocumentStore connected")

    async def close(self) -> None:
        self._connected = False
        logger.debug("InMemoryDocumentStore closed")

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        self._ensure_connected()
        raw = self._collections.get(collection, {}).get(doc_id)
        if raw is None:
            return None
        return Document(collection=collection, doc_id=doc_id, data=decode_data(raw))

    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        doc_id: str | None = None,
    ) -> str:
        self._ensure_connected()
        doc_id = doc_id or uuid.uuid4().hex
        docs = self._collections[collection]
        if doc_id in docs:
            raise DocumentExistsError(f"Document already exists: {collection}/{doc_id}")
        docs[doc_id] = encode_data(data)
        return doc_id

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        self._ensure_connected()
        return self._collections.get(collection, {}).pop(doc_id, None) is not None

    async def stream_documents(
        self,
        collection: str,
        page_size: int = 500,
    ) -> AsyncIterator[Document]:
        self._ensure_connected()
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        if collection in self._read_failures:
            raise self._read_failures[collection]

        after_id = None
        while True:
            docs = self._collections.get(collection, {})
            ids = sorted(i for i in docs if after_id is None or i > after_id)[:page_size]
            for doc_id in ids:
                raw = docs.get(doc_id)
                if raw is not None:
                    yield Document(collection=collection, doc_id=doc_id, data=decode_data(raw))
            if len(ids) < page_size:
                return
            after_id = ids[-1]

    async def list_documents(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        fields: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        self._ensure_connected()
        documents = [
            Document(collection=collection, doc_id=doc_id, data=decode_data(raw))
            for doc_id, raw in self._collections.get(collection, {}).items()
        ]

        if order_by is None:
            documents.sort(key=lambda d: d.doc_id, reverse=descending)
        else:
            documents.sort(
                key=lambda d: (sort_key(d.data.get(order_by)), d.doc_id),
                reverse=descending,
            )

        if limit is not None:
            documents = documents[:limit]

        if fields is not None:
            documents = [
                Document(
                    collection=d.collection,
                    doc_id=d.doc_id,
                    data={f: d.data[f] for f in fields if d.data.get(f) is not None},
                )
                for d in documents
            ]
        return documents

    def batch(self) -> WriteBatch:
        return WriteBatch(self._commit_batch, self._max_batch_size)

    async def _commit_batch(self, mutations: list[Mutation]) -> None:
        self._ensure_connected()
        if not mutations:
            return

        if self._commit_failure is not None:
            predicate, exception = self._commit_failure
            if predicate(mutations):
                raise exception

        encoded = [
            (m, encode_data(m.data) if m.kind == MutationKind.SET else None) for m in mutations
        ]
        for mutation, data_json in encoded:
            docs = self._collections[mutation.collection]
            if mutation.kind == MutationKind.SET:
                docs[mutation.doc_id] = data_json
            else:
                docs.pop(mutation.doc_id, None)

        self.committed_batches.append(list(mutations))

    # Testing helpers

    def seed(self, collection: str, documents: dict[str, dict[str, Any]]) -> None:
        """Insert or overwrite documents without going through a batch (testing helper)."""
        docs = self._collections[collection]
        for doc_id, data in documents.items():
            docs[doc_id] = encode_data(data)

    def dump(self, collection: str) -> dict[str, dict[str, Any]]:
        """Get every document of a collection keyed by id (testing helper)."""
        return {
            doc_id: decode_data(raw)
            for doc_id, raw in sorted(self._collections.get(collection, {}).items())
        }

    def collection_names(self) -> list[str]:
        """Get names of collections holding at least one document (testing helper)."""
        return sorted(name for name, docs in self._collections.items() if docs)

    @property
    def commit_count(self) -> int:
        """Number of non-empty batches committed (testing helper)."""
        return len(self.committed_batches)

    def inject_commit_failure(
        self,
        predicate: Callable[[list[Mutation]], bool],
        exception: Exception | None = None,
    ) -> None:
        """Fail every batch commit whose mutations match predicate (testing helper).

        The failing batch is not applied.
        """
        self._commit_failure = (predicate, exception or StoreError("Injected commit failure"))

    def inject_read_failure(self, collection: str, exception: Exception | None = None) -> None:
        """Fail scans of a collection (testing helper)."""
        self._read_failures[collection] = exception or StoreError(
            f"Injected read failure on {collection}"
        )

    def clear_failures(self) -> None:
        """Remove injected failures (testing helper)."""
        self._commit_failure = None
        self._read_failures.clear()
