"""
SQLite document store for SnapDB.

This module stores every collection in a single SQLite file:

Table schema:
    documents:
        - collection TEXT
        - doc_id TEXT
        - data_json TEXT (JSON object, timestamps encoded by store.base)
        - PRIMARY KEY (collection, doc_id)

Invariants:
    - A batch is applied inside one BEGIN IMMEDIATE transaction
    - Collection scans page by doc_id (keyset pagination), never OFFSET
    - Projected listings decode only the requested fields

How to change safely:
    - Schema migrations must be backward compatible
    - Keep doc_id ordering identical to the in-memory backend
    - Use transactions for all multi-statement writes
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .base import (
    TIMESTAMP_KEY,
    Document,
    DocumentExistsError,
    Mutation,
    MutationKind,
    StoreConnectionError,
    StoreError,
    WriteBatch,
    decode_data,
    encode_data,
)

logger = logging.getLogger(__name__)


def _json_path(field_name: str, *suffix: str) -> str:
    """Build a JSON path addressing a top-level field."""
    if not field_name or '"' in field_name:
        raise StoreError(f"Unsupported field name: {field_name!r}")
    return "".join([f'$."{field_name}"', *(f".{s}" for s in suffix)])


class SqliteDocumentStore:
    """Document store backed by one SQLite database file.

    Each operation opens its own connection; SQLite handles concurrent
    access via WAL mode.

    Attributes:
        path: Database file path
        wal_mode: Enable SQLite WAL mode
        busy_timeout_ms: SQLite busy timeout

    Example:
        >>> store = SqliteDocumentStore("/var/lib/snapdb/store.db")
        >>> await store.connect()
        >>> doc_id = await store.create_document("staff", {"name": "Ada"})
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        max_batch_size: int = 500,
    ) -> None:
        """Initialize the store.

        Args:
            path: SQLite database file
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
            max_batch_size: Largest batch accepted by batch()
        """
        self.path = Path(path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._max_batch_size = max_batch_size
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def max_batch_size(self) -> int:
        return self._max_batch_size

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection.

        Yields:
            SQLite connection

        Raises:
            StoreConnectionError: If the database cannot be opened
            StoreError: For any SQLite failure while the connection is in use
        """
        try:
            conn = sqlite3.connect(
                str(self.path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            raise StoreConnectionError(f"Cannot open store at {self.path}: {e}") from e

        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")

            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e
        finally:
            conn.close()

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data_json TEXT NOT NULL DEFAULT '{}',
                PRIMARY KEY (collection, doc_id)
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def connect(self) -> None:
        """Create the database file and schema if needed."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreConnectionError(f"Cannot create store directory {self.path.parent}: {e}") from e

        try:
            with self._get_connection() as conn:
                self._create_schema(conn)
        except StoreError as e:
            raise StoreConnectionError(f"Cannot initialize store at {self.path}: {e}") from e

        self._connected = True
        logger.info("SQLite document store connected", extra={"path": str(self.path)})

    async def close(self) -> None:
        self._connected = False
        logger.debug("SQLite document store closed")

    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        self._ensure_connected()
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data_json FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            ).fetchone()

        if row is None:
            return None
        return Document(collection=collection, doc_id=doc_id, data=decode_data(row["data_json"]))

    async def create_document(
        self,
        collection: str,
        data: dict[str, Any],
        doc_id: str | None = None,
    ) -> str:
        self._ensure_connected()
        doc_id = doc_id or uuid.uuid4().hex
        data_json = encode_data(data)

        with self._get_connection() as conn:
            try:
                conn.execute(
                    "INSERT INTO documents (collection, doc_id, data_json) VALUES (?, ?, ?)",
                    (collection, doc_id, data_json),
                )
            except sqlite3.IntegrityError:
                raise DocumentExistsError(f"Document already exists: {collection}/{doc_id}")

        logger.debug("Created document", extra={"collection": collection, "doc_id": doc_id})
        return doc_id

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        self._ensure_connected()
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            return cursor.rowcount > 0

    def _fetch_page(
        self,
        collection: str,
        after_id: str | None,
        limit: int,
    ) -> list[sqlite3.Row]:
        with self._get_connection() as conn:
            if after_id is None:
                cursor = conn.execute(
                    """
                    SELECT doc_id, data_json FROM documents
                    WHERE collection = ?
                    ORDER BY doc_id LIMIT ?
                    """,
                    (collection, limit),
                )
            else:
                cursor = conn.execute(
                    """
                    SELECT doc_id, data_json FROM documents
                    WHERE collection = ? AND doc_id > ?
                    ORDER BY doc_id LIMIT ?
                    """,
                    (collection, after_id, limit),
                )
            return cursor.fetchall()

    async def stream_documents(
        self,
        collection: str,
        page_size: int = 500,
    ) -> AsyncIterator[Document]:
        self._ensure_connected()
        if page_size <= 0:
            raise ValueError("page_size must be positive")

        after_id = None
        while True:
            rows = self._fetch_page(collection, after_id, page_size)
            for row in rows:
                yield Document(
                    collection=collection,
                    doc_id=row["doc_id"],
                    data=decode_data(row["data_json"]),
                )
            if len(rows) < page_size:
                return
            after_id = rows[-1]["doc_id"]

    async def list_documents(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        fields: list[str] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        self._ensure_connected()
        direction = "DESC" if descending else "ASC"
        params: list[Any] = []

        if fields is None:
            select = "data_json"
        else:
            paths = [_json_path(f) for f in fields]
            # json_extract only returns a JSON array when given two or more paths
            if len(paths) == 1:
                paths.append(paths[0])
            select = f"json_extract(data_json, {', '.join('?' for _ in paths)})"
            params.extend(paths)

        sql = f"SELECT doc_id, {select} AS projected FROM documents WHERE collection = ?"
        params.append(collection)

        if order_by is None:
            sql += f" ORDER BY doc_id {direction}"
        else:
            sql += (
                " ORDER BY coalesce(json_extract(data_json, ?), json_extract(data_json, ?))"
                f" {direction}, doc_id {direction}"
            )
            params.extend([_json_path(order_by, TIMESTAMP_KEY), _json_path(order_by)])

        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        documents = []
        for row in rows:
            if fields is None:
                data = decode_data(row["projected"])
            else:
                values = decode_data(row["projected"]) if row["projected"] else []
                data = {f: v for f, v in zip(fields, values) if v is not None}
            documents.append(Document(collection=collection, doc_id=row["doc_id"], data=data))
        return documents

    def batch(self) -> WriteBatch:
        return WriteBatch(self._commit_batch, self._max_batch_size)

    async def _commit_batch(self, mutations: list[Mutation]) -> None:
        """Apply a batch of mutations in a single transaction."""
        self._ensure_connected()
        if not mutations:
            return

        encoded = [
            (m, encode_data(m.data) if m.kind == MutationKind.SET else None) for m in mutations
        ]

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for mutation, data_json in encoded:
                    if mutation.kind == MutationKind.SET:
                        conn.execute(
                            """
                            INSERT OR REPLACE INTO documents (collection, doc_id, data_json)
                            VALUES (?, ?, ?)
                            """,
                            (mutation.collection, mutation.doc_id, data_json),
                        )
                    else:
                        conn.execute(
                            "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                            (mutation.collection, mutation.doc_id),
                        )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug("Committed batch", extra={"mutations": len(mutations)})
