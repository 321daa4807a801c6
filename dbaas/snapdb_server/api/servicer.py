"""
Service layer shared by the HTTP server and the CLI.

The servicer wires the writer, restorer, catalog and lock around one
document store and returns plain dictionaries ready for JSON encoding.
Errors are raised, not returned; the transport maps them to responses.

Invariants:
    - A servicer without a connected store refuses every operation
    - Create and restore run under the advisory lock when enabled
    - Listing never takes the lock
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from .._version import __version__
from ..config import SnapshotConfig
from ..snapshot import (
    BACKUP_COLLECTIONS,
    SnapshotCatalog,
    SnapshotError,
    SnapshotLock,
    SnapshotRestorer,
    SnapshotWriter,
)
from ..snapshot.lock import DEFAULT_LOCK_COLLECTION
from ..store.base import DocumentStore

logger = logging.getLogger(__name__)

RESTORE_SUCCESS_MESSAGE = "Data restored successfully."


class StoreNotInitializedError(SnapshotError):
    """The document store failed to initialize (configuration error)."""

    def __init__(self) -> None:
        super().__init__("Document store not initialized.", code="NOT_INITIALIZED")


class SnapshotServicer:
    """Snapshot operations over a single document store.

    Attributes:
        store: Document store, or None if it failed to initialize
        config: Snapshot configuration
        collections: Collections captured by new snapshots

    Example:
        >>> servicer = SnapshotServicer(store, SnapshotConfig())
        >>> result = await servicer.create_snapshot("Before import")
        >>> result["snapshotId"]
    """

    def __init__(
        self,
        store: DocumentStore | None,
        config: SnapshotConfig | None = None,
        collections: Sequence[str] = BACKUP_COLLECTIONS,
    ) -> None:
        self.store = store
        self.config = config or SnapshotConfig()
        self.collections = tuple(collections)

        self.writer: SnapshotWriter | None = None
        self.restorer: SnapshotRestorer | None = None
        self.catalog: SnapshotCatalog | None = None

        if store is not None:
            self.writer = SnapshotWriter(
                store,
                self.collections,
                snapshot_collection=self.config.collection,
                default_description=self.config.default_description,
                page_size=self.config.read_page_size,
            )
            self.restorer = SnapshotRestorer(
                store,
                snapshot_collection=self.config.collection,
                batch_ceiling=self.config.batch_ceiling,
                reserved_collections=(DEFAULT_LOCK_COLLECTION,),
            )
            self.catalog = SnapshotCatalog(store, self.config.collection)

    @property
    def ready(self) -> bool:
        """Whether the store is initialized and connected."""
        return self.store is not None and self.store.is_connected

    def _require_ready(self) -> DocumentStore:
        if not self.ready:
            raise StoreNotInitializedError()
        return self.store

    def _lock(self, store: DocumentStore) -> SnapshotLock | None:
        if not self.config.lock_enabled:
            return None
        return SnapshotLock(store, ttl_seconds=self.config.lock_ttl_seconds)

    async def create_snapshot(self, description: str | None = None) -> dict[str, Any]:
        """Create a snapshot of the backup collections."""
        store = self._require_ready()
        lock = self._lock(store)

        if lock is None:
            snapshot_id = await self.writer.create_snapshot(description)
        else:
            async with lock:
                snapshot_id = await self.writer.create_snapshot(description)

        return {"success": True, "snapshotId": snapshot_id}

    async def list_snapshots(self) -> dict[str, Any]:
        """List snapshots, newest first, without their payload."""
        self._require_ready()
        summaries = await self.catalog.list_snapshots()
        return {"success": True, "snapshots": [s.to_dict() for s in summaries]}

    async def restore_snapshot(self, snapshot_id: str) -> dict[str, Any]:
        """Restore all collections of a snapshot."""
        store = self._require_ready()
        lock = self._lock(store)

        if lock is None:
            result = await self.restorer.restore_snapshot(snapshot_id)
        else:
            async with lock:
                result = await self.restorer.restore_snapshot(snapshot_id)

        return {
            "success": True,
            "message": RESTORE_SUCCESS_MESSAGE,
            **result.to_dict(),
        }

    async def health(self) -> dict[str, Any]:
        """Get server health status."""
        components = {"store": "healthy" if self.ready else "unhealthy"}
        overall_healthy = all(v == "healthy" for v in components.values())

        return {
            "healthy": overall_healthy,
            "version": __version__,
            "components": components,
        }
