"""
Snapshot restorer for SnapDB.

The SnapshotRestorer replaces the live contents of every collection named in
a snapshot with the snapshot's documents.

The store has no transaction spanning more than one batch, so a restore is
atomic per collection at best, never per snapshot:

    for each collection, in snapshot order:
        1. clear:  delete every live document   (chunked, flushed)
        2. write:  set every snapshot record     (chunked, flushed)

A failure aborts the restore with RestoreFailedError. Collections finished
before the failure stay restored, the failing collection may be partially
cleared or rewritten, and later collections are untouched. Nothing is
rolled back; the operator has to verify the store.

Invariants:
    - NotFound/Invalid snapshots are rejected before the first mutation
    - No batch holds more mutations than the batch ceiling
    - All deletes of a collection are committed before its first set
    - Nothing queued for one collection is pending when the next one starts
    - Re-running a restore of the same snapshot yields the same end state

How to change safely:
    - Keep clear and write phases in separate commits
    - Test with collections larger than the ceiling and with injected failures
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from ..store.base import DocumentStore
from .catalog import SnapshotCatalog
from .errors import InvalidSnapshotError, RestoreFailedError
from .models import DocumentRecord, split_record
from .writer import DEFAULT_SNAPSHOT_COLLECTION

logger = logging.getLogger(__name__)

DEFAULT_BATCH_CEILING = 499


class ChunkedBatchWriter:
    """Queues mutations and commits whenever the ceiling is reached.

    The writer owns one in-flight batch at a time; it is never shared
    between restores.
    """

    def __init__(self, store: DocumentStore, ceiling: int) -> None:
        self.store = store
        self.ceiling = ceiling
        self.batches_committed = 0
        self._batch = store.batch()

    @property
    def pending(self) -> int:
        return len(self._batch)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._batch.delete(collection, doc_id)
        await self._commit_if_full()

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._batch.set(collection, doc_id, data)
        await self._commit_if_full()

    async def _commit_if_full(self) -> None:
        if len(self._batch) >= self.ceiling:
            await self.flush()

    async def flush(self) -> None:
        """Commit queued mutations, if any, and start a fresh batch."""
        if len(self._batch) == 0:
            return
        await self._batch.commit()
        self.batches_committed += 1
        self._batch = self.store.batch()


@dataclass
class CollectionRestoreStats:
    """Outcome of restoring one collection.

    Attributes:
        name: Collection name
        deleted: Live documents removed in the clear phase
        written: Snapshot records written
        skipped: Snapshot records without a usable id
        batches: Batches committed for this collection
    """

    name: str
    deleted: int = 0
    written: int = 0
    skipped: int = 0
    batches: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "deleted": self.deleted,
            "written": self.written,
            "skipped": self.skipped,
            "batches": self.batches,
        }


@dataclass
class RestoreResult:
    """Result of a completed restore.

    Attributes:
        snapshot_id: Snapshot that was restored
        collections: Per-collection stats, in restore order
        duration_ms: Total restore duration
    """

    snapshot_id: str
    collections: list[CollectionRestoreStats] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def documents_written(self) -> int:
        return sum(c.written for c in self.collections)

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshotId": self.snapshot_id,
            "collections": [c.to_dict() for c in self.collections],
            "durationMs": self.duration_ms,
        }


class SnapshotRestorer:
    """Restores collections from a snapshot by destructive replacement.

    Attributes:
        store: Document store to restore into
        catalog: Snapshot reader
        batch_ceiling: Mutations per committed batch

    Example:
        >>> restorer = SnapshotRestorer(store, batch_ceiling=499)
        >>> result = await restorer.restore_snapshot(snapshot_id)
        >>> print(f"Restored {result.documents_written} documents")
    """

    def __init__(
        self,
        store: DocumentStore,
        snapshot_collection: str = DEFAULT_SNAPSHOT_COLLECTION,
        batch_ceiling: int | None = None,
        reserved_collections: tuple[str, ...] = (),
    ) -> None:
        """Initialize the restorer.

        Args:
            store: Document store
            snapshot_collection: Collection holding snapshot records
            batch_ceiling: Mutations per batch (defaults to 499, capped at the
                store's max batch size)
            reserved_collections: Collections a snapshot may never overwrite
                besides the snapshot collection itself
        """
        ceiling = DEFAULT_BATCH_CEILING if batch_ceiling is None else batch_ceiling
        if ceiling <= 0:
            raise ValueError("batch_ceiling must be positive")

        self.store = store
        self.catalog = SnapshotCatalog(store, snapshot_collection)
        self.batch_ceiling = min(ceiling, store.max_batch_size)
        self.reserved_collections = frozenset((snapshot_collection, *reserved_collections))

    async def restore_snapshot(self, snapshot_id: str) -> RestoreResult:
        """Replace every collection in the snapshot with the snapshot's documents.

        Args:
            snapshot_id: Snapshot to restore

        Returns:
            RestoreResult with per-collection stats

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist (no mutation made)
            InvalidSnapshotError: If the snapshot payload is unusable (no mutation made)
            RestoreFailedError: If the store failed mid-restore
        """
        start_time = time.time()
        snapshot = await self.catalog.get_snapshot(snapshot_id)

        names = list(snapshot.collections)
        for name in names:
            if not name or name in self.reserved_collections:
                raise InvalidSnapshotError(snapshot_id, f"collection '{name}' cannot be restored")

        logger.info(
            "Starting restore",
            extra={
                "snapshot_id": snapshot_id,
                "collections": len(names),
                "batch_ceiling": self.batch_ceiling,
            },
        )

        result = RestoreResult(snapshot_id=snapshot_id)
        for index, name in enumerate(names):
            try:
                stats = await self._restore_collection(name, snapshot.collections[name])
            except Exception as e:
                logger.error(
                    f"Restore of {snapshot_id} failed in collection {name}: {e}",
                    exc_info=True,
                    extra={
                        "snapshot_id": snapshot_id,
                        "restored": names[:index],
                        "untouched": names[index + 1 :],
                    },
                )
                raise RestoreFailedError(
                    snapshot_id=snapshot_id,
                    restored=names[:index],
                    failed_collection=name,
                    untouched=names[index + 1 :],
                    cause=e,
                ) from e
            result.collections.append(stats)

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Restore completed",
            extra={
                "snapshot_id": snapshot_id,
                "documents": result.documents_written,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    async def _restore_collection(
        self,
        name: str,
        records: list[DocumentRecord],
    ) -> CollectionRestoreStats:
        """Clear one collection and rewrite it from snapshot records."""
        stats = CollectionRestoreStats(name=name)
        writer = ChunkedBatchWriter(self.store, self.batch_ceiling)

        async for doc in self.store.stream_documents(name, page_size=self.batch_ceiling):
            await writer.delete(name, doc.doc_id)
            stats.deleted += 1
        # Deletes must be durable before any set of the same collection
        await writer.flush()

        for record in records:
            doc_id, body = split_record(record)
            if doc_id is None:
                stats.skipped += 1
                continue
            await writer.set(name, doc_id, body)
            stats.written += 1
        await writer.flush()

        stats.batches = writer.batches_committed
        if stats.skipped:
            logger.warning(
                "Skipped snapshot records without id",
                extra={"collection": name, "skipped": stats.skipped},
            )
        logger.debug(
            "Restored collection",
            extra={
                "collection": name,
                "deleted": stats.deleted,
                "written": stats.written,
                "batches": stats.batches,
            },
        )
        return stats
