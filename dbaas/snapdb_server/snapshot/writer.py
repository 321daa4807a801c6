"""
Snapshot writer for SnapDB.

The SnapshotWriter reads a fixed, ordered list of collections in full and
persists them as one self-contained snapshot record.

Consistency:
    Collections are read one after another with no cross-collection
    isolation. Writes landing in the store while a snapshot is taken may or
    may not be captured, independently per collection.

Invariants:
    - Every configured collection appears in the snapshot, empty ones as []
    - The snapshot is persisted in a single write after all reads succeeded
    - A failed read aborts the operation before anything is written

How to change safely:
    - Changing BACKUP_COLLECTIONS is a redeploy; old snapshots keep their own set
    - Add record fields additively so the restorer can read old snapshots
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from ..store.base import DocumentStore
from .models import DocumentRecord, Snapshot, document_record

logger = logging.getLogger(__name__)

# Collections captured by every snapshot, in backup order. Subcollections
# (classroom and primary inventories) are not covered.
BACKUP_COLLECTIONS: tuple[str, ...] = (
    "schools",
    "staff",
    "users",
    "invites",
    "ohsRecords",
    "counselling",
    "disciplinary",
    "books",
    "libraryTransactions",
    "examResults",
    "lessonPlans",
    "workbookPlans",
)

DEFAULT_SNAPSHOT_COLLECTION = "snapshots"
DEFAULT_DESCRIPTION = "Manual Snapshot"


class SnapshotWriter:
    """Creates snapshots of a fixed set of collections.

    Attributes:
        store: Document store to read from and write the snapshot to
        collections: Ordered collection names to back up
        snapshot_collection: Collection holding snapshot records
        default_description: Label used when no description is supplied
        page_size: Documents fetched per page while scanning a collection

    Example:
        >>> writer = SnapshotWriter(store, BACKUP_COLLECTIONS)
        >>> snapshot_id = await writer.create_snapshot("Before term rollover")
    """

    def __init__(
        self,
        store: DocumentStore,
        collections: Sequence[str] = BACKUP_COLLECTIONS,
        snapshot_collection: str = DEFAULT_SNAPSHOT_COLLECTION,
        default_description: str = DEFAULT_DESCRIPTION,
        page_size: int = 500,
    ) -> None:
        if not collections:
            raise ValueError("At least one collection must be backed up")
        if len(set(collections)) != len(collections):
            raise ValueError("Backup collections must be unique")
        if snapshot_collection in collections:
            raise ValueError(f"Snapshot collection '{snapshot_collection}' cannot back itself up")

        self.store = store
        self.collections = tuple(collections)
        self.snapshot_collection = snapshot_collection
        self.default_description = default_description
        self.page_size = page_size

    async def read_collection(self, name: str) -> list[DocumentRecord]:
        """Read every document of a collection as snapshot records."""
        return [
            document_record(doc)
            async for doc in self.store.stream_documents(name, page_size=self.page_size)
        ]

    async def create_snapshot(self, description: str | None = None) -> str:
        """Capture all backup collections and persist them as a new snapshot.

        Args:
            description: Optional label; blank values fall back to the default

        Returns:
            The store-generated snapshot id

        Raises:
            StoreError: If any read or the final write fails (nothing is persisted
                unless the final write succeeds)
        """
        start_time = time.time()
        if not description or not description.strip():
            description = self.default_description

        logger.info(
            "Creating snapshot",
            extra={"collections": len(self.collections), "description": description},
        )

        captured: dict[str, list[DocumentRecord]] = {}
        for name in self.collections:
            captured[name] = await self.read_collection(name)
            logger.debug(
                "Captured collection",
                extra={"collection": name, "documents": len(captured[name])},
            )

        snapshot = Snapshot(
            id="",
            created_at=datetime.now(timezone.utc),
            description=description,
            collections=captured,
        )
        snapshot_id = await self.store.create_document(self.snapshot_collection, snapshot.to_record())

        logger.info(
            "Created snapshot",
            extra={
                "snapshot_id": snapshot_id,
                "documents": snapshot.document_count,
                "duration_ms": int((time.time() - start_time) * 1000),
            },
        )
        return snapshot_id
