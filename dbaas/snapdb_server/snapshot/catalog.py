"""
Read paths over stored snapshots.

Listing projects only description and createdAt so its cost does not grow
with snapshot size; the full record is read only when restoring.
"""

from __future__ import annotations

import logging

from ..store.base import DocumentStore
from .errors import SnapshotNotFoundError
from .models import FIELD_CREATED_AT, FIELD_DESCRIPTION, Snapshot, SnapshotSummary
from .writer import DEFAULT_SNAPSHOT_COLLECTION

logger = logging.getLogger(__name__)


class SnapshotCatalog:
    """Lists snapshots and loads them in full."""

    def __init__(
        self,
        store: DocumentStore,
        snapshot_collection: str = DEFAULT_SNAPSHOT_COLLECTION,
    ) -> None:
        self.store = store
        self.snapshot_collection = snapshot_collection

    async def list_snapshots(self, limit: int | None = None) -> list[SnapshotSummary]:
        """List snapshot metadata, newest first."""
        documents = await self.store.list_documents(
            self.snapshot_collection,
            order_by=FIELD_CREATED_AT,
            descending=True,
            fields=[FIELD_DESCRIPTION, FIELD_CREATED_AT],
            limit=limit,
        )
        return [SnapshotSummary.from_document(doc) for doc in documents]

    async def get_snapshot(self, snapshot_id: str) -> Snapshot:
        """Load a snapshot including its collections payload.

        Raises:
            SnapshotNotFoundError: If no snapshot has this id
            InvalidSnapshotError: If the record has no usable collections
        """
        doc = await self.store.get_document(self.snapshot_collection, snapshot_id)
        if doc is None:
            raise SnapshotNotFoundError(snapshot_id)
        return Snapshot.from_document(doc)
