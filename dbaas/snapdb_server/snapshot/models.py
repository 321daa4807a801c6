"""
Snapshot data model.

A snapshot record is stored as one document in the snapshot collection:

    {
        "createdAt": <store timestamp>,
        "description": "Manual Snapshot",
        "collections": {
            "<collection name>": [{"id": "<doc id>", <field>: <value>, ...}, ...],
            ...
        }
    }

Invariants:
    - Every document record carries its original document id as "id"
    - Collections with no documents are present as empty lists
    - Records are written once and never updated
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..store.base import Document
from .errors import InvalidSnapshotError

logger = logging.getLogger(__name__)

FIELD_CREATED_AT = "createdAt"
FIELD_DESCRIPTION = "description"
FIELD_COLLECTIONS = "collections"
RECORD_ID = "id"

# A document as captured in a snapshot: its fields plus "id"
DocumentRecord = dict[str, Any]


def document_record(doc: Document) -> DocumentRecord:
    """Merge a document's id into its fields.

    A stored field named "id" is shadowed by the document id, which is what
    restore uses as the document key.
    """
    return {RECORD_ID: doc.doc_id, **{k: v for k, v in doc.data.items() if k != RECORD_ID}}


def split_record(record: Any) -> tuple[str | None, dict[str, Any]]:
    """Split a document record into (doc_id, body).

    Returns (None, {}) for records that cannot be restored: non-mappings and
    records without a usable string id.
    """
    if not isinstance(record, dict):
        return None, {}
    doc_id = record.get(RECORD_ID)
    if not isinstance(doc_id, str) or not doc_id:
        return None, {}
    return doc_id, {k: v for k, v in record.items() if k != RECORD_ID}


def to_iso(value: datetime | None) -> str | None:
    """Format a timestamp as an ISO-8601 UTC string with millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_created_at(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable snapshot createdAt: {value!r}")
    return None


@dataclass
class SnapshotSummary:
    """Snapshot metadata without the collections payload.

    Attributes:
        id: Snapshot identifier
        description: Free-text label
        created_at: Creation timestamp
    """

    id: str
    description: str
    created_at: datetime | None

    @classmethod
    def from_document(cls, doc: Document) -> SnapshotSummary:
        return cls(
            id=doc.doc_id,
            description=doc.data.get(FIELD_DESCRIPTION, ""),
            created_at=_parse_created_at(doc.data.get(FIELD_CREATED_AT)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "createdAt": to_iso(self.created_at),
        }


@dataclass
class Snapshot:
    """A full snapshot including the collections payload.

    Attributes:
        id: Snapshot identifier
        created_at: Creation timestamp
        description: Free-text label
        collections: Collection name to document records, in backup order
    """

    id: str
    created_at: datetime | None
    description: str
    collections: dict[str, list[DocumentRecord]] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Document) -> Snapshot:
        """Build a Snapshot from its stored record, validating the payload shape.

        Raises:
            InvalidSnapshotError: If collections is missing, empty, or malformed
        """
        collections = doc.data.get(FIELD_COLLECTIONS)
        if not collections:
            raise InvalidSnapshotError(doc.doc_id, "collections field is missing or empty")
        if not isinstance(collections, dict):
            raise InvalidSnapshotError(doc.doc_id, "collections field is not a mapping")
        for name, records in collections.items():
            if not isinstance(records, list):
                raise InvalidSnapshotError(doc.doc_id, f"collection '{name}' is not a list")

        return cls(
            id=doc.doc_id,
            created_at=_parse_created_at(doc.data.get(FIELD_CREATED_AT)),
            description=doc.data.get(FIELD_DESCRIPTION, ""),
            collections=collections,
        )

    def to_record(self) -> dict[str, Any]:
        """Stored shape of the snapshot (the id is the document key)."""
        return {
            FIELD_CREATED_AT: self.created_at,
            FIELD_DESCRIPTION: self.description,
            FIELD_COLLECTIONS: self.collections,
        }

    @property
    def document_count(self) -> int:
        return sum(len(records) for records in self.collections.values())

    def summary(self) -> SnapshotSummary:
        return SnapshotSummary(id=self.id, description=self.description, created_at=self.created_at)
