"""
Unit tests for the snapshot data model.

Tests cover:
- Document record conversion
- Snapshot payload validation
- Summary serialization
"""

from datetime import datetime, timezone

import pytest

from dbaas.snapdb_server.snapshot.errors import InvalidSnapshotError
from dbaas.snapdb_server.snapshot.models import (
    Snapshot,
    SnapshotSummary,
    document_record,
    split_record,
    to_iso,
)
from dbaas.snapdb_server.store import Document


class TestDocumentRecords:
    """Tests for document_record and split_record."""

    def test_record_carries_document_id(self):
        """The document id is merged in as "id"."""
        doc = Document("staff", "s-1", {"name": "Ada"})

        assert document_record(doc) == {"id": "s-1", "name": "Ada"}

    def test_document_id_shadows_id_field(self):
        """A stored "id" field never replaces the document key."""
        doc = Document("staff", "s-1", {"id": "legacy-7", "name": "Ada"})

        assert document_record(doc)["id"] == "s-1"

    def test_split_record(self):
        """split_record separates the key from the body."""
        assert split_record({"id": "s-1", "name": "Ada"}) == ("s-1", {"name": "Ada"})

    @pytest.mark.parametrize(
        "record",
        [
            {"name": "Ada"},
            {"id": "", "name": "Ada"},
            {"id": 42},
            ["s-1"],
            None,
        ],
    )
    def test_split_unusable_record(self, record):
        """Records without a string id cannot be restored."""
        assert split_record(record) == (None, {})


class TestSnapshot:
    """Tests for Snapshot.from_document."""

    def test_from_document(self):
        """A well-formed record loads with collections in order."""
        created = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        doc = Document(
            "snapshots",
            "snap-1",
            {
                "createdAt": created,
                "description": "Before rollover",
                "collections": {"schools": [{"id": "x"}], "staff": []},
            },
        )

        snapshot = Snapshot.from_document(doc)

        assert snapshot.id == "snap-1"
        assert snapshot.created_at == created
        assert list(snapshot.collections) == ["schools", "staff"]
        assert snapshot.document_count == 1

    @pytest.mark.parametrize(
        "data",
        [
            {"description": "no payload"},
            {"collections": {}},
            {"collections": None},
            {"collections": ["staff"]},
            {"collections": {"staff": "not a list"}},
        ],
    )
    def test_invalid_payload(self, data):
        """Missing, empty or malformed payloads are rejected."""
        with pytest.raises(InvalidSnapshotError) as exc_info:
            Snapshot.from_document(Document("snapshots", "snap-1", data))

        assert exc_info.value.code == "INVALID_SNAPSHOT"
        assert exc_info.value.snapshot_id == "snap-1"


class TestSnapshotSummary:
    """Tests for SnapshotSummary serialization."""

    def test_to_dict(self):
        """createdAt is rendered as ISO-8601 UTC."""
        summary = SnapshotSummary(
            id="snap-1",
            description="Manual Snapshot",
            created_at=datetime(2024, 5, 1, 8, 0, 0, 123456, tzinfo=timezone.utc),
        )

        assert summary.to_dict() == {
            "id": "snap-1",
            "description": "Manual Snapshot",
            "createdAt": "2024-05-01T08:00:00.123Z",
        }

    def test_missing_fields(self):
        """Records without metadata still list."""
        summary = SnapshotSummary.from_document(Document("snapshots", "snap-1", {}))

        assert summary.to_dict() == {"id": "snap-1", "description": "", "createdAt": None}

    def test_to_iso_naive_is_utc(self):
        """Naive timestamps are taken as UTC."""
        assert to_iso(datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05.000Z"
