"""
Integration tests for snapshots on the SQLite document store.

Tests cover:
- Store semantics shared with the in-memory backend
- Ordered and projected listings in SQL
- Full snapshot/restore cycle on disk
- Persistence across store instances
"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dbaas.snapdb_server.snapshot import (
    SnapshotCatalog,
    SnapshotNotFoundError,
    SnapshotRestorer,
    SnapshotWriter,
)
from dbaas.snapdb_server.store import (
    BatchLimitExceededError,
    DocumentExistsError,
    SqliteDocumentStore,
    StoreConnectionError,
    StoreError,
)


class TestSqliteDocumentStore:
    """Tests for SqliteDocumentStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        """Create store in the data directory."""
        return SqliteDocumentStore(str(Path(data_dir) / "store.db"), wal_mode=False)

    @pytest.mark.asyncio
    async def test_connect_creates_file(self, store):
        """connect() creates the database and schema."""
        await store.connect()

        assert store.is_connected
        assert store.path.exists()

    @pytest.mark.asyncio
    async def test_connect_failure(self, data_dir):
        """An unusable path fails with a connection error."""
        blocker = Path(data_dir) / "file"
        blocker.write_text("not a directory")
        store = SqliteDocumentStore(str(blocker / "store.db"))

        with pytest.raises(StoreConnectionError):
            await store.connect()
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_requires_connection(self, store):
        """Operations fail before connect()."""
        with pytest.raises(StoreConnectionError):
            await store.get_document("staff", "s-1")

    @pytest.mark.asyncio
    async def test_create_get_delete(self, store):
        """Documents round-trip through SQLite."""
        await store.connect()
        taken = datetime(2024, 2, 29, 9, 15, tzinfo=timezone.utc)

        doc_id = await store.create_document("exams", {"score": 91.5, "takenAt": taken, "tags": ["a"]})
        doc = await store.get_document("exams", doc_id)

        assert doc.data == {"score": 91.5, "takenAt": taken, "tags": ["a"]}
        assert await store.delete_document("exams", doc_id) is True
        assert await store.get_document("exams", doc_id) is None

    @pytest.mark.asyncio
    async def test_create_duplicate_id(self, store):
        """Explicit ids are unique per collection."""
        await store.connect()
        await store.create_document("_locks", {"owner": "a"}, doc_id="lock")

        with pytest.raises(DocumentExistsError):
            await store.create_document("_locks", {"owner": "b"}, doc_id="lock")

        # Same id in another collection is fine
        await store.create_document("other", {"owner": "b"}, doc_id="lock")

    @pytest.mark.asyncio
    async def test_stream_pages(self, store):
        """Streaming pages through the collection in id order."""
        await store.connect()
        batch = store.batch()
        for i in range(12):
            batch.set("books", f"b-{i:02d}", {"n": i})
        await batch.commit()

        ids = [doc.doc_id async for doc in store.stream_documents("books", page_size=5)]

        assert ids == [f"b-{i:02d}" for i in range(12)]

    @pytest.mark.asyncio
    async def test_list_ordered_projected(self, store):
        """Listings order by timestamp and decode only requested fields."""
        await store.connect()
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for day, name in [(2, "b"), (1, "a"), (3, "c")]:
            await store.create_document(
                "snapshots",
                {"createdAt": base + timedelta(days=day), "description": name, "collections": {"x": []}},
                doc_id=name,
            )

        docs = await store.list_documents(
            "snapshots",
            order_by="createdAt",
            descending=True,
            fields=["description", "createdAt"],
        )

        assert [d.doc_id for d in docs] == ["c", "b", "a"]
        assert docs[0].data == {"description": "c", "createdAt": base + timedelta(days=3)}

    @pytest.mark.asyncio
    async def test_list_single_field_projection(self, store):
        """A one-field projection still decodes correctly."""
        await store.connect()
        await store.create_document("snapshots", {"description": "only", "other": 1}, doc_id="s")

        docs = await store.list_documents("snapshots", fields=["description"], limit=5)

        assert docs[0].data == {"description": "only"}

    @pytest.mark.asyncio
    async def test_list_rejects_quoted_field(self, store):
        """Field names cannot break out of the JSON path."""
        await store.connect()

        with pytest.raises(StoreError):
            await store.list_documents("snapshots", order_by='x"y')

    @pytest.mark.asyncio
    async def test_batch_limit(self, data_dir):
        """The batch limit is enforced before commit."""
        store = SqliteDocumentStore(str(Path(data_dir) / "small.db"), max_batch_size=2)
        await store.connect()
        batch = store.batch()
        batch.set("staff", "s-1", {})
        batch.set("staff", "s-2", {})

        with pytest.raises(BatchLimitExceededError):
            batch.delete("staff", "s-3")


class TestSqliteSnapshotCycle:
    """Snapshot and restore end to end on SQLite."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def db_path(self, data_dir):
        return str(Path(data_dir) / "snapdb" / "store.db")

    @pytest.mark.asyncio
    async def test_round_trip_beyond_batch_ceiling(self, db_path):
        """More than two batches worth of documents restore exactly."""
        store = SqliteDocumentStore(db_path)
        await store.connect()

        batch = store.batch()
        for i in range(450):
            batch.set("staff", f"s-{i:04d}", {"name": f"Staff {i}", "active": i % 2 == 0})
        await batch.commit()
        batch = store.batch()
        for i in range(450, 1050):
            if len(batch) == 450:
                await batch.commit()
                batch = store.batch()
            batch.set("staff", f"s-{i:04d}", {"name": f"Staff {i}", "active": i % 2 == 0})
        await batch.commit()

        writer = SnapshotWriter(store, ["staff", "books"])
        snapshot_id = await writer.create_snapshot("Nightly")

        # Diverge heavily
        batch = store.batch()
        for i in range(0, 400):
            batch.delete("staff", f"s-{i:04d}")
        batch.set("books", "b-1", {"title": "Dune"})
        await batch.commit()

        result = await SnapshotRestorer(store, batch_ceiling=499).restore_snapshot(snapshot_id)

        docs = [doc async for doc in store.stream_documents("staff")]
        assert len(docs) == 1050
        assert docs[7].data == {"name": "Staff 7", "active": False}
        assert [doc async for doc in store.stream_documents("books")] == []
        assert result.collections[0].written == 1050

    @pytest.mark.asyncio
    async def test_snapshots_survive_reopen(self, db_path):
        """Snapshots are readable by a new store instance."""
        store = SqliteDocumentStore(db_path)
        await store.connect()
        await store.create_document("staff", {"name": "Ada"}, doc_id="s-1")
        snapshot_id = await SnapshotWriter(store, ["staff"]).create_snapshot()
        await store.close()

        reopened = SqliteDocumentStore(db_path)
        await reopened.connect()
        catalog = SnapshotCatalog(reopened)

        summaries = await catalog.list_snapshots()
        snapshot = await catalog.get_snapshot(snapshot_id)

        assert [s.id for s in summaries] == [snapshot_id]
        assert summaries[0].description == "Manual Snapshot"
        assert snapshot.collections == {"staff": [{"id": "s-1", "name": "Ada"}]}

    @pytest.mark.asyncio
    async def test_restore_unknown_snapshot(self, db_path):
        """Not found leaves the database untouched."""
        store = SqliteDocumentStore(db_path)
        await store.connect()
        await store.create_document("staff", {"name": "Ada"}, doc_id="s-1")

        with pytest.raises(SnapshotNotFoundError):
            await SnapshotRestorer(store).restore_snapshot("missing")

        assert (await store.get_document("staff", "s-1")).data == {"name": "Ada"}
