"""
Unit tests for the snapshot advisory lock.

Tests cover:
- Lease creation and release
- Contention between owners
- Breaking stale leases
- Lease renewal while held
- Release failures during error propagation
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from dbaas.snapdb_server.snapshot import OperationInProgressError, SnapshotLock
from dbaas.snapdb_server.store import InMemoryDocumentStore, StoreConnectionError


class TestSnapshotLock:
    """Tests for SnapshotLock."""

    @pytest_asyncio.fixture
    async def store(self):
        """Create a connected in-memory store."""
        store = InMemoryDocumentStore()
        await store.connect()
        yield store

    @pytest.mark.asyncio
    async def test_acquire_writes_lease(self, store):
        """Acquiring stores a lease with owner and expiry."""
        lock = SnapshotLock(store, owner="worker-a", ttl_seconds=60)

        await lock.acquire()

        lease = store.dump("_locks")["snapshot-operations"]
        assert lease["owner"] == "worker-a"
        assert lease["expiresAt"] - lease["acquiredAt"] == timedelta(seconds=60)
        assert lock.held
        await lock.release()

    @pytest.mark.asyncio
    async def test_release_removes_lease(self, store):
        """Releasing deletes the lease."""
        lock = SnapshotLock(store, owner="worker-a")
        await lock.acquire()

        await lock.release()

        assert store.dump("_locks") == {}
        assert not lock.held

    @pytest.mark.asyncio
    async def test_second_owner_rejected(self, store):
        """A live lease blocks other owners."""
        holder = SnapshotLock(store, owner="worker-a")
        await holder.acquire()

        with pytest.raises(OperationInProgressError) as exc_info:
            await SnapshotLock(store, owner="worker-b").acquire()

        assert exc_info.value.code == "IN_PROGRESS"
        assert exc_info.value.owner == "worker-a"
        await holder.release()

    @pytest.mark.asyncio
    async def test_stale_lease_is_broken(self, store):
        """An expired lease is taken over."""
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        store.seed(
            "_locks",
            {
                "snapshot-operations": {
                    "owner": "crashed",
                    "acquiredAt": past,
                    "expiresAt": past + timedelta(minutes=15),
                }
            },
        )

        lock = SnapshotLock(store, owner="worker-b")
        await lock.acquire()

        assert store.dump("_locks")["snapshot-operations"]["owner"] == "worker-b"
        await lock.release()

    @pytest.mark.asyncio
    async def test_holder_outliving_ttl_keeps_lock(self, store):
        """A holder running longer than the TTL still excludes others."""
        holder = SnapshotLock(store, owner="worker-a", ttl_seconds=0.6)
        await holder.acquire()
        acquired = store.dump("_locks")["snapshot-operations"]

        await asyncio.sleep(1.0)

        with pytest.raises(OperationInProgressError):
            await SnapshotLock(store, owner="worker-b").acquire()

        lease = store.dump("_locks")["snapshot-operations"]
        assert lease["owner"] == "worker-a"
        assert lease["acquiredAt"] == acquired["acquiredAt"]
        assert lease["expiresAt"] > acquired["expiresAt"]
        await holder.release()

    @pytest.mark.asyncio
    async def test_released_lease_is_not_renewed(self, store):
        """Renewal stops with release."""
        lock = SnapshotLock(store, owner="worker-a", ttl_seconds=0.3)
        await lock.acquire()
        await lock.release()

        await asyncio.sleep(0.3)

        assert store.dump("_locks") == {}

    @pytest.mark.asyncio
    async def test_release_after_takeover_keeps_new_lease(self, store):
        """A holder whose lease was broken does not delete the new one."""
        first = SnapshotLock(store, owner="worker-a")
        await first.acquire()
        await store.delete_document("_locks", "snapshot-operations")
        second = SnapshotLock(store, owner="worker-b")
        await second.acquire()

        await first.release()

        assert store.dump("_locks")["snapshot-operations"]["owner"] == "worker-b"
        await second.release()

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, store):
        """The lease is released when the guarded block raises."""
        with pytest.raises(RuntimeError):
            async with SnapshotLock(store, owner="worker-a"):
                assert "snapshot-operations" in store.dump("_locks")
                raise RuntimeError("boom")

        assert store.dump("_locks") == {}

    @pytest.mark.asyncio
    async def test_release_failure_keeps_original_error(self, store):
        """A store outage during release does not replace the block's error."""
        lock = SnapshotLock(store, owner="worker-a")

        with pytest.raises(RuntimeError, match="restore broke"):
            async with lock:
                await store.close()
                raise RuntimeError("restore broke")

        assert not lock.held

    @pytest.mark.asyncio
    async def test_release_failure_without_error_propagates(self, store):
        """A failed release after a clean block is reported."""
        with pytest.raises(StoreConnectionError):
            async with SnapshotLock(store, owner="worker-a"):
                await store.close()

    @pytest.mark.asyncio
    async def test_named_locks_are_independent(self, store):
        """Locks with different names do not contend."""
        restore = SnapshotLock(store, name="restore", owner="worker-a")
        export = SnapshotLock(store, name="export", owner="worker-b")
        await restore.acquire()
        await export.acquire()

        assert set(store.dump("_locks")) == {"restore", "export"}
        await restore.release()
        await export.release()
