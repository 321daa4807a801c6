"""
Advisory lock serializing snapshot operations.

The store has no lock primitive, so the lock is a lease document created
with create_document, which fails when the id already exists. That gives
compare-and-set on absence: exactly one caller creates the lease.

    _locks/<name> = {owner, acquiredAt, expiresAt}

While the lock is held a heartbeat task pushes expiresAt forward every
ttl / 3 seconds, so an operation may run longer than the TTL. A lease past
expiresAt therefore belongs to a holder that stopped heartbeating (crashed
or lost the store) and is broken by the next acquirer. Breaking is
delete + create and is not atomic: two callers breaking the same stale
lease at the same moment can both get in.

The lock only excludes callers that use it. Writes made directly to the
store are not blocked.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from datetime import datetime, timedelta, timezone
from types import TracebackType

from ..store.base import DocumentExistsError, DocumentStore, StoreError
from .errors import OperationInProgressError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_COLLECTION = "_locks"
DEFAULT_LOCK_NAME = "snapshot-operations"


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class SnapshotLock:
    """Lease-based advisory lock stored in the document store.

    Example:
        >>> async with SnapshotLock(store):
        ...     await restorer.restore_snapshot(snapshot_id)
    """

    def __init__(
        self,
        store: DocumentStore,
        name: str = DEFAULT_LOCK_NAME,
        ttl_seconds: float = 900,
        lock_collection: str = DEFAULT_LOCK_COLLECTION,
        owner: str | None = None,
    ) -> None:
        self.store = store
        self.name = name
        self.ttl = timedelta(seconds=ttl_seconds)
        self.lock_collection = lock_collection
        self.owner = owner or _default_owner()
        self._held = False
        self._heartbeat: asyncio.Task | None = None

    @property
    def held(self) -> bool:
        return self._held

    def _lease(self, acquired_at: datetime | None, renewed_at: datetime) -> dict:
        return {
            "owner": self.owner,
            "acquiredAt": acquired_at,
            "expiresAt": renewed_at + self.ttl,
        }

    async def _try_create(self) -> bool:
        now = datetime.now(timezone.utc)
        try:
            await self.store.create_document(
                self.lock_collection,
                self._lease(now, now),
                doc_id=self.name,
            )
        except DocumentExistsError:
            return False
        return True

    async def acquire(self) -> None:
        """Take the lock and start renewing the lease.

        Raises:
            OperationInProgressError: If a live lease is held by another owner
        """
        if self._held:
            return

        if not await self._try_create():
            existing = await self.store.get_document(self.lock_collection, self.name)
            if existing is not None:
                expires_at = existing.data.get("expiresAt")
                if isinstance(expires_at, datetime) and expires_at > datetime.now(timezone.utc):
                    raise OperationInProgressError(self.name, existing.data.get("owner"))

                logger.warning(
                    "Breaking stale snapshot lock",
                    extra={"lock": self.name, "stale_owner": existing.data.get("owner")},
                )
                await self.store.delete_document(self.lock_collection, self.name)

            if not await self._try_create():
                raise OperationInProgressError(self.name)

        self._held = True
        self._heartbeat = asyncio.create_task(self._renew_loop())
        logger.debug("Acquired snapshot lock", extra={"lock": self.name, "owner": self.owner})

    async def renew(self) -> bool:
        """Push the lease expiry forward. Returns False if the lease is no longer ours."""
        existing = await self.store.get_document(self.lock_collection, self.name)
        if existing is None or existing.data.get("owner") != self.owner:
            return False

        batch = self.store.batch()
        lease = self._lease(existing.data.get("acquiredAt"), datetime.now(timezone.utc))
        batch.set(self.lock_collection, self.name, lease)
        await batch.commit()
        return True

    async def _renew_loop(self) -> None:
        interval = self.ttl.total_seconds() / 3
        while True:
            await asyncio.sleep(interval)
            try:
                renewed = await self.renew()
            except StoreError as e:
                # Keep trying; the lease survives until expiresAt
                logger.warning(f"Snapshot lock renewal failed: {e}", extra={"lock": self.name})
                continue
            if not renewed:
                logger.warning(
                    "Snapshot lock lease was taken over while held",
                    extra={"lock": self.name, "owner": self.owner},
                )
                return

    async def _stop_heartbeat(self) -> None:
        if self._heartbeat is None:
            return
        self._heartbeat.cancel()
        try:
            await self._heartbeat
        except asyncio.CancelledError:
            pass
        self._heartbeat = None

    async def release(self) -> None:
        """Release the lock if this instance still owns the lease.

        Raises:
            StoreError: If the store cannot be reached; the lease then expires
                after the TTL since it is no longer renewed
        """
        if not self._held:
            return
        await self._stop_heartbeat()

        try:
            existing = await self.store.get_document(self.lock_collection, self.name)
            if existing is None or existing.data.get("owner") != self.owner:
                logger.warning(
                    "Snapshot lock lease was taken over before release",
                    extra={"lock": self.name, "owner": self.owner},
                )
                return
            await self.store.delete_document(self.lock_collection, self.name)
        finally:
            self._held = False
        logger.debug("Released snapshot lock", extra={"lock": self.name, "owner": self.owner})

    async def __aenter__(self) -> SnapshotLock:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            await self.release()
        except StoreError as e:
            if exc is None:
                raise
            # The operation's own error is the one the caller must see
            logger.error(
                f"Snapshot lock release failed after {type(exc).__name__}: {e}",
                extra={"lock": self.name, "owner": self.owner},
            )
