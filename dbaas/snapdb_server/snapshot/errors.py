"""
Error types for snapshot operations.

- SnapshotError: Base exception
- SnapshotNotFoundError: Snapshot id does not exist
- InvalidSnapshotError: Snapshot record is missing or has an empty payload
- OperationInProgressError: Another create/restore holds the lock
- RestoreFailedError: Restore aborted part-way, store may be in a mixed state

Invariants:
    - All errors inherit from SnapshotError
    - Errors carry a stable code for the HTTP layer
    - NotFound/Invalid/InProgress are raised before any mutation
"""

from __future__ import annotations

from typing import Any


class SnapshotError(Exception):
    """Base exception for snapshot errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SNAPSHOT_ERROR"
        self.details = details or {}


class SnapshotNotFoundError(SnapshotError):
    """Snapshot record does not exist."""

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(
            "Snapshot not found.",
            code="NOT_FOUND",
            details={"snapshotId": snapshot_id},
        )
        self.snapshot_id = snapshot_id


class InvalidSnapshotError(SnapshotError):
    """Snapshot record exists but cannot be restored.

    Raised when:
    - collections field is missing or empty
    - a collection entry is not a list of document records
    """

    def __init__(self, snapshot_id: str, reason: str) -> None:
        super().__init__(
            f"Snapshot data is invalid or empty: {reason}",
            code="INVALID_SNAPSHOT",
            details={"snapshotId": snapshot_id, "reason": reason},
        )
        self.snapshot_id = snapshot_id
        self.reason = reason


class OperationInProgressError(SnapshotError):
    """Another snapshot operation holds the advisory lock."""

    def __init__(self, lock_name: str, owner: str | None = None) -> None:
        super().__init__(
            "Another snapshot operation is in progress.",
            code="IN_PROGRESS",
            details={"lock": lock_name, "owner": owner},
        )
        self.lock_name = lock_name
        self.owner = owner


class RestoreFailedError(SnapshotError):
    """Restore aborted after it started mutating the store.

    No rollback is attempted. Collections in restored hold the snapshot's
    documents, failed_collection may be partially cleared or rewritten, and
    collections in untouched still hold their pre-restore documents.

    Attributes:
        snapshot_id: Snapshot being restored
        restored: Collections fully restored before the failure
        failed_collection: Collection being processed when the failure occurred
        untouched: Collections not yet started
        cause: Underlying exception
    """

    def __init__(
        self,
        snapshot_id: str,
        restored: list[str],
        failed_collection: str,
        untouched: list[str],
        cause: BaseException,
    ) -> None:
        super().__init__(
            f"Restore failed: {cause}. The store may be in a mixed state; "
            f"verify collection '{failed_collection}' and the collections listed as restored.",
            code="RESTORE_FAILED",
            details={
                "snapshotId": snapshot_id,
                "restored": list(restored),
                "failedCollection": failed_collection,
                "untouched": list(untouched),
            },
        )
        self.snapshot_id = snapshot_id
        self.restored = list(restored)
        self.failed_collection = failed_collection
        self.untouched = list(untouched)
        self.cause = cause
