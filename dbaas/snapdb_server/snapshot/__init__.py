"""
Snapshot module for SnapDB.

This module handles full-database backup and restore:
- SnapshotWriter: capture the backup collections into one snapshot record
- SnapshotRestorer: destructively replace collections from a snapshot
- SnapshotCatalog: list snapshots without reading their payload
- SnapshotLock: advisory lease serializing create/restore calls

Invariants:
    - Snapshots are immutable once written
    - Restores are atomic per collection, never per snapshot
    - Failed restores report the mixed state instead of hiding it
"""

from .catalog import SnapshotCatalog
from .errors import (
    InvalidSnapshotError,
    OperationInProgressError,
    RestoreFailedError,
    SnapshotError,
    SnapshotNotFoundError,
)
from .lock import SnapshotLock
from .models import Snapshot, SnapshotSummary
from .restorer import CollectionRestoreStats, RestoreResult, SnapshotRestorer
from .writer import BACKUP_COLLECTIONS, SnapshotWriter

__all__ = [
    "BACKUP_COLLECTIONS",
    "SnapshotWriter",
    "SnapshotRestorer",
    "SnapshotCatalog",
    "SnapshotLock",
    "Snapshot",
    "SnapshotSummary",
    "RestoreResult",
    "CollectionRestoreStats",
    "SnapshotError",
    "SnapshotNotFoundError",
    "InvalidSnapshotError",
    "OperationInProgressError",
    "RestoreFailedError",
]
