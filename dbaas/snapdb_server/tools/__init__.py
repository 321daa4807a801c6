"""
CLI tools for SnapDB administration.

This module provides command-line tools for:
- snapshot_cli: Create, list and restore snapshots

Invariants:
    - Tools work offline (no running server required)
    - Tools honour the same advisory lock as the server
"""

from .snapshot_cli import SnapshotCLI

__all__ = ["SnapshotCLI"]
