"""
SnapDB Server - Snapshot and restore for a collection-oriented document store.

This package implements full-database backup and recovery over a store that
has no multi-collection transactions:
- Collections are read in full and frozen into one immutable snapshot record
- A restore clears and rewrites each collection named by a snapshot
- Mutations are chunked under the store's per-batch operation ceiling

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │  Operator   │────▶│    HTTP     │────▶│ SnapshotService │
    │ (HTTP/CLI)  │     │   Server    │     │                 │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                                 ┌───────────────────┼───────────────────┐
                                 │                   │                   │
                                 ▼                   ▼                   ▼
                            ┌─────────┐         ┌─────────┐         ┌─────────┐
                            │ Writer  │         │Restorer │         │ Catalog │
                            └────┬────┘         └────┬────┘         └────┬────┘
                                 │                   │                   │
                                 ▼                   ▼                   ▼
                            ┌─────────────────────────────────────────────────┐
                            │       DocumentStore (SQLite / in-memory)        │
                            └─────────────────────────────────────────────────┘

Invariants:
    - A snapshot is written once and never updated
    - A snapshot holds every configured collection, empty ones included
    - A restore finishes one collection before it touches the next
    - No batch ever holds more mutations than the configured ceiling

How to change safely:
    - Add snapshot record fields additively; old snapshots must stay restorable
    - Changing the backup collection list is a redeploy, not a config change
    - Test restore against stores with more documents than the batch ceiling

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
