"""
API module for SnapDB server.

This module provides the external interfaces:
- SnapshotServicer (operations shared by HTTP and CLI)
- HTTP server (JSON API)

Invariants:
    - Every failure is reported to the caller, never only logged
    - 4xx responses mean nothing was changed

How to change safely:
    - Add new endpoints, don't modify existing ones
    - Keep servicer results JSON-serializable
"""

from .http_server import create_http_app, run_http_server
from .servicer import SnapshotServicer, StoreNotInitializedError

__all__ = [
    "SnapshotServicer",
    "StoreNotInitializedError",
    "create_http_app",
    "run_http_server",
]
