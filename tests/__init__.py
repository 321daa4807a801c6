"""
SnapDB Test Suite.

This package contains:
- unit/: Unit tests (in-memory store, no I/O)
- integration/: Integration tests (SQLite store, HTTP API)
"""
