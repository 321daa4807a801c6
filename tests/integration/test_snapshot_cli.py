"""
Integration tests for the snapdb CLI.

Tests cover:
- create/list/restore against a SQLite store file
- Exit codes on failure
"""

import asyncio
import json
import sys
import tempfile
from pathlib import Path

import pytest

from dbaas.snapdb_server.store import SqliteDocumentStore
from dbaas.snapdb_server.tools.snapshot_cli import main


def run_cli(monkeypatch, *args):
    """Run main() with argv and return its exit code."""
    monkeypatch.setattr(sys, "argv", ["snapdb", *args])
    with pytest.raises(SystemExit) as exc_info:
        main()
    return exc_info.value.code


class TestSnapshotCLI:
    """Tests for the snapdb command."""

    @pytest.fixture
    def db_path(self, monkeypatch):
        """Create a store file path in a temporary directory."""
        monkeypatch.delenv("STORE_BACKEND", raising=False)
        with tempfile.TemporaryDirectory() as tmpdir:
            yield str(Path(tmpdir) / "store.db")

    @pytest.fixture
    def seeded(self, db_path):
        """Seed a staff document through the store API."""
        async def seed():
            store = SqliteDocumentStore(db_path)
            await store.connect()
            await store.create_document("staff", {"name": "Ada"}, doc_id="s-1")

        asyncio.run(seed())
        return db_path

    def test_create_list_restore(self, monkeypatch, capsys, seeded):
        """A snapshot created by the CLI can be listed and restored."""
        assert run_cli(monkeypatch, "--store-path", seeded, "--json", "create", "--description", "cli") == 0
        snapshot_id = json.loads(capsys.readouterr().out)["snapshotId"]

        assert run_cli(monkeypatch, "--store-path", seeded, "--json", "list") == 0
        listed = json.loads(capsys.readouterr().out)["snapshots"]
        assert [(s["id"], s["description"]) for s in listed] == [(snapshot_id, "cli")]

        assert run_cli(monkeypatch, "--store-path", seeded, "restore", snapshot_id) == 0
        out = capsys.readouterr().out
        assert f"Restored snapshot {snapshot_id}" in out
        assert "staff: deleted 1, written 1, skipped 0" in out

    def test_list_empty(self, monkeypatch, capsys, db_path):
        """An empty store lists no snapshots."""
        assert run_cli(monkeypatch, "--store-path", db_path, "list") == 0
        assert "No snapshots" in capsys.readouterr().out

    def test_restore_unknown_snapshot(self, monkeypatch, capsys, db_path):
        """Unknown snapshots exit 1 with the error."""
        assert run_cli(monkeypatch, "--store-path", db_path, "restore", "missing") == 1
        assert "Snapshot not found." in capsys.readouterr().err
