"""
Snapshot CLI tool for SnapDB.

This tool runs snapshot operations directly against a store, without a
running server:
- create: Capture the backup collections into a new snapshot
- list: Show snapshots, newest first
- restore: Replace collections with a snapshot's documents

Usage:
    snapdb create [--description TEXT]
    snapdb list [--json]
    snapdb restore <snapshot-id>

The store is selected with the same environment variables as the server
(STORE_BACKEND, STORE_PATH, ...); --store-path overrides STORE_PATH.

Invariants:
    - Exit code 0 only when the operation completed
    - A failed restore prints which collections were restored and which were not
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from typing import Any

from ..api.servicer import SnapshotServicer
from ..config import SnapshotConfig, StoreBackend, StoreConfig
from ..snapshot.errors import RestoreFailedError, SnapshotError
from ..store import StoreError, create_document_store

logger = logging.getLogger(__name__)


class SnapshotCLI:
    """CLI commands over a SnapshotServicer.

    Example:
        >>> cli = SnapshotCLI(servicer)
        >>> await cli.create("Before import")
        0
    """

    def __init__(self, servicer: SnapshotServicer, as_json: bool = False) -> None:
        self.servicer = servicer
        self.as_json = as_json

    def _emit(self, payload: dict[str, Any], text: str) -> None:
        print(json.dumps(payload, indent=2) if self.as_json else text)

    async def create(self, description: str | None) -> int:
        result = await self.servicer.create_snapshot(description)
        self._emit(result, f"Created snapshot {result['snapshotId']}")
        return 0

    async def list(self) -> int:
        result = await self.servicer.list_snapshots()
        lines = [f"{s['createdAt'] or '-':<26} {s['id']:<34} {s['description']}" for s in result["snapshots"]]
        self._emit(result, "\n".join(lines) if lines else "No snapshots")
        return 0

    async def restore(self, snapshot_id: str) -> int:
        result = await self.servicer.restore_snapshot(snapshot_id)
        lines = [f"Restored snapshot {snapshot_id} in {result['durationMs']}ms"]
        for stats in result["collections"]:
            lines.append(
                f"  {stats['name']}: deleted {stats['deleted']}, "
                f"written {stats['written']}, skipped {stats['skipped']}"
            )
        self._emit(result, "\n".join(lines))
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snapdb", description="SnapDB snapshot administration")
    parser.add_argument("--store-path", help="SQLite store file (overrides STORE_PATH)")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    commands = parser.add_subparsers(dest="command", required=True)

    create = commands.add_parser("create", help="Create a snapshot")
    create.add_argument("--description", help="Snapshot description")

    commands.add_parser("list", help="List snapshots")

    restore = commands.add_parser("restore", help="Restore a snapshot")
    restore.add_argument("snapshot_id", help="Snapshot to restore")

    return parser


async def run(args: argparse.Namespace) -> int:
    """Execute the parsed command against the configured store."""
    store_config = StoreConfig.from_env()
    if args.store_path:
        store_config = dataclasses.replace(
            store_config, backend=StoreBackend.SQLITE, path=args.store_path
        )

    logger.debug(f"Running {args.command} against {store_config.backend.value} store")
    store = create_document_store(store_config)
    await store.connect()
    try:
        cli = SnapshotCLI(SnapshotServicer(store, SnapshotConfig.from_env()), as_json=args.json)
        if args.command == "create":
            return await cli.create(args.description)
        if args.command == "list":
            return await cli.list()
        return await cli.restore(args.snapshot_id)
    finally:
        await store.close()


def main() -> None:
    """CLI entry point for snapshot tool."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        exit_code = asyncio.run(run(args))
    except RestoreFailedError as e:
        print(e.message, file=sys.stderr)
        print(f"  restored:  {', '.join(e.restored) or '-'}", file=sys.stderr)
        print(f"  failed:    {e.failed_collection}", file=sys.stderr)
        print(f"  untouched: {', '.join(e.untouched) or '-'}", file=sys.stderr)
        sys.exit(1)
    except (SnapshotError, StoreError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
