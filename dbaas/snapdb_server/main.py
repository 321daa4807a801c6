"""
SnapDB Server - Main entry point.

This module starts the SnapDB server:
- Document store connection
- Snapshot servicer (writer, restorer, catalog)
- HTTP server

Usage:
    snapdb-server
    python -m dbaas.snapdb_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - A store that fails to connect does not stop the server; every snapshot
      request then answers 500 until the process is restarted
    - Graceful shutdown closes the store after the HTTP server stops

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .api import SnapshotServicer, run_http_server
from .config import ServerConfig
from .store import DocumentStore, StoreError, create_document_store

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


class Server:
    """SnapDB Server orchestrator.

    Manages the lifecycle of the store connection and the HTTP server.

    Attributes:
        config: Server configuration
        store: Document store instance (None if it failed to initialize)
        servicer: Snapshot servicer

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.store: DocumentStore | None = None
        self.servicer: SnapshotServicer | None = None

        self._tasks: list[asyncio.Task] = []

    async def _connect_store(self) -> DocumentStore | None:
        store = create_document_store(self.config.store)
        try:
            await store.connect()
        except StoreError as e:
            logger.error(f"Document store initialization failed: {e}", exc_info=True)
            return None
        logger.info("Document store connected", extra={"backend": self.config.store.backend.value})
        return store

    async def start(self) -> None:
        """Start the server and all components."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting SnapDB server")
        self.config.log_config()

        try:
            self.store = await self._connect_store()
            self.servicer = SnapshotServicer(self.store, self.config.snapshot)

            http_task = asyncio.create_task(run_http_server(self.servicer, self.config.http))
            self._tasks.append(http_task)

            self._running = True
            logger.info("SnapDB server started successfully")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running and not self._tasks:
            return

        logger.info("Stopping SnapDB server")

        for task in self._tasks:
            task.cancel()

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.store:
            await self.store.close()

        self._running = False
        logger.info("SnapDB server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
