"""
Integration tests for the server lifecycle.

Tests cover:
- Startup and graceful shutdown
- Degraded startup when the store cannot be opened
- Logging setup
"""

import asyncio
import logging
import tempfile
from pathlib import Path

import json_log_formatter
import pytest

from dbaas.snapdb_server.config import (
    HttpConfig,
    ObservabilityConfig,
    ServerConfig,
    StoreBackend,
    StoreConfig,
)
from dbaas.snapdb_server.main import Server, setup_logging


async def wait_for_servicer(server):
    for _ in range(100):
        if server.servicer is not None:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("server did not start")


class TestServer:
    """Tests for Server."""

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        """The server starts with a memory store and stops cleanly."""
        config = ServerConfig(
            store=StoreConfig(backend=StoreBackend.MEMORY),
            http=HttpConfig(host="127.0.0.1", port=0),
        )
        server = Server(config)

        task = asyncio.create_task(server.start())
        await wait_for_servicer(server)
        assert server.servicer.ready

        server.request_shutdown()
        await task
        await server.stop()

        assert not server.store.is_connected

    @pytest.mark.asyncio
    async def test_store_failure_starts_degraded(self):
        """A store that cannot be opened leaves the servicer uninitialized."""
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = Path(tmpdir) / "file"
            blocker.write_text("x")
            config = ServerConfig(
                store=StoreConfig(path=str(blocker / "store.db")),
                http=HttpConfig(host="127.0.0.1", port=0),
            )
            server = Server(config)

            task = asyncio.create_task(server.start())
            await wait_for_servicer(server)

            assert server.store is None
            assert not server.servicer.ready

            server.request_shutdown()
            await task
            await server.stop()


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers, root.level = handlers, level

    def test_json_format(self):
        """JSON format installs the JSON formatter."""
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        """Text format uses a plain formatter."""
        setup_logging(ServerConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
