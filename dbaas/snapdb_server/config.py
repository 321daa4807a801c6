"""
Configuration management for SnapDB Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

The list of collections covered by a snapshot is deliberately NOT configured
here. It lives in snapshot.writer.BACKUP_COLLECTIONS and changes only with a
redeploy, so two snapshots taken by the same build always cover the same set.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


@dataclass(frozen=True)
class StoreConfig:
    """Document store configuration.

    Attributes:
        backend: Which store backend to use
        path: SQLite database file (sqlite backend only)
        busy_timeout_ms: SQLite busy timeout in milliseconds
        wal_mode: SQLite WAL journal mode enabled
        max_batch_size: Largest number of mutations the store accepts per batch
    """

    backend: StoreBackend = StoreBackend.SQLITE
    path: str = "/var/lib/snapdb/store.db"
    busy_timeout_ms: int = 5000
    wal_mode: bool = True
    max_batch_size: int = 500

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("STORE_BACKEND", "sqlite").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: sqlite, memory")

        return cls(
            backend=backend,
            path=os.getenv("STORE_PATH", "/var/lib/snapdb/store.db"),
            busy_timeout_ms=_env_int("SQLITE_BUSY_TIMEOUT_MS", 5000),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            max_batch_size=_env_int("STORE_MAX_BATCH_SIZE", 500),
        )


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshot writer/restorer configuration.

    Attributes:
        collection: Collection reserved for snapshot records
        default_description: Description used when the caller gives none
        batch_ceiling: Mutations queued before a restore batch is committed
        read_page_size: Documents fetched per page while reading a collection
        lock_enabled: Guard create/restore with the advisory store lock
        lock_ttl_seconds: Age after which a held lock is treated as abandoned
    """

    collection: str = "snapshots"
    default_description: str = "Manual Snapshot"
    batch_ceiling: int = 499
    read_page_size: int = 500
    lock_enabled: bool = True
    lock_ttl_seconds: int = 900

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        return cls(
            collection=os.getenv("SNAPSHOT_COLLECTION", "snapshots"),
            default_description=os.getenv("SNAPSHOT_DEFAULT_DESCRIPTION", "Manual Snapshot"),
            batch_ceiling=_env_int("SNAPSHOT_BATCH_CEILING", 499),
            read_page_size=_env_int("SNAPSHOT_READ_PAGE_SIZE", 500),
            lock_enabled=_env_bool("SNAPSHOT_LOCK_ENABLED", "true"),
            lock_ttl_seconds=_env_int("SNAPSHOT_LOCK_TTL_SECONDS", 900),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Origins allowed to call the API ("*" for any)
    """

    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=_env_int("HTTP_PORT", 8081),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        store: Document store configuration
        snapshot: Snapshot configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            snapshot=SnapshotConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store.max_batch_size <= 0:
            raise ValueError("STORE_MAX_BATCH_SIZE must be positive")

        if self.snapshot.batch_ceiling <= 0:
            raise ValueError("SNAPSHOT_BATCH_CEILING must be positive")
        if self.snapshot.batch_ceiling > self.store.max_batch_size:
            raise ValueError(
                f"SNAPSHOT_BATCH_CEILING ({self.snapshot.batch_ceiling}) exceeds "
                f"STORE_MAX_BATCH_SIZE ({self.store.max_batch_size})"
            )
        if self.snapshot.read_page_size <= 0:
            raise ValueError("SNAPSHOT_READ_PAGE_SIZE must be positive")
        if not self.snapshot.collection:
            raise ValueError("SNAPSHOT_COLLECTION must not be empty")
        if self.snapshot.lock_ttl_seconds <= 0:
            raise ValueError("SNAPSHOT_LOCK_TTL_SECONDS must be positive")

        if self.store.backend == StoreBackend.SQLITE:
            if not self.store.path:
                raise ValueError("STORE_PATH is required when STORE_BACKEND=sqlite")
            store_dir = os.path.dirname(self.store.path)
            if store_dir and not os.path.exists(store_dir):
                logger.warning(
                    f"Store directory does not exist: {store_dir}. "
                    "It will be created on connect."
                )
        elif self.store.backend == StoreBackend.MEMORY:
            logger.warning("STORE_BACKEND=memory: snapshots are lost when the process exits")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store.backend.value,
                "store_path": self.store.path
                if self.store.backend == StoreBackend.SQLITE
                else None,
                "store_max_batch_size": self.store.max_batch_size,
                "snapshot_collection": self.snapshot.collection,
                "batch_ceiling": self.snapshot.batch_ceiling,
                "lock_enabled": self.snapshot.lock_enabled,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
