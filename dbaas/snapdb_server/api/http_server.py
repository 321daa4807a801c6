"""
HTTP server implementation for SnapDB.

This module exposes the snapshot operations as a small JSON API:

    POST /v1/snapshots           create a snapshot      -> 201
    GET  /v1/snapshots           list snapshots         -> 200
    POST /v1/snapshots/restore   restore a snapshot     -> 200
    GET  /v1/health              store connectivity     -> 200 / 503

Authentication and authorization happen in front of this server.

Error responses are always {"error": ..., "error_code": ...}:
    - 400: malformed body or missing snapshotId (nothing happened)
    - 404: snapshot not found (nothing happened)
    - 409: another snapshot operation is in progress (nothing happened)
    - 500: invalid snapshot, store not initialized, or store failure; a 500
      from restore with error_code RESTORE_FAILED means the store may be in
      a mixed state

Invariants:
    - Every failure path returns a non-2xx JSON response
    - Errors are logged once, at this boundary

How to change safely:
    - Keep response field names stable, operators script against them
    - Add endpoints under /v1 without changing existing ones
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError

from ..config import HttpConfig
from ..snapshot.errors import (
    InvalidSnapshotError,
    OperationInProgressError,
    RestoreFailedError,
    SnapshotError,
    SnapshotNotFoundError,
)
from ..store.base import StoreError
from .servicer import SnapshotServicer, StoreNotInitializedError

logger = logging.getLogger(__name__)


class CreateSnapshotRequest(BaseModel):
    """Request to create a snapshot."""

    description: str | None = Field(None, description="Free-text label for the snapshot")


class RestoreSnapshotRequest(BaseModel):
    """Request to restore a snapshot."""

    snapshotId: str = Field(..., min_length=1, description="Snapshot to restore")


def error_response(
    status: int,
    message: str,
    code: str,
    details: dict[str, Any] | None = None,
) -> web.Response:
    """Build the JSON error body shared by all failure paths."""
    body: dict[str, Any] = {"error": message, "error_code": code}
    if details:
        body.update(details)
    return web.json_response(body, status=status)


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message, "error_code": "INVALID_ARGUMENT"}),
        content_type="application/json",
    )


async def read_json_body(request: web.Request) -> dict[str, Any]:
    """Parse the request body as a JSON object; an absent body is {}.

    Raises:
        web.HTTPBadRequest: If the body is not a JSON object
    """
    if not request.body_exists:
        return {}

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise _bad_request("Invalid JSON body")

    if body is None:
        return {}
    if not isinstance(body, dict):
        raise _bad_request("JSON body must be an object")
    return body


def create_http_app(
    servicer: SnapshotServicer,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create an HTTP application for SnapDB.

    Args:
        servicer: SnapshotServicer instance
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    app = web.Application()

    app.router.add_post("/v1/snapshots", lambda r: handle_create_snapshot(r, servicer))
    app.router.add_get("/v1/snapshots", lambda r: handle_list_snapshots(r, servicer))
    app.router.add_post("/v1/snapshots/restore", lambda r: handle_restore_snapshot(r, servicer))
    app.router.add_get("/v1/health", lambda r: handle_health(r, servicer))

    def add_cors_headers(request: web.Request, headers: Any) -> None:
        origin = request.headers.get("Origin", "*")
        if "*" in config.cors_origins or origin in config.cors_origins:
            headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"

    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                add_cors_headers(request, e.headers)
                raise

        add_cors_headers(request, response.headers)
        return response

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException as e:
            if e.content_type == "application/json":
                raise
            # Router errors (unknown path, wrong method) get the JSON error shape
            response = error_response(e.status, e.reason, "HTTP_ERROR")
            if "Allow" in e.headers:
                response.headers["Allow"] = e.headers["Allow"]
            return response
        except SnapshotNotFoundError as e:
            logger.info(f"Snapshot not found: {e.snapshot_id}")
            return error_response(404, e.message, e.code)
        except OperationInProgressError as e:
            logger.warning(f"Rejected {request.path}: {e.message}", extra=e.details)
            return error_response(409, e.message, e.code)
        except InvalidSnapshotError as e:
            logger.error(f"Invalid snapshot {e.snapshot_id}: {e.reason}")
            return error_response(500, e.message, e.code)
        except RestoreFailedError as e:
            # Already logged with traceback by the restorer
            return error_response(500, e.message, e.code, e.details)
        except StoreNotInitializedError as e:
            logger.error(f"Request to {request.path} with no store available")
            return error_response(500, e.message, e.code)
        except SnapshotError as e:
            logger.error(f"Snapshot error on {request.path}: {e}", exc_info=True)
            return error_response(500, e.message, e.code)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return error_response(500, str(e), "INTERNAL")

    # Order matters: CORS outermost, error conversion inside it
    app.middlewares.append(cors_middleware)
    app.middlewares.append(error_middleware)

    return app


async def handle_create_snapshot(request: web.Request, servicer: SnapshotServicer) -> web.Response:
    """Handle POST /v1/snapshots - Create a snapshot."""
    body = await read_json_body(request)
    try:
        params = CreateSnapshotRequest.model_validate(body)
    except ValidationError:
        raise _bad_request("description must be a string")

    try:
        result = await servicer.create_snapshot(params.description)
    except StoreError as e:
        logger.error(f"Snapshot creation failed: {e}", exc_info=True)
        return error_response(500, f"Snapshot creation failed: {e}", "STORE_ERROR")

    return web.json_response(result, status=201)


async def handle_list_snapshots(request: web.Request, servicer: SnapshotServicer) -> web.Response:
    """Handle GET /v1/snapshots - List snapshots, newest first."""
    try:
        result = await servicer.list_snapshots()
    except StoreError as e:
        logger.error(f"Fetching snapshots failed: {e}", exc_info=True)
        return error_response(500, f"Fetching snapshots failed: {e}", "STORE_ERROR")

    return web.json_response(result)


async def handle_restore_snapshot(request: web.Request, servicer: SnapshotServicer) -> web.Response:
    """Handle POST /v1/snapshots/restore - Restore a snapshot."""
    body = await read_json_body(request)
    try:
        params = RestoreSnapshotRequest.model_validate(body)
    except ValidationError:
        raise _bad_request("Snapshot ID is required.")

    try:
        result = await servicer.restore_snapshot(params.snapshotId)
    except StoreError as e:
        # Loading the snapshot or taking/releasing the lock; mid-restore
        # failures arrive as RestoreFailedError
        logger.error(f"Restore failed: {e}", exc_info=True)
        return error_response(500, f"Restore failed: {e}", "STORE_ERROR")

    return web.json_response(result)


async def handle_health(request: web.Request, servicer: SnapshotServicer) -> web.Response:
    """Handle GET /v1/health - Health check."""
    result = await servicer.health()
    status = 200 if result.get("healthy") else 503
    return web.json_response(result, status=status)


async def run_http_server(
    servicer: SnapshotServicer,
    config: HttpConfig | None = None,
) -> None:
    """Run the HTTP server until cancelled.

    Args:
        servicer: SnapshotServicer instance
        config: HTTP server configuration
    """
    config = config or HttpConfig()
    app = create_http_app(servicer, config)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.host, config.port)
    await site.start()

    logger.info(f"HTTP server running on http://{config.host}:{config.port}")

    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await runner.cleanup()
