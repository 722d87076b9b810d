"""
Shared HTTP client with request logging.

Implements request ID tracking and timing through httpx event hooks.
The Authorization header and query string are never logged.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

import httpx

from pocket_calendar.config import Settings, get_settings

# Context variable for request ID (available across async calls)
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get current request ID from context."""
    return request_id_ctx.get()


async def log_request(request: httpx.Request) -> None:
    """Tag the request with a short ID and log its start."""
    req_id = str(uuid.uuid4())[:8]  # Short ID for readability
    request_id_ctx.set(req_id)
    request.extensions["request_id"] = req_id
    request.extensions["start_time"] = time.monotonic()

    logger.debug(
        f"[{req_id}] {request.method} {request.url.copy_with(query=None)}",
        extra={
            "request_id": req_id,
            "method": request.method,
            "path": request.url.path,
        },
    )


async def log_response(response: httpx.Response) -> None:
    """Log completion status and elapsed time."""
    request = response.request
    req_id = request.extensions.get("request_id", "-")
    start_time = request.extensions.get("start_time")
    elapsed_ms = (time.monotonic() - start_time) * 1000 if start_time else 0.0

    level = logging.WARNING if response.status_code >= 400 else logging.INFO
    logger.log(
        level,
        f"[{req_id}] {request.method} {request.url.path} "
        f"-> {response.status_code} ({elapsed_ms:.1f}ms)",
        extra={
            "request_id": req_id,
            "status_code": response.status_code,
            "elapsed_ms": round(elapsed_ms, 2),
        },
    )


def create_http_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the application's HTTP client.

    Args:
        settings: Settings providing the timeout (defaults to get_settings())
        transport: Optional transport override

    Returns:
        AsyncClient with logging hooks installed
    """
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        transport=transport,
        event_hooks={
            "request": [log_request],
            "response": [log_response],
        },
    )
