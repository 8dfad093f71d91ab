# dayai_mcp_client/utils.py
"""Small async helpers shared by the OAuth and MCP modules."""

import inspect
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


@asynccontextmanager
async def http_client_context(
    http_client: Optional[httpx.AsyncClient],
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if http_client is not None:
        yield http_client
        return

    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as client:
        yield client


@asynccontextmanager
async def best_effort(action: str) -> AsyncIterator[None]:
    """
    Run a cleanup step whose failure must not reach the caller.

    Used for token revocation and transport close, which are not on the
    critical path of a disconnect. Failures are logged at warning level.
    """
    try:
        yield
    except Exception as e:
        logger.warning(f"{action} failed (ignored): {e}")


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, so callbacks may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


def response_detail(response: httpx.Response) -> str:
    """Best available human-readable body of an error response."""
    text = response.text.strip()
    return text or f"HTTP {response.status_code} {response.reason_phrase}"
