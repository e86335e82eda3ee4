from __future__ import annotations
"""Shared httpx client handling for the outbound adapters."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx


@asynccontextmanager
async def client_scope(
    http_client: httpx.AsyncClient | None, timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one that is closed afterwards."""
    client = http_client or httpx.AsyncClient(timeout=timeout)
    own_client = http_client is None
    try:
        yield client
    finally:
        if own_client:
            await client.aclose()
