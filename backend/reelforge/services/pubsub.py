"""Redis Pub/Sub bridge for cross-process WebSocket notifications.

Celery workers and webhook handlers publish to a per-project channel.
The WebSocket handler subscribes and relays to connected clients.
Publishing is best-effort: a Redis outage never fails the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import redis
import redis.asyncio as aioredis

from reelforge.config import get_settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "reelforge:ws:"


def channel_for(project_id: str) -> str:
    return f"{CHANNEL_PREFIX}{project_id}"


# ──────── Sync connection pool (Celery workers) ────────

_sync_pool: redis.ConnectionPool | None = None


def _get_sync_pool() -> redis.ConnectionPool:
    global _sync_pool
    if _sync_pool is None:
        _sync_pool = redis.ConnectionPool.from_url(get_settings().REDIS_URL)
    return _sync_pool


def publish_project_update(project_id: str, status: str, **extra: Any) -> None:
    """Project status or task outcome, from a Celery worker."""
    _publish_sync(project_id, {"type": "project_update", "status": status, **extra})


def _publish_sync(project_id: str, message: dict[str, Any]) -> None:
    if not get_settings().PUBSUB_ENABLED:
        return
    try:
        r = redis.Redis(connection_pool=_get_sync_pool())
        r.publish(channel_for(project_id), json.dumps(message))
    except redis.RedisError:
        logger.warning("Failed to publish WS notification for project %s", project_id, exc_info=True)


# ──────── Async client (FastAPI) ────────

_async_client: aioredis.Redis | None = None


def _get_async_client() -> aioredis.Redis:
    global _async_client
    if _async_client is None:
        _async_client = aioredis.from_url(get_settings().REDIS_URL)
    return _async_client


async def publish(project_id: str, message: dict[str, Any]) -> None:
    if not get_settings().PUBSUB_ENABLED or not project_id:
        return
    try:
        await _get_async_client().publish(channel_for(project_id), json.dumps(message))
    except redis.RedisError:
        logger.warning("Failed to publish WS notification for project %s", project_id, exc_info=True)


async def publish_variant_update(
    project_id: str, variant_id: str, status: str, parent_type: str, parent_id: str
) -> None:
    await publish(project_id, {
        "type": "variant_update",
        "variant_id": variant_id,
        "status": status,
        "parent_type": parent_type,
        "parent_id": parent_id,
    })


async def publish_video_update(project_id: str, record_id: str, status: str, *, kind: str = "video") -> None:
    await publish(project_id, {"type": f"{kind}_update", f"{kind}_id": record_id, "status": status})


async def subscribe_project(project_id: str) -> aioredis.client.PubSub:
    """New subscription on the shared client. Close the pubsub, never the client."""
    pubsub = _get_async_client().pubsub()
    await pubsub.subscribe(channel_for(project_id))
    return pubsub


async def listen_pubsub(pubsub: aioredis.client.PubSub) -> AsyncIterator[dict[str, Any]]:
    async for raw_message in pubsub.listen():
        if raw_message["type"] == "message":
            try:
                yield json.loads(raw_message["data"])
            except (json.JSONDecodeError, TypeError):
                continue
