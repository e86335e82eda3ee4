"""WebSocket endpoint relaying a project's Redis notifications to the browser."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from redis.exceptions import RedisError
from redis.asyncio.client import PubSub

from reelforge.services.pubsub import listen_pubsub, subscribe_project

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/{project_id}")
async def ws_project(ws: WebSocket, project_id: str):
    """Subscribe to the project channel, relay messages, answer pings."""
    await ws.accept()
    logger.info("WS connected: project=%s", project_id)

    pubsub = None
    listener_task = None
    try:
        pubsub = await subscribe_project(project_id)
        listener_task = asyncio.create_task(_relay_pubsub_to_ws(pubsub, ws, project_id))

        while True:
            data = await ws.receive_text()
            if data == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("WS disconnected: project=%s", project_id)
    except RedisError as exc:
        logger.warning("WS pub/sub unavailable for project=%s: %s", project_id, exc)
        await ws.close(code=1011)
    finally:
        if listener_task:
            listener_task.cancel()
        if pubsub:
            await pubsub.unsubscribe()
            await pubsub.aclose()


async def _relay_pubsub_to_ws(pubsub: PubSub, ws: WebSocket, project_id: str) -> None:
    try:
        async for message in listen_pubsub(pubsub):
            await ws.send_json(message)
    except asyncio.CancelledError:
        pass
    except (RedisError, RuntimeError, WebSocketDisconnect) as exc:
        logger.warning("Pub/Sub relay stopped for project=%s: %s", project_id, exc)
