"""HTTP clients for the external generation and composition workflows.

Both workflows are opaque webhooks: a submission is accepted (optionally
with a synchronous result) and the outcome arrives later on a callback.
Transport and HTTP errors are folded into the response objects so callers
can record them on the owning record instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from reelforge.config import Settings
from reelforge.services.http_client import client_scope

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """Outcome of one submission to a generation workflow."""
    success: bool
    task_id: str | None = None
    result_url: str | None = None
    error: str | None = None


@dataclass
class CompositionResponse:
    """Outcome of a final-assembly request."""
    success: bool
    video_url: str | None = None
    published_url: str | None = None
    published_id: str | None = None
    error: str | None = None
    status_code: int | None = None


def _first_record(body: Any) -> dict[str, Any]:
    """Workflows answer with either an object or a one-element list."""
    if isinstance(body, list):
        body = body[0] if body else {}
    return body if isinstance(body, dict) else {}


def _pick(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


class GenerationGateway:
    """Submits image and video generation jobs."""

    def __init__(
        self,
        image_webhook_url: str,
        video_webhook_url: str,
        *,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.image_webhook_url = image_webhook_url
        self.video_webhook_url = video_webhook_url
        self.timeout = timeout
        self._client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> GenerationGateway:
        return cls(
            settings.GENERATION_WEBHOOK_URL,
            settings.VIDEO_GENERATION_WEBHOOK_URL or settings.GENERATION_WEBHOOK_URL,
            timeout=settings.GATEWAY_TIMEOUT,
        )

    async def submit_image(self, payload: dict[str, Any]) -> GatewayResponse:
        return await self._submit(self.image_webhook_url, payload, result_keys=("imageUrl", "image_url"))

    async def submit_video(self, payload: dict[str, Any]) -> GatewayResponse:
        return await self._submit(self.video_webhook_url, payload, result_keys=("videoUrl", "video_url"))

    async def _submit(
        self, url: str, payload: dict[str, Any], *, result_keys: tuple[str, ...]
    ) -> GatewayResponse:
        if not url:
            return GatewayResponse(success=False, error="Generation webhook URL not configured")

        try:
            async with client_scope(self._client, self.timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Generation workflow unreachable (%s): %s", url, e)
            return GatewayResponse(success=False, error=f"Generation request failed: {e}")

        if response.status_code >= 400:
            logger.error(
                "Generation workflow rejected request: %s %s",
                response.status_code, response.text[:200],
            )
            return GatewayResponse(
                success=False,
                error=f"Generation workflow error: {response.status_code} {response.text[:200]}",
            )

        try:
            record = _first_record(response.json())
        except ValueError:
            # Accepted with an empty or non-JSON body; the callback carries the result
            record = {}

        if record.get("success") is False:
            return GatewayResponse(success=False, error=record.get("error") or "Generation failed")

        return GatewayResponse(
            success=True,
            task_id=_pick(record, "taskId", "task_id"),
            result_url=_pick(record, *result_keys),
        )


class CompositionGateway:
    """Calls the assembly workflow that concatenates ordered segments."""

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 600.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> CompositionGateway:
        return cls(settings.ASSEMBLY_WEBHOOK_URL, timeout=settings.ASSEMBLY_TIMEOUT)

    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    async def compose(self, payload: dict[str, Any]) -> CompositionResponse:
        try:
            async with client_scope(self._client, self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.HTTPError as e:
            logger.error("Assembly workflow unreachable: %s", e)
            return CompositionResponse(success=False, error=f"Webhook request failed: {e}")

        if response.status_code >= 400:
            return CompositionResponse(
                success=False,
                status_code=response.status_code,
                error=f"Webhook failed: {response.status_code} {response.text}",
            )

        try:
            record = _first_record(response.json())
        except ValueError:
            return CompositionResponse(success=False, error="Assembly failed: invalid response body")

        if not record.get("success"):
            return CompositionResponse(success=False, error=record.get("error") or "Assembly failed")

        return CompositionResponse(
            success=True,
            video_url=_pick(record, "videoUrl", "video_url"),
            published_url=_pick(record, "publishedUrl", "youtubeUrl", "youtube_url"),
            published_id=_pick(record, "publishedId", "youtubeId", "youtube_id"),
            status_code=response.status_code,
        )
