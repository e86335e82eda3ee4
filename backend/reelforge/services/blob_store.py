from __future__ import annotations
"""Supabase Storage client used to re-host generated media.

Provider URLs expire, so finished images and videos are copied into a
bucket under deterministic paths. Without storage credentials nothing is
copied and callers keep the provider URL.
"""

import logging
from dataclasses import dataclass

import httpx

from reelforge.config import Settings
from reelforge.services.http_client import client_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    url: str
    path: str


class BlobStore:
    """Supabase Storage over its REST API."""

    def __init__(
        self,
        api_url: str | None,
        public_url: str | None,
        api_key: str | None,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = (api_url or "").rstrip("/")
        self.public_url_base = (public_url or "").rstrip("/")
        self.api_key = (api_key or "").strip()
        self.timeout = timeout
        self._client = http_client

    @classmethod
    def from_settings(cls, settings: Settings) -> BlobStore:
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_PUBLIC_URL,
            settings.SUPABASE_SERVICE_KEY,
            timeout=settings.DOWNLOAD_TIMEOUT,
        )

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def upload_bytes(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        if not self.is_configured():
            raise ValueError("Supabase storage not configured")
        object_path = self._normalize_path(path)
        url = f"{self.api_url}/storage/v1/object/{bucket}/{object_path}"
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type,
            # Deterministic paths are overwritten by repeated callbacks
            "x-upsert": "true",
        }
        async with client_scope(self._client, self.timeout) as client:
            response = await client.post(url, headers=headers, content=content)
        if response.status_code not in (200, 201):
            raise ValueError(f"Supabase upload failed: {response.status_code} {response.text}")
        return StoredObject(url=self.public_url(bucket, object_path), path=object_path)

    async def delete(self, bucket: str, path: str) -> None:
        if not self.is_configured():
            logger.debug("Storage not configured, nothing to delete for %s/%s", bucket, path)
            return
        object_path = self._normalize_path(path)
        url = f"{self.api_url}/storage/v1/object/{bucket}"
        async with client_scope(self._client, self.timeout) as client:
            response = await client.request(
                "DELETE", url, headers=self._auth_headers(), json={"prefixes": [object_path]}
            )
        if response.status_code not in (200, 204):
            raise ValueError(f"Supabase delete failed: {response.status_code} {response.text}")

    async def download(self, url: str) -> bytes:
        async with client_scope(self._client, self.timeout) as client:
            response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
        return response.content

    async def rehost(
        self,
        source_url: str,
        bucket: str,
        path: str,
        content_type: str,
        min_bytes: int = 0,
    ) -> StoredObject | None:
        """Copy a transient result into permanent storage.

        Returns None when storage is unconfigured or the copy fails;
        callers keep the transient URL.
        """
        if not self.is_configured():
            logger.warning("Storage not configured, keeping transient URL %s", source_url)
            return None
        try:
            content = await self.download(source_url)
            if len(content) < min_bytes:
                raise ValueError(f"Downloaded payload too small ({len(content)} bytes)")
            return await self.upload_bytes(bucket, path, content, content_type)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Re-hosting %s failed, keeping transient URL: %s", source_url, e)
            return None

    def public_url(self, bucket: str, path: str) -> str:
        base = self.public_url_base or f"{self.api_url}/storage/v1/object/public"
        joined_path = "/".join(part.strip("/") for part in (bucket, path))
        return f"{base.rstrip('/')}/{joined_path}"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _normalize_path(self, path: str) -> str:
        return path.strip().lstrip("/")
