from __future__ import annotations
"""Application configuration using Pydantic Settings."""

from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ReelForge application settings.

    Loaded from environment variables or .env file.
    """

    # --- Application ---
    APP_NAME: str = "ReelForge"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # --- Database (MySQL 8.0+) ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "root"
    DB_PASSWORD: str = ""
    DB_NAME: str = "reelforge"
    DB_URL: str = ""  # full override, e.g. sqlite+aiosqlite:///./reelforge.db

    @property
    def DATABASE_URL(self) -> str:
        """Async connection string; asyncmy for MySQL unless DB_URL overrides it."""
        if self.DB_URL:
            return self.DB_URL
        encoded_password = quote_plus(self.DB_PASSWORD)
        return (
            f"mysql+asyncmy://{self.DB_USER}:{encoded_password}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            "?charset=utf8mb4"
        )

    # --- Redis ---
    REDIS_URL: str = "redis://localhost:6379/0"
    PUBSUB_ENABLED: bool = True

    # --- Workflow webhooks ---
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    GENERATION_WEBHOOK_URL: str = ""
    VIDEO_GENERATION_WEBHOOK_URL: str = ""
    ASSEMBLY_WEBHOOK_URL: str = ""
    GATEWAY_TIMEOUT: float = 120.0
    ASSEMBLY_TIMEOUT: float = 600.0
    DOWNLOAD_TIMEOUT: float = 60.0

    # --- Supabase Storage ---
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    SUPABASE_PUBLIC_URL: str = ""
    IMAGE_BUCKET: str = "bible-images"
    VIDEO_BUCKET: str = "videos"
    REEL_BUCKET: str = "reels"

    # --- Generation limits ---
    MAX_CONCURRENT_VIDEO_JOBS: int = 3
    STUCK_VARIANT_MAX_AGE_MINUTES: int = 5
    MIN_IMAGE_BYTES: int = 1000
    VIDEO_MODEL: str = "veo3_fast"
    VIDEO_DURATION_SECONDS: int = 8

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()


@dataclass(frozen=True)
class PipelineConfig:
    """Explicit configuration handed to every pipeline service."""

    public_base_url: str = "http://localhost:8000"
    max_concurrent_video_jobs: int = 3
    stuck_variant_max_age_minutes: int = 5
    min_image_bytes: int = 1000
    video_model: str = "veo3_fast"
    video_duration_seconds: int = 8
    image_bucket: str = "bible-images"
    video_bucket: str = "videos"
    reel_bucket: str = "reels"

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            public_base_url=settings.PUBLIC_BASE_URL.rstrip("/"),
            max_concurrent_video_jobs=settings.MAX_CONCURRENT_VIDEO_JOBS,
            stuck_variant_max_age_minutes=settings.STUCK_VARIANT_MAX_AGE_MINUTES,
            min_image_bytes=settings.MIN_IMAGE_BYTES,
            video_model=settings.VIDEO_MODEL,
            video_duration_seconds=settings.VIDEO_DURATION_SECONDS,
            image_bucket=settings.IMAGE_BUCKET,
            video_bucket=settings.VIDEO_BUCKET,
            reel_bucket=settings.REEL_BUCKET,
        )

    def callback_url(self, route: str) -> str:
        """Public URL the workflows call back on, e.g. ``callback_url("video")``."""
        return f"{self.public_base_url}/api/webhooks/{route}"
