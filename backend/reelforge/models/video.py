from __future__ import annotations
"""Video ORM models: one SceneVideo per scene, or many ordered SceneShots."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reelforge.database import Base


class VideoStatus(str, enum.Enum):
    """Video job statuses. PENDING only applies to shots not yet submitted."""

    PENDING = "pending"
    GENERATING = "generating"
    READY = "ready"
    APPROVED = "approved"
    FAILED = "failed"


class SceneVideo(Base):
    """The single-video-per-scene flow."""

    __tablename__ = "scene_videos"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    scene_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("scenes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source_variant_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    duration_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VideoStatus.GENERATING.value, index=True
    )
    job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    scene = relationship("Scene", back_populates="videos")


class SceneShot(Base):
    """One shot of a scene in the shot-based flow, ordered by shot_number."""

    __tablename__ = "scene_shots"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex[:36],
    )
    scene_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("scenes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    shot_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=8)
    prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VideoStatus.PENDING.value, index=True
    )
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_storage_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    scene = relationship("Scene", back_populates="shots")
