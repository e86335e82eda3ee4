"""Pytest configuration helpers.

Puts ``backend/`` on ``sys.path`` so the ``reelforge`` package imports
without installation, points settings at an in-memory SQLite database,
and provides fake workflow adapters plus small seeding helpers.
"""
import os
import sys
from datetime import datetime
from typing import Any

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PUBSUB_ENABLED", "false")
os.environ.setdefault("GENERATION_WEBHOOK_URL", "")
os.environ.setdefault("ASSEMBLY_WEBHOOK_URL", "")

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from reelforge.config import PipelineConfig  # noqa: E402
from reelforge.database import Base  # noqa: E402
import reelforge.models  # noqa: E402,F401
from reelforge.models.bible_asset import BibleAsset, BibleAssetStatus  # noqa: E402
from reelforge.models.project import Project, ProjectStatus  # noqa: E402
from reelforge.models.scene import Scene  # noqa: E402
from reelforge.models.variant import Variant, VariantStatus  # noqa: E402
from reelforge.models.video import SceneShot, SceneVideo, VideoStatus  # noqa: E402
from reelforge.services.blob_store import BlobStore, StoredObject  # noqa: E402
from reelforge.services.gateway import CompositionResponse, GatewayResponse  # noqa: E402
from reelforge.services.model_catalog import IMAGE_MODELS  # noqa: E402


# ──────── Fake adapters ────────

class FakeGateway:
    """Records every submission and answers with a configurable response."""

    def __init__(self) -> None:
        self.images: list[dict[str, Any]] = []
        self.videos: list[dict[str, Any]] = []
        self.failing_models: set[str] = set()
        self.image_result_url: str | None = None
        self.video_response = GatewayResponse(success=True, task_id="video-task")

    async def submit_image(self, payload: dict[str, Any]) -> GatewayResponse:
        self.images.append(payload)
        if IMAGE_MODELS.key_for(payload["model"]) in self.failing_models:
            return GatewayResponse(success=False, error="model unavailable")
        return GatewayResponse(
            success=True,
            task_id=f"img-{len(self.images)}",
            result_url=self.image_result_url,
        )

    async def submit_video(self, payload: dict[str, Any]) -> GatewayResponse:
        self.videos.append(payload)
        return self.video_response


class FakeComposer:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.payloads: list[dict[str, Any]] = []
        self.response = CompositionResponse(
            success=True,
            video_url="https://compose.test/reel.mp4",
            published_url="https://youtube.test/watch?v=abc",
            published_id="abc",
            status_code=200,
        )

    def is_configured(self) -> bool:
        return self.configured

    async def compose(self, payload: dict[str, Any]) -> CompositionResponse:
        self.payloads.append(payload)
        return self.response


class FakeBlobStore(BlobStore):
    """Configured store that keeps objects in memory and serves downloads locally."""

    def __init__(self) -> None:
        super().__init__("https://storage.test", "https://cdn.test", "test-key")
        self.payload = b"x" * 4096
        self.fail_downloads = False
        self.downloads: list[str] = []
        self.objects: dict[str, bytes] = {}

    async def download(self, url: str) -> bytes:
        self.downloads.append(url)
        if self.fail_downloads:
            raise httpx.ConnectError("source unreachable")
        return self.payload

    async def upload_bytes(self, bucket, path, content, content_type="application/octet-stream"):
        object_path = self._normalize_path(path)
        self.objects[f"{bucket}/{object_path}"] = content
        return StoredObject(url=self.public_url(bucket, object_path), path=object_path)

    async def delete(self, bucket: str, path: str) -> None:
        self.objects.pop(f"{bucket}/{self._normalize_path(path)}", None)


# ──────── Database ────────

@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(public_base_url="http://api.test", max_concurrent_video_jobs=2)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def composer() -> FakeComposer:
    return FakeComposer()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


# ──────── Seeding ────────

class Seed:
    """Builds rows directly, bypassing the services under test."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def project(self, **kwargs) -> Project:
        kwargs.setdefault("title", "Night Shift")
        kwargs.setdefault("status", ProjectStatus.BIBLE_REVIEW.value)
        return await self._save(Project(**kwargs))

    async def asset(self, project: Project, asset_type: str = "character", **kwargs) -> BibleAsset:
        kwargs.setdefault("name", f"{asset_type}-{datetime.utcnow().timestamp()}")
        if asset_type == "character":
            kwargs.setdefault("portrait_prompt", "Close portrait, soft light")
            kwargs.setdefault("visual_dna", ["tall", "red coat"])
        else:
            kwargs.setdefault("visual_description", "Rain-soaked alley at night")
        kwargs.setdefault("image_status", BibleAssetStatus.PENDING.value)
        return await self._save(BibleAsset(project_id=project.id, asset_type=asset_type, **kwargs))

    async def scene(self, project: Project, scene_number: int, **kwargs) -> Scene:
        kwargs.setdefault("slugline", f"INT. ROOM {scene_number} - NIGHT")
        kwargs.setdefault("production_data", {"action_description": "She waits by the door"})
        return await self._save(Scene(project_id=project.id, scene_number=scene_number, **kwargs))

    async def variant(self, parent_type: str, parent_id: str, **kwargs) -> Variant:
        kwargs.setdefault("model", "seedream")
        kwargs.setdefault("status", VariantStatus.READY.value)
        if kwargs["status"] in (VariantStatus.READY.value, VariantStatus.SELECTED.value):
            kwargs.setdefault("image_url", f"https://cdn.test/{parent_id}/{kwargs['model']}.png")
        return await self._save(Variant(parent_type=parent_type, parent_id=parent_id, **kwargs))

    async def video(self, scene: Scene, **kwargs) -> SceneVideo:
        kwargs.setdefault("status", VideoStatus.GENERATING.value)
        return await self._save(SceneVideo(scene_id=scene.id, **kwargs))

    async def shot(self, scene: Scene, shot_number: int, **kwargs) -> SceneShot:
        kwargs.setdefault("video_status", VideoStatus.PENDING.value)
        return await self._save(SceneShot(scene_id=scene.id, shot_number=shot_number, **kwargs))

    async def ready_shot(self, scene: Scene, shot_number: int) -> SceneShot:
        return await self.shot(
            scene,
            shot_number,
            video_status=VideoStatus.READY.value,
            video_url=f"https://cdn.test/{scene.id}/{shot_number}.mp4",
        )


@pytest.fixture
def seed(session) -> Seed:
    return Seed(session)


# ──────── API client ────────

@pytest.fixture
async def client(session_factory, config, gateway, composer, blob_store, monkeypatch):
    from reelforge.api import deps, webhooks
    from reelforge.database import get_db
    from reelforge.main import app

    async def _get_db():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    scheduled: list[tuple[str, str]] = []

    def _schedule(kind: str, project_id: str) -> str:
        scheduled.append((kind, project_id))
        return f"task-{len(scheduled)}"

    monkeypatch.setattr(webhooks, "schedule_auto_generation", _schedule)

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_pipeline_config] = lambda: config
    app.dependency_overrides[deps.get_generation_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_composition_gateway] = lambda: composer
    app.dependency_overrides[deps.get_blob_store] = lambda: blob_store

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://api.test") as ac:
        ac.scheduled = scheduled
        yield ac
    app.dependency_overrides.clear()
