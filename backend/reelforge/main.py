from __future__ import annotations
"""ReelForge: FastAPI application entry point.

Mounts the API and WebSocket routes, configures CORS, creates tables and
recovers image variants left generating by a previous run.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reelforge.api.deps import get_blob_store, get_generation_gateway, get_pipeline_config
from reelforge.api.router import api_router
from reelforge.api.ws import router as ws_router
from reelforge.config import get_settings
from reelforge.database import async_session_factory, close_db, init_db
from reelforge.services.variant_engine import VariantEngine

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def recover_stuck_variants() -> int:
    """Fail variants whose generation was in flight when the service stopped."""
    async with async_session_factory() as session:
        engine = VariantEngine(session, get_pipeline_config(), get_generation_gateway(), get_blob_store())
        result = await engine.reset_stuck_variants()
    count = result.data["reset_count"]
    if count:
        logger.warning("Startup recovery: reset %d stuck variant(s)", count)
    else:
        logger.info("Startup recovery: no stuck variants found")
    return count


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("ReelForge starting up...")
    logger.info("Database: %s", settings.DATABASE_URL.split("@")[-1])
    await init_db()
    await recover_stuck_variants()

    yield

    await close_db()
    logger.info("ReelForge shut down")


app = FastAPI(
    title="ReelForge API",
    description="Screenplay to film reel: bible review, multi-model variants, video admission, assembly",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
app.include_router(ws_router)


@app.get("/")
async def root():
    return {"service": "ReelForge", "status": "running"}


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "max_concurrent_video_jobs": settings.MAX_CONCURRENT_VIDEO_JOBS,
        "assembly_configured": bool(settings.ASSEMBLY_WEBHOOK_URL),
    }
