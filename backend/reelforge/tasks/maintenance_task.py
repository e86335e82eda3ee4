from __future__ import annotations
"""Celery Beat task: fail image variants whose callback never arrived."""

import logging

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelforge.services.variant_engine import VariantEngine
from reelforge.tasks import run_async
from reelforge.tasks.generation_tasks import Adapters, task_session_factory

logger = logging.getLogger(__name__)


async def reset_stuck(
    session_factory: async_sessionmaker[AsyncSession],
    adapters: Adapters,
    max_age_minutes: int | None = None,
) -> int:
    async with session_factory() as session:
        engine = VariantEngine(session, adapters.config, adapters.gateway, adapters.blob_store)
        result = await engine.reset_stuck_variants(max_age_minutes)
    return result.data["reset_count"]


@shared_task
def reset_stuck_variants(max_age_minutes: int | None = None):
    count = run_async(reset_stuck(task_session_factory(), Adapters.from_settings(), max_age_minutes))
    if count:
        logger.warning("Maintenance: reset %d stuck variant(s)", count)
    return {"reset_count": count}
