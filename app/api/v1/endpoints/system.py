"""
Health probe and client configuration.
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_db
from app.core.config import settings
from app.schemas.common import ClientConfig, HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — DB and Redis connectivity."""
    result = HealthResponse(db=False, redis=False)

    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)

    try:
        r = aioredis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
            result.redis = True
        finally:
            await r.aclose()
    except Exception as e:
        logger.error("Health check Redis failure: %s", e)

    return result


@router.get("/client-config", response_model=ClientConfig)
async def client_config() -> ClientConfig:
    return ClientConfig(
        task_refresh_seconds=settings.TASK_REFRESH_SECONDS,
        roster_refresh_seconds=settings.ROSTER_REFRESH_SECONDS,
        notice_refresh_seconds=settings.NOTICE_REFRESH_SECONDS,
        comment_edit_window_minutes=settings.COMMENT_EDIT_WINDOW_MINUTES,
        max_image_bytes=settings.MAX_IMAGE_BYTES,
    )
