"""
FastAPI router for scheduled-task endpoints.

An external scheduler calls these over HTTP; there is no background worker.
The secret is checked before the bootstrap runs, so a rejected call touches no
database state.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core import settings

from . import dependencies, repository

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    dependencies=[
        Depends(dependencies.verify_cron_secret),
        Depends(dependencies.require_ready),
    ],
)


class CronResult(BaseModel):
    affected: int


@router.post("/publish-scheduled", response_model=CronResult)
async def publish_scheduled() -> CronResult:
    """
    Publish every scheduled article whose publish time has passed.
    """
    affected = await repository.publish_due_articles()
    logger.info("cron_publish_scheduled affected=%s", affected)
    return CronResult(affected=affected)


@router.post("/cleanup-logs", response_model=CronResult)
async def cleanup_logs() -> CronResult:
    days = settings.log_retention_days()
    affected = await repository.delete_activity_logs_older_than(days)
    logger.info("cron_cleanup_logs retention_days=%s affected=%s", days, affected)
    return CronResult(affected=affected)
