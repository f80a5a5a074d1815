"""Cron endpoints — queue drain and publish sweep, guarded by ``CRON_SECRET``."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from contentbot.api.v1.deps import get_generation_dispatcher, verify_cron_secret
from contentbot.database import get_db
from contentbot.schemas.generation import PublishSweepResponse, QueueSweepResponse
from contentbot.services import publishing_service, queue_service

router = APIRouter(dependencies=[Depends(verify_cron_secret)])
logger = logging.getLogger(__name__)


@router.api_route("/process-generation-queue", methods=["GET", "POST"], response_model=QueueSweepResponse)
def process_generation_queue(
    dispatch=Depends(get_generation_dispatcher),
    db: Session = Depends(get_db),
):
    result = queue_service.process_due_queue(db, dispatch=dispatch)
    logger.info(
        "Queue sweep done: %d processed, %d started, %d failed",
        result["processed"], result["started"], result["failed"],
    )
    return result


@router.api_route("/publish-articles", methods=["GET", "POST"], response_model=PublishSweepResponse)
async def publish_articles(db: Session = Depends(get_db)):
    return await publishing_service.publish_scheduled_articles(db)
