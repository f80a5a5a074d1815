"""Generation endpoints — start, retry, schedule, run now, and check progress."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from contentbot.api.v1.deps import (
    get_current_user_id,
    get_generation_dispatcher,
    get_resume_dispatcher,
    to_http_error,
)
from contentbot.database import get_db
from contentbot.models import Article
from contentbot.schemas.common import GenerationStatus, MessageResponse
from contentbot.schemas.generation import (
    GenerationRetryResponse,
    GenerationStartRequest,
    GenerationStartResponse,
    GenerationStatusResponse,
    QueueItemResponse,
    ScheduleGenerationRequest,
)
from contentbot.services import orchestrator, queue_service
from contentbot.services.errors import GenerationValidationError

router = APIRouter()


@router.post("/articles/{article_id}/generate", response_model=GenerationStartResponse, status_code=202)
def start_generation(
    article_id: str,
    body: GenerationStartRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    dispatch=Depends(get_generation_dispatcher),
    db: Session = Depends(get_db),
):
    """Claim the article and hand generation to a worker.

    Returns immediately; poll ``generation-status`` with the returned id.
    """
    force = body.force_regenerate if body else False
    try:
        record = orchestrator.start_generation(db, user_id, article_id, force_regenerate=force, dispatch=dispatch)
    except GenerationValidationError as exc:
        raise to_http_error(exc)

    return GenerationStartResponse(
        generation_id=record.id,
        article_id=article_id,
        status=GenerationStatus(record.status),
        message="Article generation started",
    )


@router.post("/articles/{article_id}/retry", response_model=GenerationRetryResponse, status_code=202)
def retry_generation(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    dispatch=Depends(get_resume_dispatcher),
    db: Session = Depends(get_db),
):
    """Restart a failed generation from its last good phase, keeping earlier artifacts."""
    try:
        record, plan = orchestrator.retry_generation(db, user_id, article_id, dispatch=dispatch)
    except GenerationValidationError as exc:
        raise to_http_error(exc)

    return GenerationRetryResponse(
        generation_id=record.id,
        article_id=article_id,
        status=GenerationStatus(record.status),
        previous_generation_id=record.artifacts["retry_of"],
        restart_phase=plan.phase,
        reasoning=plan.reasoning,
        available_artifacts=plan.available_artifacts,
        message=f"Article generation retry started from {plan.phase.value}",
    )


@router.post("/articles/{article_id}/schedule-generation", response_model=QueueItemResponse, status_code=201)
def schedule_generation(
    article_id: str,
    body: ScheduleGenerationRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return queue_service.schedule_generation(
            db, user_id, article_id, body.scheduled_for, queue_position=body.queue_position,
        )
    except GenerationValidationError as exc:
        raise to_http_error(exc)


@router.delete("/articles/{article_id}/schedule-generation", response_model=MessageResponse)
def cancel_scheduled_generation(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        removed = queue_service.cancel_scheduled_generation(db, user_id, article_id)
    except GenerationValidationError as exc:
        raise to_http_error(exc)
    return MessageResponse(message=f"Removed {removed} queued generation(s)")


@router.post("/articles/{article_id}/run-now", response_model=GenerationStartResponse, status_code=202)
def run_now(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    dispatch=Depends(get_generation_dispatcher),
    db: Session = Depends(get_db),
):
    """Skip the queue and start generating immediately."""
    try:
        record = queue_service.run_now(db, user_id, article_id, dispatch=dispatch)
    except GenerationValidationError as exc:
        raise to_http_error(exc)
    return GenerationStartResponse(
        generation_id=record.id,
        article_id=article_id,
        status=GenerationStatus(record.status),
        message="Article generation started",
    )


@router.get("/articles/{article_id}/generation-status", response_model=GenerationStatusResponse)
def get_generation_status(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Current state of the article's latest generation record."""
    article = db.get(Article, article_id)
    if article is None or article.user_id != user_id:
        raise HTTPException(status_code=404, detail="Article not found")

    record = orchestrator.get_latest_generation(db, article_id)
    if record is None:
        return GenerationStatusResponse(
            generation_id=None,
            article_id=article_id,
            article_status=article.status,
            status=None,
            progress=0,
            current_phase=None,
            error=None,
            scheduled_at=None,
            started_at=None,
            completed_at=None,
            seo_score=article.seo_score,
        )

    artifacts = record.artifacts or {}
    seo_report = artifacts.get("seo_report") or {}
    return GenerationStatusResponse(
        generation_id=record.id,
        article_id=article_id,
        article_status=article.status,
        status=GenerationStatus(record.status),
        progress=record.progress,
        current_phase=record.current_phase,
        error=record.error,
        scheduled_at=record.scheduled_at,
        started_at=record.started_at,
        completed_at=record.completed_at,
        seo_score=seo_report.get("score", article.seo_score),
        seo_issues=seo_report.get("issues") or [],
        publish_ready=artifacts.get("publish_ready"),
    )
