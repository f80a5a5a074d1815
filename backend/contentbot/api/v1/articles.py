"""Article kanban endpoints — status moves and publish scheduling."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from contentbot.api.v1.deps import get_current_user_id, to_http_error
from contentbot.database import get_db
from contentbot.models import Article
from contentbot.schemas.article import ArticleResponse, ArticleStatusUpdate, SchedulePublishRequest
from contentbot.schemas.common import ArticleStatus
from contentbot.services import publishing_service
from contentbot.services.errors import GenerationValidationError
from contentbot.services.status_flow import assert_article_transition

router = APIRouter()

# Moves that only the pipeline or the queue may make.
_SYSTEM_ONLY_TARGETS = {ArticleStatus.GENERATING, ArticleStatus.QUEUED, ArticleStatus.SCHEDULED}


@router.patch("/articles/{article_id}/status", response_model=ArticleResponse)
def update_article_status(
    article_id: str,
    body: ArticleStatusUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Move a card on the board, validated against the transition table."""
    article = db.get(Article, article_id)
    if article is None or article.user_id != user_id:
        raise HTTPException(status_code=404, detail="Article not found")
    if body.status in _SYSTEM_ONLY_TARGETS:
        raise HTTPException(
            status_code=400,
            detail=f"Use the generation endpoints to move an article to '{body.status.value}'",
        )
    try:
        assert_article_transition(article.status, body.status)
    except GenerationValidationError as exc:
        raise to_http_error(exc)

    article.status = body.status.value
    if body.status == ArticleStatus.PUBLISHED and article.published_at is None:
        article.published_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(article)
    return article


@router.post("/articles/{article_id}/schedule-publish", response_model=ArticleResponse)
def schedule_publish(
    article_id: str,
    body: SchedulePublishRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return publishing_service.schedule_publish(db, user_id, article_id, body.publish_at)
    except GenerationValidationError as exc:
        raise to_http_error(exc)


@router.delete("/articles/{article_id}/schedule-publish", response_model=ArticleResponse)
def cancel_publish_schedule(
    article_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return publishing_service.cancel_publish_schedule(db, user_id, article_id)
    except GenerationValidationError as exc:
        raise to_http_error(exc)
