"""Generation queue: scheduling, cancellation and the cron drainer.

All queue ↔ article status changes go through this module so the API,
the cron sweep and ``run_now`` agree on them.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from contentbot.models import Article, GenerationQueueItem
from contentbot.schemas.common import ArticleStatus, ClaimResult, QueueItemStatus
from contentbot.services import orchestrator
from contentbot.services.errors import (
    ArticleAlreadyGeneratingError,
    ArticleNotFoundError,
    GenerationValidationError,
)
from contentbot.services.status_flow import assert_article_transition

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _delete_queue_rows(db: Session, article_id: str) -> int:
    return (
        db.query(GenerationQueueItem)
        .filter(GenerationQueueItem.article_id == article_id)
        .delete(synchronize_session=False)
    )


def schedule_generation(
    db: Session,
    user_id: str,
    article_id: str,
    scheduled_for: datetime,
    queue_position: int = 0,
    now: datetime | None = None,
) -> GenerationQueueItem:
    """Queue an article for generation at *scheduled_for*.

    A time at or before now marks the article ``queued`` (picked up by the
    next sweep), a later one ``scheduled``. Any earlier queue row for the
    article is replaced.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    scheduled_for = as_utc(scheduled_for)
    orchestrator.validate_and_setup_generation(db, user_id, article_id)

    article = db.get(Article, article_id)
    target = ArticleStatus.QUEUED if scheduled_for <= now else ArticleStatus.SCHEDULED
    assert_article_transition(article.status, target)

    _delete_queue_rows(db, article_id)
    item = GenerationQueueItem(
        article_id=article_id,
        user_id=user_id,
        project_id=article.project_id,
        scheduled_for_date=scheduled_for,
        queue_position=queue_position,
        status=QueueItemStatus.QUEUED.value,
    )
    db.add(item)
    article.status = target.value
    db.commit()
    db.refresh(item)
    logger.info("Scheduled article %s for %s (%s)", article_id[:8], scheduled_for.isoformat(), target.value)
    return item


def cancel_scheduled_generation(db: Session, user_id: str, article_id: str) -> int:
    """Drop the article's queue rows; a queued/scheduled article returns to ``to_generate``."""
    article = db.get(Article, article_id)
    if article is None or article.user_id != user_id:
        raise ArticleNotFoundError(article_id)

    removed = _delete_queue_rows(db, article_id)
    if article.status in (ArticleStatus.QUEUED.value, ArticleStatus.SCHEDULED.value):
        assert_article_transition(article.status, ArticleStatus.TO_GENERATE)
        article.status = ArticleStatus.TO_GENERATE.value
    db.commit()
    logger.info("Cancelled %d queue item(s) for article %s", removed, article_id[:8])
    return removed


def run_now(
    db: Session,
    user_id: str,
    article_id: str,
    dispatch: orchestrator.GenerationDispatcher | None = None,
):
    """Start generation immediately and drop any pending queue rows."""
    record = orchestrator.start_generation(
        db, user_id, article_id, dispatch=dispatch or orchestrator.dispatch_generation,
    )
    removed = _delete_queue_rows(db, article_id)
    db.commit()
    if removed:
        logger.info("Run-now removed %d queue item(s) for article %s", removed, article_id[:8])
    return record


def _release_claim(db: Session, article_id: str) -> None:
    db.query(Article).filter(
        Article.id == article_id,
        Article.status == ArticleStatus.GENERATING.value,
    ).update({Article.status: ArticleStatus.IDEA.value}, synchronize_session=False)
    db.commit()


def process_due_queue(
    db: Session,
    now: datetime | None = None,
    dispatch: orchestrator.GenerationDispatcher | None = None,
) -> dict[str, Any]:
    """Start generation for every due queue item.

    Each item is isolated: a failure marks that row ``failed`` and the
    sweep carries on. Items whose article cannot be claimed are deleted
    without starting anything.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    dispatch = dispatch or orchestrator.dispatch_generation

    items = (
        db.query(GenerationQueueItem)
        .filter(
            GenerationQueueItem.status == QueueItemStatus.QUEUED.value,
            GenerationQueueItem.scheduled_for_date <= now,
        )
        .order_by(GenerationQueueItem.queue_position.asc(), GenerationQueueItem.created_at.asc())
        .all()
    )
    result: dict[str, Any] = {"processed": 0, "started": 0, "failed": 0, "skipped": 0, "queue_item_ids": []}
    logger.info("Queue sweep: %d due item(s)", len(items))

    for item in items:
        item_id, article_id, user_id = item.id, item.article_id, item.user_id
        scheduled_for = item.scheduled_for_date
        result["processed"] += 1
        result["queue_item_ids"].append(item_id)
        claimed = False
        record = None
        try:
            try:
                orchestrator.validate_and_setup_generation(db, user_id, article_id)
                claim = orchestrator.claim_article_for_generation(db, article_id)
            except ArticleAlreadyGeneratingError:
                claim = ClaimResult.ALREADY_CLAIMED

            if claim != ClaimResult.CLAIMED:
                db.query(GenerationQueueItem).filter(GenerationQueueItem.id == item_id).delete(
                    synchronize_session=False
                )
                db.commit()
                result["skipped"] += 1
                logger.info("Queue item %s dropped: article %s %s", item_id[:8], article_id[:8], claim.value)
                continue
            claimed = True

            record = orchestrator.create_or_reset_article_generation(
                db, article_id, user_id, scheduled_at=scheduled_for,
            )
            # The row is only removed once the hand-off succeeded.
            dispatch(record.id)
            db.query(GenerationQueueItem).filter(GenerationQueueItem.id == item_id).delete(
                synchronize_session=False
            )
            db.commit()
            result["started"] += 1
            logger.info("Queue item %s started generation %s", item_id[:8], record.id[:8])

        except Exception as exc:
            db.rollback()
            message = exc.message if isinstance(exc, GenerationValidationError) else str(exc)
            logger.warning("Queue item %s failed: %s", item_id[:8], message)
            if record is not None:
                orchestrator.handle_generation_error(db, article_id, record.id, exc)
            elif claimed:
                _release_claim(db, article_id)
            failed = db.get(GenerationQueueItem, item_id)
            if failed is not None:
                failed.status = QueueItemStatus.FAILED.value
                failed.attempts = (failed.attempts or 0) + 1
                failed.error_message = message or type(exc).__name__
                db.commit()
            result["failed"] += 1

    return result
