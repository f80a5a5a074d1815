"""Startup housekeeping shared by the API lifespan and the Celery worker."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from contentbot.config import get_settings
from contentbot.database import SessionLocal, session_scope
from contentbot.models import Article, GenerationRecord
from contentbot.schemas.common import ArticleStatus, GenerationStatus
from contentbot.services.status_flow import ACTIVE_GENERATION_STATUSES

logger = logging.getLogger(__name__)


def cleanup_stale_generations(now: datetime | None = None, session_factory=SessionLocal) -> int:
    """Fail generations left running by a previous unclean shutdown.

    Records waiting on external research are skipped; they resume from
    their webhook. Returns the number of records failed.
    """
    settings = get_settings()
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.STALE_GENERATION_MINUTES)
    stale_statuses = [
        s.value for s in ACTIVE_GENERATION_STATUSES if s != GenerationStatus.RESEARCHING
    ]

    try:
        with session_scope(session_factory) as db:
            stale = (
                db.query(GenerationRecord)
                .filter(
                    GenerationRecord.status.in_(stale_statuses),
                    GenerationRecord.updated_at < cutoff,
                )
                .all()
            )
            for record in stale:
                record.status = GenerationStatus.FAILED.value
                record.error = "Interrupted: worker stopped before the generation finished"
                record.completed_at = now
                db.query(Article).filter(
                    Article.id == record.article_id,
                    Article.status == ArticleStatus.GENERATING.value,
                ).update({Article.status: ArticleStatus.IDEA.value}, synchronize_session=False)
            db.commit()
    except SQLAlchemyError as exc:
        logger.error("Stale generation cleanup failed: %s", exc)
        return 0

    if stale:
        logger.warning("Marked %d stale generation(s) as failed", len(stale))
    return len(stale)
