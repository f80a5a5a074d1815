"""Signed completion callbacks from the external research service.

Deliveries are at-least-once and may arrive concurrently, so the handler
only acts on a record that is still ``researching`` and advances it with
a conditional UPDATE; duplicates find nothing to do.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from contentbot.config import get_settings
from contentbot.models import Article, GenerationRecord
from contentbot.schemas.common import ArticleStatus, GenerationStatus
from contentbot.schemas.webhook import ResearchWebhookPayload
from contentbot.services.orchestrator import ResumeDispatcher, dispatch_resume
from contentbot.services.progress_tracker import ProgressTracker
from contentbot.services.research_client import ResearchService

logger = logging.getLogger(__name__)

STATUS_EVENT = "task_run.status"


def compute_webhook_signature(webhook_id: str, timestamp: str, body: str | bytes, secret: str) -> str:
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    signed = f"{webhook_id}.{timestamp}.{body}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(
    webhook_id: str,
    timestamp: str,
    body: str | bytes,
    signature_header: str,
    secret: str,
) -> bool:
    """Check a space-delimited ``v1,<base64>`` signature header in constant time."""
    if not (webhook_id and timestamp and signature_header and secret):
        return False
    expected = compute_webhook_signature(webhook_id, timestamp, body, secret)
    for part in signature_header.split(" "):
        version, _, sig = part.partition(",")
        if version == "v1" and sig and hmac.compare_digest(sig.encode("utf-8"), expected.encode("utf-8")):
            return True
    return False


def find_researching_generation(db: Session, run_id: str) -> GenerationRecord | None:
    return (
        db.query(GenerationRecord)
        .filter(
            GenerationRecord.research_run_id == run_id,
            GenerationRecord.status == GenerationStatus.RESEARCHING.value,
        )
        .order_by(GenerationRecord.created_at.desc())
        .first()
    )


async def handle_research_notification(
    db: Session,
    payload: ResearchWebhookPayload,
    research_client: ResearchService,
    dispatch: ResumeDispatcher = dispatch_resume,
) -> str:
    """Apply one verified notification and return the action taken."""
    if payload.type != STATUS_EVENT or payload.data is None:
        logger.info("Ignoring research webhook of type %s", payload.type)
        return "ignored"

    run_id = payload.data.run_id
    run_status = payload.data.status
    record = find_researching_generation(db, run_id)
    if record is None:
        logger.info("No researching generation for run %s (status=%s); nothing to do", run_id, run_status)
        return "no_op"

    generation_id, article_id = record.id, record.article_id
    tracker = ProgressTracker(db, generation_id, get_settings().REDIS_URL)

    if run_status == "completed":
        try:
            research = await research_client.fetch_result(run_id)
        except Exception as exc:
            logger.error("Could not fetch research result for run %s: %s", run_id, exc)
            tracker.finish_failed(
                f"research failed: could not fetch result ({exc})",
                artifacts={"research_error": str(exc), "research_status": "failed"},
            )
            _return_article_to_idea(db, article_id)
            return "fetch_failed"

        record.artifacts = {
            **(record.artifacts or {}),
            "research": research,
            "research_status": "completed",
        }
        db.commit()

        advanced = (
            db.query(GenerationRecord)
            .filter(
                GenerationRecord.id == generation_id,
                GenerationRecord.status == GenerationStatus.RESEARCHING.value,
            )
            .update(
                {
                    GenerationRecord.status: GenerationStatus.OUTLINE.value,
                    GenerationRecord.progress: 25,
                    GenerationRecord.current_phase: "outline",
                    GenerationRecord.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        db.commit()
        if advanced != 1:
            logger.info("Generation %s already advanced by another delivery", generation_id[:8])
            return "no_op"

        dispatch(generation_id, GenerationStatus.OUTLINE.value)
        logger.info("Research run %s completed; resuming generation %s at outline", run_id, generation_id[:8])
        return "resumed"

    if run_status == "failed":
        error = payload.data.error
        message = (error.message if error else None) or "Research run failed"
        tracker.finish_failed(
            message,
            status=GenerationStatus.RESEARCH_FAILED,
            artifacts={"research_error": message, "research_status": "failed"},
        )
        _return_article_to_idea(db, article_id)
        logger.warning("Research run %s failed for generation %s: %s", run_id, generation_id[:8], message)
        return "research_failed"

    logger.info("Research run %s reported status %s; waiting", run_id, run_status)
    return "ignored"


def _return_article_to_idea(db: Session, article_id: str) -> None:
    db.query(Article).filter(
        Article.id == article_id,
        Article.status == ArticleStatus.GENERATING.value,
    ).update({Article.status: ArticleStatus.IDEA.value}, synchronize_session=False)
    db.commit()
