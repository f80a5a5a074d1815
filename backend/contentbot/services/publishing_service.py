"""Publish scheduling, the publish sweep and outbound blog webhooks.

The sweep flips due ``wait_for_publish`` articles to ``published`` with a
conditional UPDATE, then notifies the project's blog webhook. A failed
notification is recorded on its ``WebhookDelivery`` row and never undoes
the publication.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from contentbot.config import get_settings
from contentbot.models import Article, GenerationRecord, Project, WebhookDelivery
from contentbot.schemas.common import ArticleStatus, DeliveryStatus, GenerationStatus
from contentbot.services.errors import ArticleNotFoundError, GenerationValidationError
from contentbot.services.http_client_manager import get_http_client
from contentbot.services.orchestrator import get_latest_generation
from contentbot.services.queue_service import as_utc

logger = logging.getLogger(__name__)

PUBLISHED_EVENT = "article.published"


# ── Scheduling ─────────────────────────────────────────────────────────

def _owned_article(db: Session, user_id: str, article_id: str) -> Article:
    article = db.get(Article, article_id)
    if article is None or article.user_id != user_id:
        raise ArticleNotFoundError(article_id)
    return article


def schedule_publish(
    db: Session,
    user_id: str,
    article_id: str,
    publish_at: datetime,
    now: datetime | None = None,
) -> Article:
    """Set the publish time of a generated article; it must lie in the future."""
    now = as_utc(now or datetime.now(timezone.utc))
    publish_at = as_utc(publish_at)
    article = _owned_article(db, user_id, article_id)
    if article.status != ArticleStatus.WAIT_FOR_PUBLISH.value:
        raise GenerationValidationError(
            f"Only articles waiting for publish can be scheduled (status={article.status})",
            code="invalid_state",
        )
    if publish_at <= now:
        raise GenerationValidationError("Publish time must be in the future", code="invalid_publish_time")

    article.publish_scheduled_at = publish_at
    db.commit()
    db.refresh(article)
    logger.info("Article %s scheduled to publish at %s", article_id[:8], publish_at.isoformat())
    return article


def cancel_publish_schedule(db: Session, user_id: str, article_id: str) -> Article:
    article = _owned_article(db, user_id, article_id)
    article.publish_scheduled_at = None
    db.commit()
    db.refresh(article)
    return article


# ── Blog webhook ───────────────────────────────────────────────────────

def sign_payload(body: str, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def build_publish_payload(article: Article, record: GenerationRecord | None) -> dict[str, Any]:
    artifacts = (record.artifacts if record else None) or {}
    write = artifacts.get("write") or {}
    sources = [
        f"{s['title']} - {s['url']}" if s.get("title") else s["url"]
        for s in (artifacts.get("research") or {}).get("sources") or []
        if isinstance(s, dict) and s.get("url")
    ]
    return {
        "id": article.id,
        "title": write.get("title") or article.title,
        "slug": article.slug,
        "description": article.description or article.meta_description,
        "content": article.content or write.get("content") or "",
        "keywords": list(article.keywords or []),
        "metaDescription": article.meta_description,
        "seoScore": article.seo_score,
        "coverImageUrl": article.cover_image_url,
        "coverImageAlt": article.cover_image_alt,
        "jsonLd": article.json_ld,
        "publishedAt": article.published_at.isoformat() if article.published_at else None,
        "sources": sources,
        "createdAt": article.created_at.isoformat() if article.created_at else None,
        "updatedAt": article.updated_at.isoformat() if article.updated_at else None,
    }


async def deliver_publish_webhook(
    db: Session,
    article: Article,
    project: Project,
    record: GenerationRecord | None = None,
    client: httpx.AsyncClient | None = None,
) -> WebhookDelivery | None:
    """POST ``article.published`` to the project's webhook and record the attempt."""
    if not (project.webhook_enabled and project.webhook_url):
        logger.debug("No webhook configured for project %s", project.id[:8])
        return None

    payload = build_publish_payload(article, record)
    delivery = WebhookDelivery(
        article_id=article.id,
        project_id=project.id,
        url=project.webhook_url,
        event_type=PUBLISHED_EVENT,
        status=DeliveryStatus.PENDING.value,
        attempts=1,
        request_payload=payload,
    )
    db.add(delivery)
    db.commit()

    body = json.dumps(payload)
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": PUBLISHED_EVENT,
        "X-Webhook-Timestamp": str(int(time.time())),
    }
    if project.webhook_secret:
        headers["X-Webhook-Signature"] = sign_payload(body, project.webhook_secret)

    client = client or get_http_client("webhook")
    try:
        response = await client.post(
            project.webhook_url,
            content=body,
            headers=headers,
            timeout=get_settings().PUBLISH_WEBHOOK_TIMEOUT_SECONDS,
        )
        delivery.response_status = response.status_code
        if response.is_success:
            delivery.status = DeliveryStatus.SUCCESS.value
            delivery.delivered_at = datetime.now(timezone.utc)
            logger.info("Webhook delivered for article %s", article.id[:8])
        else:
            delivery.status = DeliveryStatus.FAILED.value
            delivery.error_message = f"HTTP {response.status_code}: {response.reason_phrase}"
            logger.error("Webhook delivery failed for article %s: %s", article.id[:8], delivery.error_message)
    except httpx.TimeoutException:
        delivery.status = DeliveryStatus.FAILED.value
        delivery.error_message = "Request timeout"
        logger.error("Webhook delivery timed out for article %s", article.id[:8])
    except httpx.HTTPError as exc:
        delivery.status = DeliveryStatus.FAILED.value
        delivery.error_message = str(exc) or type(exc).__name__
        logger.error("Webhook delivery error for article %s: %s", article.id[:8], exc)
    db.commit()
    return delivery


# ── Sweep ──────────────────────────────────────────────────────────────

async def publish_scheduled_articles(
    db: Session,
    now: datetime | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Publish every due article whose latest generation completed."""
    now = as_utc(now or datetime.now(timezone.utc))
    due = (
        db.query(Article)
        .filter(
            Article.status == ArticleStatus.WAIT_FOR_PUBLISH.value,
            Article.publish_scheduled_at.isnot(None),
            Article.publish_scheduled_at <= now,
        )
        .order_by(Article.publish_scheduled_at.asc())
        .all()
    )
    result: dict[str, Any] = {"checked": len(due), "published": 0, "article_ids": []}
    logger.info("Publish sweep: %d due article(s)", len(due))

    for article in due:
        article_id = article.id
        record = get_latest_generation(db, article_id)
        if record is None or record.status != GenerationStatus.COMPLETED.value:
            logger.info("Skipping article %s: latest generation not completed", article_id[:8])
            continue

        flipped = (
            db.query(Article)
            .filter(Article.id == article_id, Article.status == ArticleStatus.WAIT_FOR_PUBLISH.value)
            .update(
                {
                    Article.status: ArticleStatus.PUBLISHED.value,
                    Article.published_at: func.coalesce(Article.published_at, now),
                    Article.publish_scheduled_at: None,
                    Article.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        if flipped != 1:
            logger.info("Article %s was published or moved concurrently", article_id[:8])
            continue

        result["published"] += 1
        result["article_ids"].append(article_id)
        logger.info("Published article %s", article_id[:8])

        db.refresh(article)
        project = db.get(Project, article.project_id)
        if project is not None:
            await deliver_publish_webhook(db, article, project, record, client=client)

    return result
