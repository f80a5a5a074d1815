"""Celery tasks for background article generation and the cron sweeps.

The generation pipeline is async, so each task spins up a short-lived
event loop to bridge sync Celery with the async service code. Tasks take
only durable ids; everything else is reloaded from the database.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from contentbot.celery_app import celery_app
from contentbot.database import SessionLocal, session_scope
from contentbot.models import Article, GenerationRecord, Project
from contentbot.services import orchestrator, publishing_service, queue_service
from contentbot.services.generation_context import build_generation_context
from contentbot.services.http_client_manager import close_all_clients

logger = logging.getLogger(__name__)


async def _closing_clients(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return await coro
    finally:
        await close_all_clients()


def _run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_closing_clients(coro))
    finally:
        loop.close()


@celery_app.task(bind=True, name="generation.run_generation")
def run_generation(self, generation_id: str):
    """Run the full pipeline for a prepared ``pending`` record."""
    db = SessionLocal()
    try:
        record = db.get(GenerationRecord, generation_id)
        if record is None:
            logger.error("Generation %s not found; nothing to run", generation_id)
            return {"error": "generation not found"}
        article = db.get(Article, record.article_id)
        project = db.get(Project, record.project_id)
        if article is None or project is None:
            orchestrator.handle_generation_error(
                db, record.article_id, generation_id, LookupError("Article or project no longer exists"),
            )
            return {"error": "article not found"}

        logger.info("Task %s running generation %s", self.request.id, generation_id[:8])
        context = build_generation_context(db, article, project)
        record = _run_async(orchestrator.generate_article(db, context, generation_id))
        return {"generation_id": generation_id, "status": record.status}

    except Exception as e:
        logger.exception("Celery task error for generation %s: %s", generation_id, e)
        record = db.get(GenerationRecord, generation_id)
        if record is not None:
            orchestrator.handle_generation_error(db, record.article_id, generation_id, e)
        return {"error": str(e)}
    finally:
        db.close()


@celery_app.task(bind=True, name="generation.resume_generation")
def resume_generation(self, generation_id: str, phase: str):
    """Continue a record from *phase* (e.g. after the research webhook)."""
    db = SessionLocal()
    try:
        resumed = _run_async(orchestrator.continue_generation_from_phase(db, generation_id, phase))
        return {"generation_id": generation_id, "phase": phase, "resumed": resumed}
    except Exception as e:
        logger.exception("Resume task error for generation %s: %s", generation_id, e)
        return {"error": str(e)}
    finally:
        db.close()


@celery_app.task(name="generation.process_generation_queue")
def process_generation_queue():
    with session_scope() as db:
        return queue_service.process_due_queue(db)


@celery_app.task(name="generation.publish_scheduled_articles")
def publish_scheduled_articles():
    with session_scope() as db:
        return _run_async(publishing_service.publish_scheduled_articles(db))
