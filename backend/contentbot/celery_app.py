"""Celery application and worker configuration.

Defines the shared Celery instance used by all background tasks, the beat
schedule for the queue drain and publish sweep, and a ``worker_init``
hook that fails generations orphaned by a previous unclean shutdown.
"""
import logging
from celery import Celery
from celery.signals import worker_init
from contentbot.config import get_settings

settings = get_settings()

celery_app = Celery(
    "contentbot_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["contentbot.tasks.generation"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=False,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.CELERY_CONCURRENCY,
    result_expires=86400,  # 24 hours
    broker_connection_retry_on_startup=True,
    beat_schedule={
        "process-generation-queue": {
            "task": "generation.process_generation_queue",
            "schedule": float(settings.QUEUE_SWEEP_INTERVAL_SECONDS),
        },
        "publish-scheduled-articles": {
            "task": "generation.publish_scheduled_articles",
            "schedule": float(settings.PUBLISH_SWEEP_INTERVAL_SECONDS),
        },
    },
)


@worker_init.connect
def setup_worker(**kwargs):
    """Run once when the Celery worker process starts.

    - Suppress noisy HTTP loggers.
    - Mark generations stuck mid-pipeline as failed so polling clients
      see a terminal state.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    from contentbot.utils.startup import cleanup_stale_generations
    cleanup_stale_generations()
