"""Unified progress tracking for article generation runs.

``ProgressTracker`` is the only write path for a generation record's
status, progress, sub-phase label and artifacts. The database row is the
source of truth; every change is also broadcast best-effort over Redis
pub/sub (channel ``generation:{id}``) for live WebSocket clients.

Rules enforced here:
  - status changes must be allowed by ``GENERATION_STATUS_FLOW``;
    resumption may only skip forward
  - progress never decreases
  - artifacts are merged into a new dict, never mutated or pruned
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import redis
from sqlalchemy.orm import Session

from contentbot.models import GenerationRecord
from contentbot.schemas.common import GenerationStatus
from contentbot.services.status_flow import (
    assert_generation_transition,
    assert_resume_transition,
    is_terminal_generation_status,
)

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Single entry-point for progress reporting throughout a generation run."""

    def __init__(self, db: Session, generation_id: str, redis_url: str | None = None):
        self.db = db
        self.generation_id = generation_id
        self._redis: redis.Redis | None = None
        self._redis_url = redis_url

    # ── Redis connection (lazy, tolerant of failure) ───────────────────

    @property
    def redis_client(self) -> redis.Redis | None:
        if self._redis is None and self._redis_url:
            try:
                self._redis = redis.from_url(self._redis_url)
            except Exception:
                logger.warning("Could not connect to Redis for progress updates")
        return self._redis

    @property
    def record(self) -> GenerationRecord:
        record = self.db.get(GenerationRecord, self.generation_id)
        if record is None:
            raise LookupError(f"Generation {self.generation_id} not found")
        return record

    # ── Public API ─────────────────────────────────────────────────────

    def advance(
        self,
        status: GenerationStatus | None = None,
        progress: int | None = None,
        current_phase: str | None = None,
        artifacts: dict[str, Any] | None = None,
    ) -> GenerationRecord:
        """Persist a phase transition, then broadcast it."""
        record = self.record
        if status is not None:
            assert_generation_transition(record.status, status)
            record.status = GenerationStatus(status).value
        if progress is not None:
            record.progress = max(record.progress or 0, min(100, int(progress)))
        if current_phase is not None:
            record.current_phase = current_phase
        if artifacts:
            record.artifacts = {**(record.artifacts or {}), **artifacts}
        self.db.commit()

        self._publish_redis(record)
        logger.info(
            "Generation %s: %s/%s (%d%%)",
            self.generation_id[:8], record.status, record.current_phase, record.progress,
        )
        return record

    def resume_at(self, status: GenerationStatus, artifacts: dict[str, Any] | None = None) -> GenerationRecord:
        """Re-enter the pipeline at *status*, skipping the phases before it."""
        record = self.record
        assert_resume_transition(record.status, status)
        record.status = GenerationStatus(status).value
        record.current_phase = GenerationStatus(status).value
        record.error = None
        if record.started_at is None:
            record.started_at = datetime.now(timezone.utc)
        if artifacts:
            record.artifacts = {**(record.artifacts or {}), **artifacts}
        self.db.commit()

        self._publish_redis(record)
        logger.info("Generation %s: resuming at %s", self.generation_id[:8], record.status)
        return record

    def merge_artifacts(self, artifacts: dict[str, Any]) -> GenerationRecord:
        return self.advance(artifacts=artifacts)

    def finish_completed(self, artifacts: dict[str, Any] | None = None) -> GenerationRecord:
        record = self.advance(
            status=GenerationStatus.COMPLETED,
            progress=100,
            current_phase="completed",
            artifacts=artifacts,
        )
        record.completed_at = datetime.now(timezone.utc)
        self.db.commit()
        return record

    def finish_failed(
        self,
        error_msg: str,
        status: GenerationStatus = GenerationStatus.FAILED,
        artifacts: dict[str, Any] | None = None,
    ) -> GenerationRecord | None:
        """Record a terminal failure; progress stays where the run stopped.

        The status the run was in is kept as the ``failed_phase`` artifact
        so a retry can pick its restart point.
        """
        try:
            self.db.rollback()
            record = self.record
            if is_terminal_generation_status(record.status):
                return record
            failed_phase = record.status
            record.status = status.value
            record.error = error_msg
            record.completed_at = datetime.now(timezone.utc)
            record.artifacts = {**(record.artifacts or {}), "failed_phase": failed_phase, **(artifacts or {})}
            self.db.commit()
        except Exception as e:
            logger.error("DB failure update failed for generation %s: %s", self.generation_id[:8], e)
            return None

        self._publish_redis(record)
        return record

    # ── Internal helpers ───────────────────────────────────────────────

    def _publish_redis(self, record: GenerationRecord) -> None:
        try:
            rc = self.redis_client
            if rc:
                payload: dict[str, Any] = {
                    "generation_id": record.id,
                    "article_id": record.article_id,
                    "status": record.status,
                    "progress": record.progress,
                    "current_phase": record.current_phase,
                    "error": record.error,
                }
                rc.publish(f"generation:{record.id}", json.dumps(payload))
        except Exception as e:
            logger.debug("Redis publish skipped for generation %s: %s", self.generation_id[:8], e)
