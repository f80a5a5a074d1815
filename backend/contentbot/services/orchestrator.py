"""Article generation orchestrator — race-safe entry points and phase sequencing.

Entry points:
  - ``claim_article_for_generation``   conditional UPDATE into ``generating``
  - ``create_or_reset_article_generation``  reuse the active record or insert one
  - ``validate_and_setup_generation``  read-only preflight, typed failures
  - ``start_generation``               preflight + claim + record + dispatch
  - ``generate_article``               run every phase from ``pending``
  - ``continue_generation_from_phase`` idempotent resumption (webhooks)
  - ``retry_generation``               restart a failed run from its last good phase

Runs are handed to Celery through ``dispatch_generation`` and
``dispatch_resume``; callers get the durable generation id back and poll it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from contentbot.config import Settings, get_settings
from contentbot.models import Article, GenerationRecord, Project
from contentbot.schemas.common import ArticleStatus, ClaimResult, GenerationStatus
from contentbot.services import credits
from contentbot.services.content_generator import ContentGenerator, Generator
from contentbot.services.errors import (
    ArticleAlreadyGeneratingError,
    ArticleNotFoundError,
    GenerationValidationError,
    GenerationNotRetryableError,
    InsufficientCreditsError,
    PhaseError,
)
from contentbot.services.generation_context import GenerationContext, build_generation_context
from contentbot.services.phases import PIPELINE, PhaseRun, finalize, phase_position
from contentbot.services.progress_tracker import ProgressTracker
from contentbot.services.research_client import ResearchClient, ResearchService
from contentbot.services.status_flow import (
    ACTIVE_GENERATION_STATUSES,
    CLAIMABLE_ARTICLE_STATUSES,
    is_valid_resume_transition,
)

logger = logging.getLogger(__name__)

G = GenerationStatus

GenerationDispatcher = Callable[[str], Any]
ResumeDispatcher = Callable[[str, str], Any]


def dispatch_generation(generation_id: str) -> None:
    """Hand a prepared record to a Celery worker."""
    from contentbot.tasks.generation import run_generation
    run_generation.delay(generation_id)


def dispatch_resume(generation_id: str, phase: str) -> None:
    from contentbot.tasks.generation import resume_generation
    resume_generation.delay(generation_id, phase)


# ── Claim / record setup ───────────────────────────────────────────────

def claim_article_for_generation(db: Session, article_id: str) -> ClaimResult:
    """Move the article into ``generating`` with one conditional UPDATE.

    The affected-row count decides the outcome, so two concurrent callers
    can never both win.
    """
    updated = (
        db.query(Article)
        .filter(
            Article.id == article_id,
            Article.status.in_([s.value for s in CLAIMABLE_ARTICLE_STATUSES]),
        )
        .update(
            {Article.status: ArticleStatus.GENERATING.value, Article.updated_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    if updated == 1:
        logger.info("Claimed article %s for generation", article_id[:8])
        return ClaimResult.CLAIMED

    current = db.query(Article.status).filter(Article.id == article_id).scalar()
    if current == ArticleStatus.GENERATING.value:
        logger.info("Article %s already claimed", article_id[:8])
        return ClaimResult.ALREADY_CLAIMED
    logger.info("Article %s not claimable (status=%s)", article_id[:8], current)
    return ClaimResult.INVALID_STATE


def get_latest_generation(db: Session, article_id: str) -> GenerationRecord | None:
    return (
        db.query(GenerationRecord)
        .filter(GenerationRecord.article_id == article_id)
        .order_by(GenerationRecord.created_at.desc())
        .first()
    )


def create_or_reset_article_generation(
    db: Session,
    article_id: str,
    user_id: str,
    scheduled_at: datetime | None = None,
) -> GenerationRecord:
    """Reset the article's active record to ``pending``, or insert a new one.

    Finished records are never reused so they stay as history.
    """
    latest = get_latest_generation(db, article_id)
    if latest is not None and latest.status in {s.value for s in ACTIVE_GENERATION_STATUSES}:
        latest.status = GenerationStatus.PENDING.value
        latest.progress = 0
        latest.current_phase = None
        latest.error = None
        latest.artifacts = {}
        latest.research_run_id = None
        latest.started_at = None
        latest.completed_at = None
        latest.scheduled_at = scheduled_at
        record = latest
        logger.info("Reset active generation %s for article %s", record.id[:8], article_id[:8])
    else:
        article = db.get(Article, article_id)
        if article is None:
            raise ArticleNotFoundError(article_id)
        record = GenerationRecord(
            article_id=article_id,
            user_id=user_id,
            project_id=article.project_id,
            status=GenerationStatus.PENDING.value,
            progress=0,
            artifacts={},
            scheduled_at=scheduled_at,
        )
        db.add(record)
    db.commit()
    db.refresh(record)
    return record


def validate_and_setup_generation(
    db: Session,
    user_id: str,
    article_id: str,
    force_regenerate: bool = False,
    settings: Settings | None = None,
) -> GenerationContext:
    """Preflight checks; raises a ``GenerationValidationError`` and writes nothing."""
    settings = settings or get_settings()
    article = db.get(Article, article_id)
    if article is None:
        raise ArticleNotFoundError(article_id)
    project = db.get(Project, article.project_id)
    if project is None or project.user_id != user_id:
        raise ArticleNotFoundError(article_id)

    if article.status in (ArticleStatus.PUBLISHED.value, ArticleStatus.DELETED.value):
        raise GenerationValidationError(
            f"Article {article_id} is {article.status} and cannot be generated",
            code="invalid_state",
        )
    if article.status == ArticleStatus.GENERATING.value and not force_regenerate:
        raise ArticleAlreadyGeneratingError(article_id)

    required = settings.ARTICLE_GENERATION_CREDIT_COST
    if not credits.has_enough_credits(db, user_id, required):
        raise InsufficientCreditsError(required, credits.get_user_credits(db, user_id, create=False))

    return build_generation_context(db, article, project)


def start_generation(
    db: Session,
    user_id: str,
    article_id: str,
    force_regenerate: bool = False,
    dispatch: GenerationDispatcher = dispatch_generation,
) -> GenerationRecord:
    """Validate, claim, prepare the record and hand the run off.

    A forced restart of an article that is already generating skips the
    claim and resets its active record instead.
    """
    validate_and_setup_generation(db, user_id, article_id, force_regenerate)
    article = db.get(Article, article_id)
    db.refresh(article)

    if not (force_regenerate and article.status == ArticleStatus.GENERATING.value):
        result = claim_article_for_generation(db, article_id)
        if result == ClaimResult.ALREADY_CLAIMED:
            raise ArticleAlreadyGeneratingError(article_id)
        if result != ClaimResult.CLAIMED:
            raise GenerationValidationError(
                f"Article {article_id} cannot start generation from its current status",
                code="invalid_state",
            )

    record = create_or_reset_article_generation(db, article_id, user_id)
    dispatch(record.id)
    logger.info("Dispatched generation %s for article %s", record.id[:8], article_id[:8])
    return record


# ── Running ────────────────────────────────────────────────────────────

def handle_generation_error(
    db: Session,
    article_id: str,
    generation_id: str,
    exc: BaseException,
    tracker: ProgressTracker | None = None,
) -> None:
    """Fail the record and hand the article back to the board."""
    message = str(exc) or type(exc).__name__
    logger.error("Generation %s failed: %s", generation_id[:8], message)
    tracker = tracker or ProgressTracker(db, generation_id, get_settings().REDIS_URL)
    tracker.finish_failed(message)

    article = db.get(Article, article_id)
    if article is not None and article.status == ArticleStatus.GENERATING.value:
        article.status = ArticleStatus.IDEA.value
        db.commit()


async def _run_pipeline(run: PhaseRun, start: GenerationStatus) -> bool:
    """Run phases from *start* to the end; False when a phase paused the run."""
    for status, executor in PIPELINE[phase_position(start):]:
        try:
            keep_going = await executor(run)
        except PhaseError:
            raise
        except Exception as exc:
            raise PhaseError(status.value, str(exc) or type(exc).__name__) from exc
        if not keep_going:
            return False
    finalize(run)
    return True


def _phase_run(
    db: Session,
    generation_id: str,
    context: GenerationContext,
    generator: Generator | None,
    research_client: ResearchService | None,
    settings: Settings,
) -> PhaseRun:
    if research_client is None and settings.async_research_enabled:
        research_client = ResearchClient(settings)
    return PhaseRun(
        db=db,
        tracker=ProgressTracker(db, generation_id, settings.REDIS_URL),
        context=context,
        generator=generator or ContentGenerator(settings),
        research_client=research_client,
        settings=settings,
    )


async def generate_article(
    db: Session,
    context: GenerationContext,
    generation_id: str,
    generator: Generator | None = None,
    research_client: ResearchService | None = None,
    settings: Settings | None = None,
) -> GenerationRecord:
    """Run the full pipeline for a ``pending`` record.

    Any phase failure marks the record ``failed`` with its message and
    stops; nothing after it runs.
    """
    settings = settings or get_settings()
    record = db.get(GenerationRecord, generation_id)
    if record is None:
        raise LookupError(f"Generation {generation_id} not found")

    record.started_at = datetime.now(timezone.utc)
    record.scheduled_at = None
    db.commit()

    run = None
    try:
        run = _phase_run(db, generation_id, context, generator, research_client, settings)
        await _run_pipeline(run, GenerationStatus.PENDING)
    except Exception as exc:
        handle_generation_error(db, context.article_id, generation_id, exc, run.tracker if run else None)

    db.refresh(record)
    return record


async def continue_generation_from_phase(
    db: Session,
    generation_id: str,
    phase: str,
    seed_artifact: dict[str, Any] | None = None,
    generator: Generator | None = None,
    research_client: ResearchService | None = None,
    settings: Settings | None = None,
) -> bool:
    """Resume a record at *phase*, skipping everything before it.

    Phases between the record's status and *phase* are skipped. Safe under
    repeated delivery: a record that is terminal or already past *phase* is
    left untouched (seed not merged) and False is returned.
    """
    settings = settings or get_settings()
    phase = GenerationStatus(phase)
    record = db.get(GenerationRecord, generation_id)
    if record is None:
        logger.warning("Resume requested for unknown generation %s", generation_id)
        return False
    if not is_valid_resume_transition(record.status, phase):
        logger.info(
            "Generation %s already at %s; ignoring resume at %s",
            generation_id[:8], record.status, phase.value,
        )
        return False

    article = db.get(Article, record.article_id)
    project = db.get(Project, record.project_id)
    if article is None or project is None:
        handle_generation_error(db, record.article_id, generation_id, LookupError("Article or project no longer exists"))
        return False

    run = None
    try:
        run = _phase_run(
            db, generation_id, build_generation_context(db, article, project), generator, research_client, settings,
        )
        run.tracker.resume_at(phase, artifacts=seed_artifact)
        await _run_pipeline(run, phase)
    except Exception as exc:
        handle_generation_error(db, record.article_id, generation_id, exc, run.tracker if run else None)
    return True


# ── Retry ──────────────────────────────────────────────────────────────

RETRYABLE_GENERATION_STATUSES = frozenset({G.FAILED, G.RESEARCH_FAILED})

# Artifacts each phase leaves behind; a retry carries over those of the
# phases before its restart point.
PHASE_ARTIFACTS: dict[GenerationStatus, tuple[str, ...]] = {
    G.RESEARCHING: ("research",),
    G.OUTLINE: ("cover_image", "outline"),
    G.WRITING: ("write", "content"),
    G.QUALITY_CONTROL: ("quality_control",),
    G.VALIDATING: ("validation",),
}


@dataclass
class RestartPlan:
    phase: GenerationStatus
    reasoning: str
    available_artifacts: list[str] = field(default_factory=list)


def _available_artifacts(artifacts: dict[str, Any]) -> list[str]:
    research = artifacts.get("research") or {}
    checks = (
        ("research", bool(research.get("research_data") or research.get("sources"))),
        ("cover_image", bool((artifacts.get("cover_image") or {}).get("url"))),
        ("outline", bool(artifacts.get("outline"))),
        ("write", bool((artifacts.get("write") or {}).get("content"))),
        ("quality_control", bool(artifacts.get("quality_control"))),
        ("validation", bool(artifacts.get("validation"))),
    )
    return [name for name, present in checks if present]


def determine_restart_phase(failed_phase: str | None, artifacts: dict[str, Any]) -> RestartPlan:
    """Pick where a retry starts from the failing phase and what survived it."""
    available = _available_artifacts(artifacts)
    failed = GenerationStatus(failed_phase) if failed_phase else None

    if failed in (G.PENDING, G.RESEARCHING) or "research" not in available:
        return RestartPlan(G.RESEARCHING, "Research failed or produced nothing; starting from research.", available)
    if failed == G.OUTLINE:
        return RestartPlan(G.OUTLINE, "Outline failed; restarting from the outline with the research kept.", available)
    if failed == G.WRITING or "write" not in available:
        return RestartPlan(G.WRITING, "No draft available; restarting from writing with the research kept.", available)
    if failed == G.QUALITY_CONTROL:
        return RestartPlan(G.QUALITY_CONTROL, "Quality control failed; reassessing the existing draft.", available)
    if failed == G.VALIDATING:
        return RestartPlan(G.VALIDATING, "Validation failed; revalidating the existing draft.", available)
    if failed == G.UPDATING:
        return RestartPlan(
            G.QUALITY_CONTROL, "The update failed; reassessing the draft before updating again.", available,
        )
    if "quality_control" in available and "validation" not in available:
        return RestartPlan(G.VALIDATING, "Failed after quality control; restarting from validation.", available)
    return RestartPlan(G.QUALITY_CONTROL, "Draft and research available; restarting from quality control.", available)


def _carried_artifacts(artifacts: dict[str, Any], restart: GenerationStatus) -> dict[str, Any]:
    carried: dict[str, Any] = {}
    for phase, keys in PHASE_ARTIFACTS.items():
        if phase_position(phase) >= phase_position(restart):
            break
        carried.update({key: artifacts[key] for key in keys if key in artifacts})
    return carried


def retry_generation(
    db: Session,
    user_id: str,
    article_id: str,
    dispatch: ResumeDispatcher = dispatch_resume,
) -> tuple[GenerationRecord, RestartPlan]:
    """Restart a failed generation from its last good phase.

    The failed record stays as history; a fresh record is seeded with the
    artifacts of the phases before the restart point and handed to the
    resume path.
    """
    validate_and_setup_generation(db, user_id, article_id)
    failed = get_latest_generation(db, article_id)
    if failed is None or failed.status not in {s.value for s in RETRYABLE_GENERATION_STATUSES}:
        raise GenerationNotRetryableError(article_id, failed.status if failed else None)

    artifacts = dict(failed.artifacts or {})
    failed_phase = artifacts.get("failed_phase")
    if failed_phase is None and failed.status == G.RESEARCH_FAILED.value:
        failed_phase = G.RESEARCHING.value
    plan = determine_restart_phase(failed_phase, artifacts)

    result = claim_article_for_generation(db, article_id)
    if result == ClaimResult.ALREADY_CLAIMED:
        raise ArticleAlreadyGeneratingError(article_id)
    if result != ClaimResult.CLAIMED:
        raise GenerationValidationError(
            f"Article {article_id} cannot be retried from its current status",
            code="invalid_state",
        )

    record = create_or_reset_article_generation(db, article_id, user_id)
    record.artifacts = {
        **_carried_artifacts(artifacts, plan.phase),
        "retry_of": failed.id,
        "restart_phase": plan.phase.value,
    }
    db.commit()

    dispatch(record.id, plan.phase.value)
    logger.info(
        "Retrying article %s from %s as generation %s (was %s)",
        article_id[:8], plan.phase.value, record.id[:8], failed.id[:8],
    )
    return record, plan
