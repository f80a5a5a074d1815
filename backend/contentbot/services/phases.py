"""Phase executors for the article generation pipeline.

Each executor reads artifacts written by earlier phases, calls the
generator, then records its own artifact and advances status/progress
through the ``ProgressTracker``. Executors return ``True`` to let the
pipeline continue and ``False`` to stop cleanly (async research waiting
on its webhook). Failures raise; the orchestrator records them.

Artifact keys:
  research, research_run_id, research_status, cover_image, outline,
  write, content (latest working draft), qc_runs, quality_control,
  validation, update, seo_report, seo_gate, seo_remediation_passes,
  checklist, checklist_gate, json_ld, publish_ready, credits_deducted
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.orm import Session

from contentbot.config import Settings
from contentbot.models import Article
from contentbot.schemas.common import ArticleStatus, GenerationStatus
from contentbot.services import credits, image_selection, seo_audit
from contentbot.services.content_generator import Generator, GenerationError
from contentbot.services.content_update import apply_corrections, format_issues
from contentbot.services.generation_context import GenerationContext
from contentbot.services.progress_tracker import ProgressTracker
from contentbot.services.research_client import ResearchService
from contentbot.services.status_flow import assert_article_transition
from contentbot.utils import prompts
from contentbot.utils.json_utils import coerce_issues
from contentbot.utils.markdown import ensure_single_intro, slugify

logger = logging.getLogger(__name__)

G = GenerationStatus


@dataclass
class PhaseRun:
    """Everything a phase executor needs for one generation run."""
    db: Session
    tracker: ProgressTracker
    context: GenerationContext
    generator: Generator
    research_client: ResearchService | None
    settings: Settings

    @property
    def artifacts(self) -> dict[str, Any]:
        return dict(self.tracker.record.artifacts or {})

    @property
    def content(self) -> str:
        artifacts = self.artifacts
        return artifacts.get("content") or (artifacts.get("write") or {}).get("content", "")

    @property
    def research_text(self) -> str:
        return (self.artifacts.get("research") or {}).get("research_data", "")


PhaseExecutor = Callable[[PhaseRun], Awaitable[bool]]


# ── Research ───────────────────────────────────────────────────────────

async def run_research(run: PhaseRun) -> bool:
    ctx = run.context
    run.tracker.advance(status=G.RESEARCHING, progress=10, current_phase="research")

    if run.settings.async_research_enabled and run.research_client is not None:
        run_id = await run.research_client.create_task(
            ctx.title,
            ctx.keywords,
            notes=ctx.notes,
            excluded_domains=ctx.excluded_domains,
            metadata={"generation_id": run.tracker.generation_id, "article_id": ctx.article_id},
        )
        run.tracker.record.research_run_id = run_id
        run.tracker.advance(
            progress=15,
            current_phase="research-waiting",
            artifacts={"research_run_id": run_id, "research_status": "pending"},
        )
        logger.info("Generation %s waiting on research run %s", run.tracker.generation_id[:8], run_id)
        return False

    data = await run.generator.generate(
        prompts.build_research_prompt(ctx.title, ctx.description, ctx.keywords, ctx.notes, ctx.excluded_domains),
        task="research",
        structured=True,
    )
    research_data = str(data.get("research_data") or "").strip()
    if not research_data:
        raise GenerationError("research returned no research_data")
    research = {
        "research_data": research_data,
        "sources": [s for s in data.get("sources") or [] if isinstance(s, dict) and s.get("url")],
        "videos": [v for v in data.get("videos") or [] if isinstance(v, dict) and v.get("url")],
    }
    run.tracker.advance(progress=25, artifacts={"research": research, "research_status": "completed"})
    return True


# ── Outline (with optional cover image) ────────────────────────────────

async def select_cover_image(run: PhaseRun) -> None:
    """Best-effort cover image lookup; failures are logged, never raised."""
    if not image_selection.is_enabled(run.settings):
        return
    run.tracker.advance(current_phase="image-selection")
    try:
        image = await image_selection.select_cover_image(run.context.primary_keyword, run.settings)
    except Exception as exc:
        logger.warning("Cover image selection failed for article %s: %s", run.context.article_id[:8], exc)
        run.tracker.merge_artifacts({"cover_image_error": str(exc)})
        return
    if image:
        run.tracker.merge_artifacts({"cover_image": image})


async def run_outline(run: PhaseRun) -> bool:
    ctx = run.context
    run.tracker.advance(status=G.OUTLINE, progress=30, current_phase="outline")
    await select_cover_image(run)

    run.tracker.advance(current_phase="outline")
    try:
        outline = await run.generator.generate(
            prompts.build_outline_prompt(
                ctx.title, ctx.keywords, ctx.max_words, ctx.article_structure, run.research_text,
            ),
            task="outline",
            structured=True,
        )
    except Exception as exc:
        # Writing can proceed without an outline.
        logger.warning("Outline failed for article %s, continuing: %s", ctx.article_id[:8], exc)
        run.tracker.merge_artifacts({"outline_error": str(exc)})
        return True

    run.tracker.merge_artifacts({"outline": outline})
    return True


# ── Write ──────────────────────────────────────────────────────────────

async def run_write(run: PhaseRun) -> bool:
    ctx = run.context
    run.tracker.advance(status=G.WRITING, progress=35, current_phase="writing")

    data = await run.generator.generate(
        prompts.build_write_prompt(
            ctx.title,
            ctx.keywords,
            ctx.tone_of_voice,
            ctx.max_words,
            ctx.related_titles,
            ctx.website_url,
            run.artifacts.get("outline"),
            run.research_text,
        ),
        task="write",
        structured=True,
    )
    content = str(data.get("content") or "").strip()
    if not content:
        raise GenerationError("writer returned an empty article")

    title = str(data.get("title") or ctx.title).strip()
    draft = {
        "title": title,
        "slug": slugify(str(data.get("slug") or "")) or slugify(title),
        "meta_description": str(data.get("meta_description") or "").strip(),
        "intro_paragraph": str(data.get("intro_paragraph") or "").strip(),
        "tags": [str(t) for t in data.get("tags") or []],
        "content": content,
    }
    article = run.db.get(Article, ctx.article_id)
    if article is not None:
        article.draft = content
    run.tracker.advance(progress=50, artifacts={"write": draft, "content": content})
    return True


# ── Quality control ────────────────────────────────────────────────────

async def quality_control_pass(
    run: PhaseRun,
    *,
    status: GenerationStatus | None,
    start: int,
    end: int,
    label: str,
) -> dict[str, Any]:
    """One QC critique of the working draft, capped at MAX_QUALITY_CONTROL_RUNS per run."""
    ctx = run.context
    runs = int(run.artifacts.get("qc_runs", 0))
    run.tracker.advance(status=status, progress=start, current_phase=label)

    if runs >= run.settings.MAX_QUALITY_CONTROL_RUNS:
        logger.warning("Quality control limit reached for article %s", ctx.article_id[:8])
        result = {
            "is_valid": False,
            "issues": [{
                "category": "qc-max-runs",
                "severity": "medium",
                "message": f"Quality control skipped after {runs} runs",
                "suggestion": "",
            }],
            "run": runs,
        }
        run.tracker.advance(progress=end, artifacts={"quality_control": result})
        return result

    data = await run.generator.generate(
        prompts.build_quality_control_prompt(run.content, ctx.keywords, ctx.tone_of_voice, ctx.article_structure),
        task="quality-control",
        structured=True,
    )
    issues = coerce_issues(data.get("issues"))
    has_high = any(i["severity"] in ("high", "critical") for i in issues)
    result = {
        "is_valid": bool(data.get("is_valid", not has_high)) and not has_high,
        "issues": issues,
        "run": runs + 1,
    }
    run.tracker.advance(progress=end, artifacts={"quality_control": result, "qc_runs": runs + 1})
    return result


async def run_quality_control(run: PhaseRun) -> bool:
    await quality_control_pass(run, status=G.QUALITY_CONTROL, start=60, end=70, label="quality-control")
    return True


# ── Validation ─────────────────────────────────────────────────────────

async def run_validation(run: PhaseRun) -> bool:
    run.tracker.advance(status=G.VALIDATING, progress=80, current_phase="validating")
    timeout = run.settings.VALIDATION_TIMEOUT_SECONDS
    try:
        data = await asyncio.wait_for(
            run.generator.generate(prompts.build_validation_prompt(run.content), task="validation", structured=True),
            timeout=timeout,
        )
        issues = coerce_issues(data.get("issues"))
        result = {
            "is_valid": bool(data.get("is_valid", not issues)),
            "issues": issues,
            "raw_validation_text": str(data.get("summary") or format_issues(issues)),
        }
    except asyncio.TimeoutError:
        logger.warning("Validation timed out after %.0fs; treating as no issues", timeout)
        result = {"is_valid": True, "issues": [], "raw_validation_text": f"Validation skipped: timed out after {timeout:.0f}s"}
    except Exception as exc:
        logger.warning("Validation failed; treating as no issues: %s", exc)
        result = {"is_valid": True, "issues": [], "raw_validation_text": f"Validation skipped: {exc}"}

    run.tracker.advance(progress=85, artifacts={"validation": result})
    return True


# ── Update + SEO audit ─────────────────────────────────────────────────

async def run_update(run: PhaseRun) -> bool:
    run.tracker.advance(status=G.UPDATING, progress=90, current_phase="updating")
    artifacts = run.artifacts
    validation = artifacts.get("validation") or {}
    qc = artifacts.get("quality_control") or {}

    validation_issues = validation.get("issues") or []
    qc_issues = [i for i in qc.get("issues") or [] if i.get("category") != "qc-max-runs"]

    if validation_issues or qc_issues:
        revised = await apply_corrections(
            run.generator,
            run.content,
            validation_text=format_issues(validation_issues) if validation_issues else None,
            quality_control_text=format_issues(qc_issues) if qc_issues else None,
        )
        run.tracker.advance(
            progress=91,
            artifacts={
                "content": revised,
                "update": {
                    "applied": True,
                    "validation_issue_count": len(validation_issues),
                    "quality_control_issue_count": len(qc_issues),
                },
            },
        )
        await quality_control_pass(run, status=None, start=92, end=93, label="post-update-quality-control")
    else:
        run.tracker.merge_artifacts({"update": {"applied": False}})

    await run_seo_audit(run)
    return True


async def run_seo_audit(run: PhaseRun) -> None:
    """Audit, remediate while the gates fail (bounded), then persist the final audit."""
    settings = run.settings
    ctx = run.context
    write = run.artifacts.get("write") or {}
    content = run.content

    def _audit(markdown: str) -> tuple[seo_audit.SeoReport, seo_audit.GateResult]:
        report = seo_audit.analyze(
            markdown,
            ctx.keywords,
            min_h2=settings.SEO_MIN_H2,
            min_chars=settings.SEO_MIN_CHARS,
            min_words=settings.SEO_MIN_WORDS,
            min_reading_ease=settings.SEO_MIN_READING_EASE,
        )
        gate = seo_audit.passes_quality_gates(
            report,
            min_score=settings.SEO_MIN_SCORE,
            min_h2=settings.SEO_MIN_H2,
            min_chars=settings.SEO_MIN_CHARS,
        )
        return report, gate

    run.tracker.advance(progress=94, current_phase="seo-audit")
    report, gate = _audit(content)
    passes = 0
    while not gate.passed and passes < settings.SEO_MAX_REMEDIATION_PASSES:
        passes += 1
        run.tracker.advance(
            progress=96,
            current_phase="seo-remediation",
            artifacts={"seo_report": report.to_dict(), "seo_gate": gate.to_dict()},
        )
        logger.info(
            "SEO remediation pass %d/%d for article %s: %s",
            passes, settings.SEO_MAX_REMEDIATION_PASSES, ctx.article_id[:8], ", ".join(gate.codes),
        )
        content = await apply_corrections(run.generator, content, seo_report=report, seo_gate=gate)
        run.tracker.merge_artifacts({"content": content, "seo_remediation_passes": passes})
        report, gate = _audit(content)

    content = ensure_single_intro(content, write.get("intro_paragraph"))
    report, gate = _audit(content)
    if not gate.passed:
        logger.warning(
            "Article %s still fails SEO gates after %d passes: %s",
            ctx.article_id[:8], passes, ", ".join(gate.codes),
        )

    cover = run.artifacts.get("cover_image") or {}
    json_ld = seo_audit.build_json_ld(
        title=write.get("title") or ctx.title,
        content=content,
        meta_description=write.get("meta_description"),
        slug=write.get("slug"),
        keywords=ctx.keywords,
        website_url=ctx.website_url,
        image_url=cover.get("url"),
    )
    checklist = seo_audit.build_checklist(
        content,
        report,
        meta_description=write.get("meta_description"),
        slug=write.get("slug"),
        primary_keyword=ctx.primary_keyword,
        json_ld=json_ld,
        cover_image_alt=cover.get("alt"),
        has_cover_image=bool(cover.get("url")),
        min_h2=settings.SEO_MIN_H2,
        min_chars=settings.SEO_MIN_CHARS,
    )
    checklist_gate = seo_audit.passes_checklist(
        checklist,
        allow_no_images=not image_selection.is_enabled(settings),
        require_faq=True,
        max_broken_external_links=0,
    )
    run.tracker.advance(
        progress=97,
        current_phase="seo-audit",
        artifacts={
            "content": content,
            "seo_report": report.to_dict(),
            "seo_gate": gate.to_dict(),
            "seo_remediation_passes": passes,
            "checklist": checklist,
            "checklist_gate": checklist_gate.to_dict(),
            "json_ld": json_ld,
        },
    )


# ── Finalize ───────────────────────────────────────────────────────────

def finalize(run: PhaseRun) -> bool:
    """Write denormalized fields to the article and complete the record.

    Credits are only charged for publish-ready articles.
    """
    db = run.db
    ctx = run.context
    artifacts = run.artifacts
    write = artifacts.get("write") or {}
    cover = artifacts.get("cover_image") or {}
    seo_report = artifacts.get("seo_report") or {}

    publish_ready = (
        bool((artifacts.get("quality_control") or {}).get("is_valid"))
        and bool((artifacts.get("validation") or {}).get("is_valid"))
        and bool((artifacts.get("checklist_gate") or {}).get("passed"))
    )

    article = db.get(Article, ctx.article_id)
    if article is None:
        raise LookupError(f"Article {ctx.article_id} disappeared during generation")
    assert_article_transition(article.status, ArticleStatus.WAIT_FOR_PUBLISH)
    article.content = run.content
    article.slug = write.get("slug") or article.slug
    article.meta_description = write.get("meta_description") or article.meta_description
    article.intro_paragraph = write.get("intro_paragraph") or article.intro_paragraph
    article.meta_keywords = write.get("tags") or ctx.keywords
    article.seo_score = seo_report.get("score")
    article.json_ld = artifacts.get("json_ld")
    if cover.get("url"):
        article.cover_image_url = cover["url"]
        article.cover_image_alt = cover.get("alt")
    article.status = ArticleStatus.WAIT_FOR_PUBLISH.value
    db.commit()

    charged = False
    if publish_ready:
        charged = credits.deduct_credits(db, ctx.user_id, run.settings.ARTICLE_GENERATION_CREDIT_COST)
    else:
        logger.info("Article %s is not publish-ready; no credits charged", ctx.article_id[:8])

    run.tracker.finish_completed(artifacts={"publish_ready": publish_ready, "credits_deducted": charged})
    return publish_ready


PIPELINE: tuple[tuple[GenerationStatus, PhaseExecutor], ...] = (
    (G.RESEARCHING, run_research),
    (G.OUTLINE, run_outline),
    (G.WRITING, run_write),
    (G.QUALITY_CONTROL, run_quality_control),
    (G.VALIDATING, run_validation),
    (G.UPDATING, run_update),
)


def phase_position(status: GenerationStatus) -> int:
    """Index into ``PIPELINE`` where a run at *status* starts or resumes."""
    status = GenerationStatus(status)
    if status == G.PENDING:
        return 0
    for index, (phase_status, _) in enumerate(PIPELINE):
        if phase_status == status:
            return index
    raise ValueError(f"Cannot run pipeline from status '{status.value}'")
