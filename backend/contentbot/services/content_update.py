"""Single content-rewriting operation behind every correction path.

Validation fixes, quality-control fixes, a raw correction list and SEO
remediation all end up in ``apply_corrections``, which renders one
instruction block and asks the generator for the revised Markdown.
"""
from __future__ import annotations

import logging
from typing import Any

from contentbot.services.content_generator import Generator, GenerationError
from contentbot.services.seo_audit import GateResult, SeoReport
from contentbot.utils.json_utils import strip_markdown_fence
from contentbot.utils.prompts import build_update_prompt

logger = logging.getLogger(__name__)


def format_issues(issues: list[dict[str, Any]]) -> str:
    lines = []
    for issue in issues:
        line = f"- [{issue.get('severity', 'medium')}] {issue.get('message', '')}"
        if issue.get("suggestion"):
            line += f" (fix: {issue['suggestion']})"
        lines.append(line)
    return "\n".join(lines)


def build_instructions(
    corrections: list[str] | None = None,
    validation_text: str | None = None,
    quality_control_text: str | None = None,
    seo_report: SeoReport | None = None,
    seo_gate: GateResult | None = None,
) -> str:
    """Render every requested correction into one instruction block."""
    sections = []
    if corrections:
        sections.append("## Corrections\n\n" + "\n".join(f"- {c}" for c in corrections))
    if validation_text:
        sections.append(f"## Validation Issues\n\n{validation_text.strip()}")
    if quality_control_text:
        sections.append(f"## Quality Control Issues\n\n{quality_control_text.strip()}")
    if seo_report is not None:
        lines = [f"- [{i.severity}] {i.code}: {i.message}" for i in seo_report.issues]
        if seo_gate is not None:
            lines += [f"- {f.code}: {f.reason}" for f in seo_gate.failures]
        sections.append(
            f"## SEO Audit (score {seo_report.score}/100)\n\n" + "\n".join(dict.fromkeys(lines))
        )
    return "\n\n".join(sections)


async def apply_corrections(
    generator: Generator,
    content: str,
    *,
    corrections: list[str] | None = None,
    validation_text: str | None = None,
    quality_control_text: str | None = None,
    seo_report: SeoReport | None = None,
    seo_gate: GateResult | None = None,
) -> str:
    """Return *content* rewritten with the given corrections applied.

    With nothing to apply the content comes back untouched and the
    generator is not called.
    """
    instructions = build_instructions(
        corrections, validation_text, quality_control_text, seo_report, seo_gate,
    )
    if not instructions:
        return content

    task = "seo-remediation" if seo_report is not None else "update"
    revised = await generator.generate(build_update_prompt(content, instructions), task=task)
    if isinstance(revised, dict):
        revised = str(revised.get("content") or "")
    revised = strip_markdown_fence(revised)
    if not revised.strip():
        raise GenerationError(f"Rewrite for task '{task}' returned empty content")
    logger.info("Applied %s corrections (%d -> %d chars)", task, len(content), len(revised))
    return revised
