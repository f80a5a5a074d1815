"""Prompt templates for every AI-backed generation phase.

Structured phases ask for a single JSON object; the rewrite prompts ask
for the full Markdown article back. Templates are filled with
``str.format`` so literal braces in the JSON examples are doubled.
"""
from __future__ import annotations

import json
from typing import Any

SYSTEM_PROMPT = (
    "You are a senior SEO content strategist and editor. You write accurate, "
    "well-structured, people-first articles in Markdown and you never invent sources."
)


PROMPT_TEMPLATES: dict[str, str] = {
    "research": """Research the topic below for a blog article.

TOPIC: {title}
DESCRIPTION: {description}
TARGET KEYWORDS: {keywords}
AUDIENCE NOTES: {notes}
EXCLUDED DOMAINS (never cite): {excluded_domains}

Return ONE JSON object with these keys:
{{
  "research_data": "Markdown research brief: executive summary, primary search intent, key insights, statistics with sources, content gaps, frequently asked questions",
  "sources": [{{"url": "https://...", "title": "..."}}],
  "videos": [{{"url": "https://...", "title": "..."}}]
}}
Only include sources you are confident exist.""",

    "outline": """Create an outline for the article "{title}".

TARGET KEYWORDS: {keywords}
MAXIMUM WORDS: {max_words}
REQUIRED STRUCTURE: {article_structure}

RESEARCH:
{research}

Return ONE JSON object:
{{
  "sections": [{{"heading": "...", "level": 2, "key_points": ["..."], "target_words": 200}}],
  "faq": ["question?"]
}}
Include a TL;DR section first and an FAQ section last.""",

    "write": """Write the complete article "{title}" in Markdown.

TARGET KEYWORDS: {keywords}
TONE OF VOICE: {tone}
MAXIMUM WORDS: {max_words}
RELATED ARTICLES (link internally where natural): {related}
WEBSITE: {website_url}

OUTLINE:
{outline}

RESEARCH:
{research}

Rules:
- Exactly one H1 containing the primary keyword, then one intro paragraph.
- A "## TL;DR" section, at least three further H2 sections, and a "## FAQ" section with "###" questions.
- Cite sources from the research as Markdown links. Never cite excluded domains.

Return ONE JSON object:
{{
  "title": "...",
  "slug": "url-friendly-slug",
  "meta_description": "50-160 characters",
  "intro_paragraph": "1-3 sentences shown right after the H1",
  "tags": ["..."],
  "content": "full Markdown article"
}}""",

    "quality-control": """Review this draft against the editorial requirements. Do not rewrite it.

TARGET KEYWORDS: {keywords}
TONE OF VOICE: {tone}
REQUIRED STRUCTURE: {article_structure}

DRAFT:
{content}

Return ONE JSON object:
{{
  "is_valid": true,
  "issues": [{{"category": "structure|tone|accuracy|seo|style", "severity": "low|medium|high", "message": "...", "suggestion": "..."}}]
}}
Set is_valid to false when any issue has high severity.""",

    "validation": """Fact-check every verifiable claim in this article (figures, dates, names, quotes).

ARTICLE:
{content}

Return ONE JSON object:
{{
  "is_valid": true,
  "issues": [{{"claim": "...", "severity": "low|medium|high", "message": "what is wrong", "correction": "suggested fix"}}],
  "summary": "one paragraph"
}}""",

    "update": """Revise the article below. Apply every correction, keep everything else intact,
keep the Markdown structure (single H1, TL;DR, H2 sections, FAQ) and the links.

CORRECTIONS TO APPLY:
{instructions}

ARTICLE:
{content}

Return only the full revised Markdown article.""",
}


def _keywords(keywords: list[str]) -> str:
    return ", ".join(keywords) if keywords else "(none)"


def build_research_prompt(
    title: str,
    description: str | None,
    keywords: list[str],
    notes: str | None,
    excluded_domains: list[str] | None,
) -> str:
    return PROMPT_TEMPLATES["research"].format(
        title=title,
        description=description or "(none)",
        keywords=_keywords(keywords),
        notes=notes or "(none)",
        excluded_domains=", ".join(excluded_domains or []) or "(none)",
    )


def build_outline_prompt(
    title: str,
    keywords: list[str],
    max_words: int,
    article_structure: str | None,
    research: str,
) -> str:
    return PROMPT_TEMPLATES["outline"].format(
        title=title,
        keywords=_keywords(keywords),
        max_words=max_words,
        article_structure=article_structure or "(default)",
        research=research or "(no research available)",
    )


def build_write_prompt(
    title: str,
    keywords: list[str],
    tone: str | None,
    max_words: int,
    related_titles: list[str],
    website_url: str | None,
    outline: dict[str, Any] | None,
    research: str,
) -> str:
    return PROMPT_TEMPLATES["write"].format(
        title=title,
        keywords=_keywords(keywords),
        tone=tone or "clear, friendly, expert",
        max_words=max_words,
        related="; ".join(related_titles) or "(none)",
        website_url=website_url or "(none)",
        outline=json.dumps(outline, indent=2) if outline else "(no outline; choose a sensible structure)",
        research=research or "(no research available)",
    )


def build_quality_control_prompt(
    content: str,
    keywords: list[str],
    tone: str | None,
    article_structure: str | None,
) -> str:
    return PROMPT_TEMPLATES["quality-control"].format(
        content=content,
        keywords=_keywords(keywords),
        tone=tone or "clear, friendly, expert",
        article_structure=article_structure or "(default)",
    )


def build_validation_prompt(content: str) -> str:
    return PROMPT_TEMPLATES["validation"].format(content=content)


def build_update_prompt(content: str, instructions: str) -> str:
    return PROMPT_TEMPLATES["update"].format(content=content, instructions=instructions)
