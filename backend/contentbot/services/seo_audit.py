"""Deterministic SEO audit, quality gates and publish checklist.

The audit scores a Markdown draft out of 100 with fixed deductions:

  - H1 count is not exactly one ............................ -15
  - fewer H2 headings than required ........ -5 each, at most -15
  - shorter than the character minimum ..................... -20
    (otherwise) fewer words than the word minimum .......... -10
  - Flesch reading ease below the minimum .................. -10
  - none of the target keywords in the H1 ................... -5

``passes_quality_gates`` and ``passes_checklist`` turn a report (or a
checklist) into a pass/fail verdict with named failure codes, which the
pipeline uses to decide whether SEO remediation must run.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any

from contentbot.schemas.common import IssueSeverity
from contentbot.utils.markdown import (
    count_words,
    estimate_reading_ease,
    extract_faq,
    extract_headings,
    extract_images,
    extract_links,
    is_faq_heading,
    is_tldr_heading,
    strip_code_fences,
    to_plain_text,
)

logger = logging.getLogger(__name__)

RUBRIC_VERSION = "v1.0.0"

DEFAULT_MIN_SCORE = 70
DEFAULT_MIN_H2 = 3
DEFAULT_MIN_CHARS = 800
DEFAULT_MIN_WORDS = 300
DEFAULT_MIN_READING_EASE = 50.0


# ── Result types ───────────────────────────────────────────────────────

@dataclass
class SeoIssue:
    code: str
    severity: str
    message: str


@dataclass
class SeoReport:
    score: int
    issues: list[SeoIssue]
    metrics: dict[str, Any]
    rubric_version: str = RUBRIC_VERSION

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SeoReport":
        return cls(
            score=int(data["score"]),
            issues=[SeoIssue(**i) for i in data.get("issues", [])],
            metrics=data.get("metrics", {}),
            rubric_version=data.get("rubric_version", RUBRIC_VERSION),
        )


@dataclass
class GateFailure:
    code: str
    reason: str


@dataclass
class GateResult:
    passed: bool
    failures: list[GateFailure] = field(default_factory=list)

    @property
    def codes(self) -> list[str]:
        return [f.code for f in self.failures]

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "codes": self.codes}


# ── Audit ──────────────────────────────────────────────────────────────

def analyze(
    content: str,
    target_keywords: list[str] | None = None,
    *,
    min_h2: int = DEFAULT_MIN_H2,
    min_chars: int = DEFAULT_MIN_CHARS,
    min_words: int = DEFAULT_MIN_WORDS,
    min_reading_ease: float = DEFAULT_MIN_READING_EASE,
) -> SeoReport:
    """Score *content* and list the issues behind every deduction."""
    headings = extract_headings(content)
    h1s = [h for h in headings if h.level == 1]
    h2_count = sum(1 for h in headings if h.level == 2)
    h3_count = sum(1 for h in headings if h.level == 3)

    links = extract_links(content)
    external = sum(1 for link in links if not link.internal)
    images = extract_images(content)
    with_alt = sum(1 for img in images if img.alt)

    body = strip_code_fences(content)
    plain = to_plain_text(content)
    chars = len(body.strip())
    words = count_words(plain)
    reading_ease = estimate_reading_ease(plain)

    score = 100
    issues: list[SeoIssue] = []

    if len(h1s) != 1:
        score -= 15
        issues.append(SeoIssue(
            "HEADING_H1_COUNT",
            IssueSeverity.HIGH.value if not h1s else IssueSeverity.MEDIUM.value,
            f"Expected exactly one H1, found {len(h1s)}",
        ))

    if h2_count < min_h2:
        deficit = min_h2 - h2_count
        score -= min(15, deficit * 5)
        issues.append(SeoIssue(
            "HEADING_H2_MIN",
            IssueSeverity.MEDIUM.value,
            f"Expected at least {min_h2} H2 headings, found {h2_count}",
        ))

    if chars < min_chars:
        score -= 20
        issues.append(SeoIssue(
            "LENGTH_MIN_CHARS",
            IssueSeverity.HIGH.value,
            f"Content is {chars} characters; at least {min_chars} required",
        ))
    elif words < min_words:
        score -= 10
        issues.append(SeoIssue(
            "LENGTH_LOW_WORDS",
            IssueSeverity.MEDIUM.value,
            f"Content is {words} words; at least {min_words} recommended",
        ))

    if words and reading_ease < min_reading_ease:
        score -= 10
        issues.append(SeoIssue(
            "READABILITY_LOW",
            IssueSeverity.MEDIUM.value,
            f"Reading ease {reading_ease} is below {min_reading_ease}",
        ))

    keywords = [k.strip().lower() for k in (target_keywords or []) if k and k.strip()]
    if keywords and h1s:
        h1_text = h1s[0].text.lower()
        if not any(k in h1_text for k in keywords):
            score -= 5
            issues.append(SeoIssue(
                "H1_KEYWORD_MISSING",
                IssueSeverity.LOW.value,
                "H1 does not contain any target keyword",
            ))

    metrics = {
        "words": words,
        "chars": chars,
        "reading_ease": reading_ease,
        "headings": {
            "h1": len(h1s),
            "h2": h2_count,
            "h3": h3_count,
            "has_single_h1": len(h1s) == 1,
        },
        "links": {
            "total": len(links),
            "external": external,
            "internal": len(links) - external,
        },
        "images": {
            "total": len(images),
            "with_alt": with_alt,
            "has_at_least_one_with_alt": with_alt > 0,
        },
    }
    return SeoReport(score=max(0, min(100, round(score))), issues=issues, metrics=metrics)


# ── Quality gates ──────────────────────────────────────────────────────

def passes_quality_gates(
    report: SeoReport,
    min_score: int = DEFAULT_MIN_SCORE,
    require_no_high_issues: bool = True,
    require_image_alt: bool = False,
    min_h2: int = DEFAULT_MIN_H2,
    min_chars: int = DEFAULT_MIN_CHARS,
    observed_broken_external_links: int = 0,
    max_broken_external_links: int = 0,
) -> GateResult:
    failures: list[GateFailure] = []

    if report.score < min_score:
        failures.append(GateFailure("SCORE_BELOW_THRESHOLD", f"SEO score {report.score} is below {min_score}"))

    if require_no_high_issues and any(
        i.severity in (IssueSeverity.HIGH.value, IssueSeverity.CRITICAL.value) for i in report.issues
    ):
        failures.append(GateFailure("HIGH_OR_CRITICAL_ISSUES", "Report contains HIGH/CRITICAL issues"))

    headings = report.metrics["headings"]
    if not headings["has_single_h1"]:
        failures.append(GateFailure("INVALID_H1_COUNT", "Exactly one H1 required"))
    if headings["h2"] < min_h2:
        failures.append(GateFailure("INSUFFICIENT_H2", f"At least {min_h2} H2 headings required"))
    if report.metrics["chars"] < min_chars:
        failures.append(GateFailure("CONTENT_TOO_SHORT", f"Content must be at least {min_chars} chars"))

    if require_image_alt and not report.metrics["images"]["has_at_least_one_with_alt"]:
        failures.append(GateFailure("MISSING_IMAGE_ALT", "At least one image with alt text required"))

    if observed_broken_external_links > max_broken_external_links:
        failures.append(GateFailure(
            "BROKEN_EXTERNAL_LINKS",
            f"{observed_broken_external_links} broken external links detected "
            f"(allowed: {max_broken_external_links})",
        ))

    return GateResult(passed=not failures, failures=failures)


# ── Publish checklist ──────────────────────────────────────────────────

def build_checklist(
    content: str,
    report: SeoReport,
    *,
    meta_description: str | None = None,
    slug: str | None = None,
    primary_keyword: str | None = None,
    json_ld: dict[str, Any] | None = None,
    cover_image_alt: str | None = None,
    has_cover_image: bool = False,
    broken_external_links: int = 0,
    min_h2: int = DEFAULT_MIN_H2,
    min_chars: int = DEFAULT_MIN_CHARS,
) -> dict[str, Any]:
    headings = extract_headings(content)
    h1s = [h for h in headings if h.level == 1]
    h2s = [h for h in headings if h.level == 2]
    images = extract_images(content)
    image_count = len(images) + (1 if has_cover_image else 0)
    alts_ok = all(img.alt for img in images) and (not has_cover_image or bool(cover_image_alt))
    plain = to_plain_text(content)
    graph = (json_ld or {}).get("@graph", [])
    types = {node.get("@type") for node in graph if isinstance(node, dict)}

    return {
        "structure": {
            "single_h1": len(h1s) == 1,
            "h2_count_ok": len(h2s) >= min_h2,
            "content_length_ok": report.metrics["chars"] >= min_chars,
            "has_tldr": any(is_tldr_heading(h.text) for h in headings if h.level >= 2),
            "has_faq": any(is_faq_heading(h.text) for h in h2s),
        },
        "links": {
            "internal_min": report.metrics["links"]["internal"] >= 1,
            "external_min": report.metrics["links"]["external"] >= 2,
            "broken_external_links": broken_external_links,
        },
        "citations": {"cited_sources_min": report.metrics["links"]["external"] >= 3},
        "quotes": {"has_expert_quote": bool(re.search(r"^\s*>\s*\S", content or "", re.MULTILINE))},
        "stats": {"has_two_data_points": len(re.findall(r"\d+(?:[.,]\d+)?\s?%|\$\s?\d", plain)) >= 2},
        "images": {"count": image_count, "all_have_alt": alts_ok},
        "keywords": {
            "h1_has_primary": bool(
                primary_keyword and h1s and primary_keyword.lower() in h1s[0].text.lower()
            ),
        },
        "meta": {
            "meta_description_ok": bool(meta_description) and 50 <= len(meta_description) <= 160,
            "slug_present": bool(slug and re.fullmatch(r"[a-z0-9]+(?:-[a-z0-9]+)*", slug)),
        },
        "json_ld": {
            "blog_posting": "BlogPosting" in types,
            "faq_page": "FAQPage" in types,
        },
    }


def passes_checklist(
    checklist: dict[str, Any],
    allow_no_images: bool = False,
    require_faq: bool = True,
    max_broken_external_links: int = 0,
) -> GateResult:
    failures: list[GateFailure] = []
    structure = checklist["structure"]

    if not structure["single_h1"]:
        failures.append(GateFailure("CHECKLIST_SINGLE_H1", "Exactly one H1 required"))
    if not structure["h2_count_ok"]:
        failures.append(GateFailure("CHECKLIST_H2_COUNT", "Not enough H2 sections"))
    if not structure.get("content_length_ok", True):
        failures.append(GateFailure("CHECKLIST_CONTENT_LENGTH", "Content is shorter than the minimum"))
    if require_faq and not structure["has_faq"]:
        failures.append(GateFailure("CHECKLIST_FAQ_MISSING", "FAQ section required"))

    images = checklist["images"]
    if images["count"] == 0:
        if not allow_no_images:
            failures.append(GateFailure("CHECKLIST_NO_IMAGES", "At least one image required"))
    elif not images["all_have_alt"]:
        failures.append(GateFailure("CHECKLIST_IMAGE_ALT", "Every image needs alt text"))

    broken = checklist["links"]["broken_external_links"]
    if broken > max_broken_external_links:
        failures.append(GateFailure(
            "CHECKLIST_BROKEN_LINKS",
            f"{broken} broken external links (allowed: {max_broken_external_links})",
        ))

    if not checklist["meta"]["meta_description_ok"]:
        failures.append(GateFailure("CHECKLIST_META_DESCRIPTION", "Meta description must be 50-160 chars"))
    if not checklist["meta"]["slug_present"]:
        failures.append(GateFailure("CHECKLIST_SLUG", "URL slug missing or malformed"))
    if not checklist["keywords"]["h1_has_primary"]:
        failures.append(GateFailure("CHECKLIST_H1_KEYWORD", "H1 must contain the primary keyword"))

    json_ld = checklist["json_ld"]
    if not json_ld["blog_posting"] or (structure["has_faq"] and not json_ld["faq_page"]):
        failures.append(GateFailure("CHECKLIST_JSON_LD", "BlogPosting (and FAQPage when an FAQ exists) required"))

    return GateResult(passed=not failures, failures=failures)


# ── Structured data ────────────────────────────────────────────────────

def build_json_ld(
    *,
    title: str,
    content: str,
    meta_description: str | None,
    slug: str | None,
    keywords: list[str] | None = None,
    website_url: str | None = None,
    image_url: str | None = None,
    published_at: str | None = None,
) -> dict[str, Any]:
    """BlogPosting node, plus an FAQPage node when the draft has an FAQ."""
    url = f"{website_url.rstrip('/')}/{slug}" if website_url and slug else None
    posting: dict[str, Any] = {
        "@type": "BlogPosting",
        "headline": title[:110],
        "description": meta_description or "",
        "keywords": ", ".join(keywords or []),
        "wordCount": count_words(to_plain_text(content)),
    }
    if url:
        posting["url"] = url
        posting["mainEntityOfPage"] = url
    if image_url:
        posting["image"] = image_url
    if published_at:
        posting["datePublished"] = published_at

    graph: list[dict[str, Any]] = [posting]
    faq = extract_faq(content)
    if faq:
        graph.append({
            "@type": "FAQPage",
            "mainEntity": [
                {
                    "@type": "Question",
                    "name": question,
                    "acceptedAnswer": {"@type": "Answer", "text": answer},
                }
                for question, answer in faq
            ],
        })
    return {"@context": "https://schema.org", "@graph": graph}
