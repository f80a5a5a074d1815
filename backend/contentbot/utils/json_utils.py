"""JSON extraction and sanitization for LLM output.

All LLM output is treated as hostile text. Structured phases (research,
outline, write, quality control, validation) ask the model for a JSON
object and parse the response with ``safe_parse_json``:

1. **Sanitize** — strip thinking tags, markdown fences, whitespace
2. **Direct parse** — ``json.loads()`` on the cleaned text
3. **Balanced-brace extraction** — character-level scan for first ``{…}``
4. **Failure** — ``ParseResult.data is None``
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)


# ── 1. Sanitization ───────────────────────────────────────────────────

def sanitize_llm_output(raw: str) -> str:
    """Strip ``<think>`` style blocks and markdown code fences."""
    if not raw:
        return ""

    text = raw
    for tag in ("think", "reasoning", "thought"):
        text = re.sub(rf"<{tag}>.*?</{tag}>", "", text, flags=re.DOTALL | re.IGNORECASE)
    # Unclosed tags run to end-of-string
    for tag in ("think", "reasoning", "thought"):
        text = re.sub(rf"<{tag}>.*$", "", text, flags=re.DOTALL | re.IGNORECASE)

    text = re.sub(r"```(?:json|JSON)?\s*\n?", "", text)
    return text.strip()


def strip_markdown_fence(raw: str) -> str:
    """Unwrap a response that is a single fenced markdown block."""
    text = (raw or "").strip()
    match = re.match(r"^```(?:markdown|md)?\s*\n(.*)\n```\s*$", text, flags=re.DOTALL)
    return match.group(1).strip() if match else text


# ── 2. Balanced-brace extraction ──────────────────────────────────────

def extract_json_object(text: str) -> str | None:
    """Extract the first balanced ``{…}`` substring using character scanning.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape_next:
            escape_next = False
            continue

        if ch == "\\":
            if in_string:
                escape_next = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    return None


# ── 3. Safe parse pipeline ────────────────────────────────────────────

class ParseResult:
    """Outcome of a ``safe_parse_json`` call with diagnostic metadata."""

    __slots__ = ("data", "method", "raw_preview")

    def __init__(self, data: dict[str, Any] | None, method: str, raw_preview: str = ""):
        self.data = data
        self.method = method                # "direct" | "extraction" | "failed"
        self.raw_preview = raw_preview

    @property
    def ok(self) -> bool:
        return self.data is not None


def safe_parse_json(raw: str) -> ParseResult:
    raw_preview = (raw or "")[:300]
    sanitized = sanitize_llm_output(raw or "")

    try:
        data = json.loads(sanitized)
        if isinstance(data, dict):
            return ParseResult(data, "direct", raw_preview)
    except (json.JSONDecodeError, ValueError):
        pass

    extracted = extract_json_object(sanitized)
    if extracted:
        try:
            data = json.loads(extracted)
            if isinstance(data, dict):
                return ParseResult(data, "extraction", raw_preview)
        except (json.JSONDecodeError, ValueError):
            pass

    return ParseResult(None, "failed", raw_preview)


# ── 4. Coercion helpers ───────────────────────────────────────────────

_SEVERITIES = ("low", "medium", "high", "critical")


def coerce_issues(raw_issues: Any) -> list[dict[str, str]]:
    """Normalise a model-supplied issue list to ``{category, severity, message, suggestion}``.

    Plain strings become medium-severity issues; unknown severities fall
    back to ``medium``.
    """
    if not isinstance(raw_issues, list):
        return []
    issues: list[dict[str, str]] = []
    for item in raw_issues:
        if isinstance(item, str):
            if item.strip():
                issues.append({"category": "general", "severity": "medium", "message": item.strip(), "suggestion": ""})
            continue
        if not isinstance(item, dict):
            continue
        message = str(item.get("message") or item.get("issue") or item.get("claim") or "").strip()
        if not message:
            continue
        severity = str(item.get("severity") or "medium").lower()
        issues.append({
            "category": str(item.get("category") or "general"),
            "severity": severity if severity in _SEVERITIES else "medium",
            "message": message,
            "suggestion": str(item.get("suggestion") or item.get("correction") or ""),
        })
    return issues
