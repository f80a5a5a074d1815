"""Client for the external long-running research task service.

``create_task`` submits a deep-research run and returns its run id;
completion is delivered only through the signed webhook handled in
``research_webhook``. ``fetch_result`` downloads a finished run and
converts it into the ``research`` artifact shape used by the pipeline:

    {"research_data": <markdown brief>, "sources": [...], "videos": [...]}
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from contentbot.config import Settings, get_settings
from contentbot.services.http_client_manager import get_http_client
from contentbot.services.rate_limit_handler import AuthenticationError, RateLimitExceeded, RateLimitHandler

logger = logging.getLogger(__name__)

_SOURCE_LINE_RE = re.compile(r"^S\d+:\s*(.+)$")

RESEARCH_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "executive_summary": {"type": "string", "description": "2-3 paragraph overview with [S1] style citations"},
        "primary_intent": {"type": "string", "description": "Primary search intent behind the topic"},
        "secondary_intents": {"type": "string", "description": "Secondary intents and who ranks for them"},
        "key_insights": {"type": "string", "description": "5-8 bullet points of key findings with citations"},
        "statistics_data": {"type": "string", "description": "3-6 data points with exact figures and citations"},
        "content_gaps": {"type": "string", "description": "3-5 content opportunities"},
        "frequently_asked_questions": {"type": "string", "description": "4-6 Q&A pairs with citations"},
        "internal_linking_suggestions": {"type": "string", "description": "3-5 internal link suggestions"},
        "risk_assessment": {"type": "string", "description": "Ambiguities, dated information or conflicts"},
        "source_urls": {"type": "string", "description": "Newline-separated list, format: S1: <URL>"},
        "youtube_video_url": {"type": "string"},
        "youtube_video_title": {"type": "string"},
        "youtube_selection_reason": {"type": "string"},
    },
    "required": [
        "executive_summary",
        "primary_intent",
        "key_insights",
        "statistics_data",
        "content_gaps",
        "frequently_asked_questions",
        "source_urls",
    ],
    "additionalProperties": False,
}


class ResearchServiceError(Exception):
    pass


class ResearchService(Protocol):
    async def create_task(
        self,
        title: str,
        keywords: list[str],
        notes: str | None = None,
        excluded_domains: list[str] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        ...

    async def fetch_result(self, run_id: str) -> dict[str, Any]:
        ...


def build_research_input(
    title: str,
    keywords: list[str],
    notes: str | None = None,
    excluded_domains: list[str] | None = None,
) -> str:
    lines = [
        f'Research the topic "{title}" for an SEO blog article.',
        f"Target keywords: {', '.join(keywords)}.",
    ]
    if notes:
        lines.append(f"Writer notes: {notes}")
    if excluded_domains:
        lines.append(f"Never use these domains as sources: {', '.join(excluded_domains)}.")
    lines.append(
        "Cover search intent, key insights, statistics, content gaps, FAQs, internal "
        "link ideas and risks. Cite everything as [S1], [S2] and list all sources as "
        '"S1: <URL>" lines.'
    )
    return "\n".join(lines)


def convert_research_output(content: dict[str, Any], researched_at: str | None = None) -> dict[str, Any]:
    """Turn a finished run's structured output into the ``research`` artifact."""
    sources = []
    for line in str(content.get("source_urls") or "").splitlines():
        match = _SOURCE_LINE_RE.match(line.strip())
        if match and match.group(1).strip():
            sources.append({"url": match.group(1).strip(), "title": None})

    videos = []
    if content.get("youtube_video_url") and content.get("youtube_video_title"):
        videos.append({
            "title": content["youtube_video_title"],
            "url": content["youtube_video_url"],
            "reason": content.get("youtube_selection_reason")
            or "Selected as most relevant video for the topic",
        })

    sections = [
        "# Research Brief",
        f"## Executive Summary\n{content.get('executive_summary', '')}",
        f"## Search Intent Analysis\n**Primary Intent:** {content.get('primary_intent', '')}"
        + (f"\n**Secondary Intents:** {content['secondary_intents']}" if content.get("secondary_intents") else ""),
        f"## Key Findings\n{content.get('key_insights', '')}",
        f"## Statistics & Data\n{content.get('statistics_data', '')}",
        f"## Content Opportunities\n{content.get('content_gaps', '')}",
        f"## Frequently Asked Questions\n{content.get('frequently_asked_questions', '')}",
    ]
    if content.get("internal_linking_suggestions"):
        sections.append(f"## Internal Linking Opportunities\n{content['internal_linking_suggestions']}")
    if content.get("risk_assessment"):
        sections.append(f"## Risk Assessment\n{content['risk_assessment']}")
    stamp = researched_at or datetime.now(timezone.utc).isoformat()
    sections.append(f"---\n*Research conducted: {stamp}*")

    return {"research_data": "\n\n".join(sections), "sources": sources, "videos": videos}


class ResearchClient:
    """HTTP client for the research task API.

    Requests go through a ``RateLimitHandler`` so 429s and 5xx answers are
    retried; anything still failing surfaces as ``ResearchServiceError``.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self.base_url = self.settings.RESEARCH_API_URL.rstrip("/")
        self._client = client
        self._handler = RateLimitHandler("research", max_retries=self.settings.RESEARCH_MAX_RETRIES)

    def _headers(self) -> dict[str, str]:
        if not self.settings.RESEARCH_API_KEY:
            raise ResearchServiceError("RESEARCH_API_KEY is not configured")
        return {
            "x-api-key": self.settings.RESEARCH_API_KEY,
            "Content-Type": "application/json",
            "parallel-beta": "webhook-2025-08-12",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        headers = self._headers()
        client = self._client or get_http_client("research")

        async def _send() -> httpx.Response:
            resp = await client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            resp.raise_for_status()
            return resp

        try:
            resp = await self._handler.execute_with_retry(_send)
        except httpx.HTTPStatusError as exc:
            raise ResearchServiceError(
                f"Research API error {exc.response.status_code}: {exc.response.text[:300]}"
            ) from exc
        except (RateLimitExceeded, AuthenticationError, httpx.TransportError) as exc:
            raise ResearchServiceError(f"Research API unavailable: {exc}") from exc

        try:
            return resp.json()
        except ValueError as exc:
            raise ResearchServiceError("Research API returned a non-JSON body") from exc

    async def create_task(
        self,
        title: str,
        keywords: list[str],
        notes: str | None = None,
        excluded_domains: list[str] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        body = {
            "input": build_research_input(title, keywords, notes, excluded_domains),
            "processor": self.settings.RESEARCH_PROCESSOR,
            "task_spec": {"output_schema": {"type": "json", "json_schema": RESEARCH_OUTPUT_SCHEMA}},
            "metadata": {"article_title": title, "keywords": ",".join(keywords), **(metadata or {})},
            "webhook": {"url": self.settings.RESEARCH_WEBHOOK_URL, "event_types": ["task_run.status"]},
        }
        data = await self._request("POST", "/v1/tasks/runs", json=body)
        run_id = data.get("run_id")
        if not run_id:
            raise ResearchServiceError("Research API response has no run_id")
        logger.info("Research task created: run_id=%s title=%r", run_id, title)
        return run_id

    async def fetch_result(self, run_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/v1/tasks/runs/{run_id}/result")
        content = (data.get("output") or {}).get("content")
        if not isinstance(content, dict):
            raise ResearchServiceError(f"Research run {run_id} returned no structured content")
        return convert_research_output(content)
