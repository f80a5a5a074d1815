"""Tests for the research task API client."""
import json

import httpx
import pytest

from contentbot.config import Settings
from contentbot.services.research_client import (
    ResearchClient,
    ResearchServiceError,
    build_research_input,
    convert_research_output,
)

RUN_OUTPUT = {
    "executive_summary": "Cold brew keeps growing [S1].",
    "primary_intent": "Learn to make cold brew",
    "key_insights": "- Coarse grind matters [S2]",
    "statistics_data": "- 30% of drinkers prefer it [S1]",
    "content_gaps": "- Few guides cover ratios",
    "frequently_asked_questions": "Q: How long? A: 12-24h",
    "source_urls": "S1: https://sca.coffee\nS2: https://ncausa.org\nnot a source line",
    "youtube_video_url": "https://youtube.com/watch?v=abc",
    "youtube_video_title": "Cold Brew in 5 Minutes",
}


@pytest.fixture
def research_settings():
    return Settings(
        REDIS_URL="",
        RESEARCH_API_URL="https://research.example/",
        RESEARCH_API_KEY="research-key",
        RESEARCH_WEBHOOK_URL="https://contentbot.test/api/v1/webhooks/research",
    )


def _client(settings, handler):
    client = ResearchClient(settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    client._handler.error_wait = 0
    client._handler.rate_limit_wait = 0
    return client


class TestCreateTask:
    @pytest.mark.asyncio
    async def test_submits_run_with_webhook(self, research_settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"run_id": "run_42", "status": "queued"})

        client = _client(research_settings, handler)
        run_id = await client.create_task("Cold Brew", ["cold brew"], metadata={"generation_id": "gen_1"})

        assert run_id == "run_42"
        request = seen[0]
        assert str(request.url) == "https://research.example/v1/tasks/runs"
        assert request.headers["x-api-key"] == "research-key"
        body = json.loads(request.content)
        assert body["webhook"]["url"] == "https://contentbot.test/api/v1/webhooks/research"
        assert body["metadata"]["generation_id"] == "gen_1"

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, research_settings):
        answers = [httpx.Response(503), httpx.Response(200, json={"run_id": "run_7"})]
        client = _client(research_settings, lambda request: answers.pop(0))
        assert await client.create_task("Cold Brew", ["cold brew"]) == "run_7"

    @pytest.mark.asyncio
    async def test_client_error_becomes_service_error(self, research_settings):
        client = _client(research_settings, lambda request: httpx.Response(400, text="bad processor"))
        with pytest.raises(ResearchServiceError, match="400"):
            await client.create_task("Cold Brew", ["cold brew"])

    @pytest.mark.asyncio
    async def test_missing_run_id(self, research_settings):
        client = _client(research_settings, lambda request: httpx.Response(200, json={}))
        with pytest.raises(ResearchServiceError, match="run_id"):
            await client.create_task("Cold Brew", ["cold brew"])

    @pytest.mark.asyncio
    async def test_requires_api_key(self, research_settings):
        calls = []
        settings = research_settings.model_copy(update={"RESEARCH_API_KEY": ""})
        client = _client(settings, lambda request: calls.append(request) or httpx.Response(200))
        with pytest.raises(ResearchServiceError, match="RESEARCH_API_KEY"):
            await client.create_task("Cold Brew", ["cold brew"])
        assert calls == []


class TestFetchResult:
    @pytest.mark.asyncio
    async def test_converts_structured_output(self, research_settings):
        def handler(request):
            assert request.url.path == "/v1/tasks/runs/run_42/result"
            return httpx.Response(200, json={"output": {"content": RUN_OUTPUT}})

        research = await _client(research_settings, handler).fetch_result("run_42")

        assert research["sources"] == [
            {"url": "https://sca.coffee", "title": None},
            {"url": "https://ncausa.org", "title": None},
        ]
        assert research["videos"][0]["title"] == "Cold Brew in 5 Minutes"
        assert research["research_data"].startswith("# Research Brief")

    @pytest.mark.asyncio
    async def test_unstructured_output_is_an_error(self, research_settings):
        client = _client(research_settings, lambda request: httpx.Response(200, json={"output": {"content": "text"}}))
        with pytest.raises(ResearchServiceError, match="no structured content"):
            await client.fetch_result("run_42")


class TestHelpers:
    def test_research_input_mentions_exclusions(self):
        text = build_research_input("Cold Brew", ["cold brew", "iced"], notes="UK audience", excluded_domains=["spam.example"])
        assert "cold brew, iced" in text
        assert "UK audience" in text
        assert "spam.example" in text

    def test_optional_sections_are_skipped(self):
        research = convert_research_output(
            {"executive_summary": "x", "source_urls": ""}, researched_at="2026-03-01T09:00:00+00:00",
        )
        assert "Risk Assessment" not in research["research_data"]
        assert research["research_data"].endswith("*Research conducted: 2026-03-01T09:00:00+00:00*")
        assert research["sources"] == []
        assert research["videos"] == []
