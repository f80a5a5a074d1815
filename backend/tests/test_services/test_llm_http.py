"""Tests for provider request building and response reading."""
import json

import httpx
import pytest

from contentbot.services import llm_http
from contentbot.services.llm_http import LLMRequest, build_provider_call, call_provider

REQ = LLMRequest(
    prompt="Write about cold brew",
    model="m-1",
    system="You are an editor.",
    temperature=0.2,
    max_tokens=512,
    json_mode=True,
)


class TestBuildProviderCall:
    def test_openai_chat_completion(self):
        call = build_provider_call("openai", REQ, api_key="sk-1")
        assert call.url == "https://api.openai.com/v1/chat/completions"
        assert call.headers["Authorization"] == "Bearer sk-1"
        assert [m["role"] for m in call.body["messages"]] == ["system", "user"]
        assert call.body["response_format"] == {"type": "json_object"}

    def test_anthropic_system_is_top_level(self):
        call = build_provider_call("anthropic", REQ, api_key="ak")
        assert call.body["system"] == "You are an editor."
        assert call.body["messages"] == [{"role": "user", "content": "Write about cold brew"}]

    def test_gemini_json_mime_type(self):
        call = build_provider_call("gemini", REQ, api_key="gk")
        assert call.url.endswith("/models/m-1:generateContent")
        assert call.body["generationConfig"]["responseMimeType"] == "application/json"

    def test_ollama_needs_no_key(self):
        call = build_provider_call("ollama", REQ, ollama_url="http://ollama:11434/")
        assert call.url == "http://ollama:11434/api/generate"
        assert call.body["format"] == "json"

    def test_missing_key(self):
        with pytest.raises(ValueError, match="API key"):
            build_provider_call("openai", REQ)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown"):
            build_provider_call("mystery", REQ, api_key="x")


class TestCallProvider:
    @pytest.fixture
    def respond(self, monkeypatch):
        def _respond(status, payload):
            seen = []

            def handler(request):
                seen.append(request)
                return httpx.Response(status, json=payload)

            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            monkeypatch.setattr(llm_http, "get_http_client", lambda name: client)
            return seen
        return _respond

    @pytest.mark.asyncio
    async def test_reads_chat_completion(self, respond):
        seen = respond(200, {"choices": [{"message": {"content": "{\"ok\": true}"}}]})
        text = await call_provider("hi", "openrouter", "m-1", api_key="or-key", json_mode=True)
        assert text == '{"ok": true}'
        assert json.loads(seen[0].content)["model"] == "m-1"

    @pytest.mark.asyncio
    async def test_blocked_gemini_answer_is_empty(self, respond):
        respond(200, {"promptFeedback": {"blockReason": "SAFETY"}})
        assert await call_provider("hi", "gemini", "m-1", api_key="gk") == ""

    @pytest.mark.asyncio
    async def test_anthropic_text_blocks_are_joined(self, respond):
        respond(200, {"content": [{"type": "text", "text": "Hello "}, {"type": "text", "text": "there"}]})
        assert await call_provider("hi", "anthropic", "m-1", api_key="ak") == "Hello there"

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self, respond):
        respond(503, {"error": "overloaded"})
        with pytest.raises(httpx.HTTPStatusError):
            await call_provider("hi", "openai", "m-1", api_key="sk")
