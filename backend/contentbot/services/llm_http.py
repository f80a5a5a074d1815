"""Request builders and response readers for the supported LLM providers.

``call_provider()`` turns one prompt into one provider request, posts it
with the pooled client for that provider and returns the raw text. An
answer without text (a blocked Gemini candidate, an empty choice list)
comes back as ``""`` so the caller can treat it as an empty response.

Retries live in ``RateLimitHandler``, not here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from contentbot.services.http_client_manager import get_http_client

logger = logging.getLogger(__name__)

_CHAT_COMPLETION_URLS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
}
_ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
_GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


@dataclass(frozen=True)
class LLMRequest:
    prompt: str
    model: str
    system: str | None
    temperature: float
    max_tokens: int
    json_mode: bool


@dataclass(frozen=True)
class ProviderCall:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


# ── Builders ───────────────────────────────────────────────────────────

def _build_chat_completion(provider: str, req: LLMRequest, api_key: str, _base_url: str) -> ProviderCall:
    messages = [{"role": "system", "content": req.system}] if req.system else []
    messages.append({"role": "user", "content": req.prompt})
    body: dict[str, Any] = {
        "model": req.model,
        "messages": messages,
        "temperature": req.temperature,
        "max_tokens": req.max_tokens,
    }
    if req.json_mode:
        body["response_format"] = {"type": "json_object"}
    headers = {"Authorization": f"Bearer {api_key}"}
    if provider == "openrouter":
        headers["X-Title"] = "Contentbot"
    return ProviderCall(_CHAT_COMPLETION_URLS[provider], headers, body)


def _build_anthropic(provider: str, req: LLMRequest, api_key: str, _base_url: str) -> ProviderCall:
    body: dict[str, Any] = {
        "model": req.model,
        "max_tokens": req.max_tokens,
        "temperature": req.temperature,
        "messages": [{"role": "user", "content": req.prompt}],
    }
    if req.system:
        body["system"] = req.system
    headers = {"x-api-key": api_key, "anthropic-version": "2023-06-01"}
    return ProviderCall(_ANTHROPIC_URL, headers, body)


def _build_gemini(provider: str, req: LLMRequest, api_key: str, _base_url: str) -> ProviderCall:
    config: dict[str, Any] = {"temperature": req.temperature, "maxOutputTokens": req.max_tokens}
    if req.json_mode:
        config["responseMimeType"] = "application/json"
    body: dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": req.prompt}]}],
        "generationConfig": config,
    }
    if req.system:
        body["systemInstruction"] = {"parts": [{"text": req.system}]}
    return ProviderCall(_GEMINI_URL.format(model=req.model), {"x-goog-api-key": api_key}, body)


def _build_ollama(provider: str, req: LLMRequest, _api_key: str, base_url: str) -> ProviderCall:
    body: dict[str, Any] = {
        "model": req.model,
        "prompt": req.prompt,
        "stream": False,
        "options": {"temperature": req.temperature, "num_predict": req.max_tokens},
    }
    if req.system:
        body["system"] = req.system
    if req.json_mode:
        body["format"] = "json"
    return ProviderCall(f"{base_url.rstrip('/')}/api/generate", {}, body)


# ── Readers ────────────────────────────────────────────────────────────

def _read_chat_completion(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("message") or {}).get("content") or ""


def _read_anthropic(data: dict[str, Any]) -> str:
    return "".join(block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text")


def _read_gemini(data: dict[str, Any]) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        logger.warning("Gemini returned no candidates (promptFeedback=%s)", data.get("promptFeedback"))
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


def _read_ollama(data: dict[str, Any]) -> str:
    return data.get("response") or ""


Builder = Callable[[str, LLMRequest, str, str], ProviderCall]
Reader = Callable[[dict[str, Any]], str]

_PROVIDERS: dict[str, tuple[Builder, Reader]] = {
    "openai": (_build_chat_completion, _read_chat_completion),
    "openrouter": (_build_chat_completion, _read_chat_completion),
    "anthropic": (_build_anthropic, _read_anthropic),
    "gemini": (_build_gemini, _read_gemini),
    "google": (_build_gemini, _read_gemini),
    "ollama": (_build_ollama, _read_ollama),
}

KNOWN_PROVIDERS = frozenset(_PROVIDERS)
LOCAL_PROVIDERS = frozenset({"ollama"})


def build_provider_call(
    provider: str,
    request: LLMRequest,
    api_key: str = "",
    ollama_url: str = "http://host.docker.internal:11434",
) -> ProviderCall:
    if provider not in _PROVIDERS:
        raise ValueError(f"Unknown LLM provider: {provider}")
    if provider not in LOCAL_PROVIDERS and not api_key:
        raise ValueError(f"API key required for provider {provider}")
    builder, _ = _PROVIDERS[provider]
    return builder(provider, request, api_key, ollama_url)


async def call_provider(
    prompt: str,
    provider: str,
    model: str,
    api_key: str = "",
    system: str | None = None,
    ollama_url: str = "http://host.docker.internal:11434",
    temperature: float = 0.7,
    max_tokens: int = 8192,
    json_mode: bool = False,
) -> str:
    """Send *prompt* to *provider* and return the raw text of the answer.

    Raises ``ValueError`` for an unknown provider or a missing key, and
    lets ``httpx`` status and transport errors propagate to the retry
    handler.
    """
    request = LLMRequest(prompt, model, system, temperature, max_tokens, json_mode)
    call = build_provider_call(provider, request, api_key=api_key, ollama_url=ollama_url)
    client = get_http_client(provider)
    resp = await client.post(call.url, headers=call.headers, json=call.body)
    resp.raise_for_status()
    _, reader = _PROVIDERS[provider]
    return reader(resp.json())
