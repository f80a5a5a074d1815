"""AI generation boundary: ``generate(prompt, structured=...)``.

Phase executors never talk to a provider directly; they call
``ContentGenerator.generate`` with a ``task`` label (used for logging and
model choice). Tests swap in a fake with the same method.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

from contentbot.config import Settings, get_settings
from contentbot.services.llm_http import KNOWN_PROVIDERS, call_provider
from contentbot.services.rate_limit_handler import RateLimitHandler
from contentbot.utils.json_utils import safe_parse_json
from contentbot.utils.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

# Rewrites go to the (usually stronger) update model.
_UPDATE_TASKS = frozenset({"update", "seo-remediation"})


class GenerationError(Exception):
    """Provider returned nothing usable."""


class Generator(Protocol):
    async def generate(self, prompt: str, *, task: str, structured: bool = False) -> str | dict[str, Any]:
        ...


class ContentGenerator:
    """LLM-backed generator using the configured provider."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.provider = self.settings.LLM_PROVIDER
        if self.provider not in KNOWN_PROVIDERS:
            raise ValueError(f"Unknown LLM provider: {self.provider}")
        self.api_key = self.settings.api_key_for(self.provider)
        self._handler = RateLimitHandler(self.provider, max_retries=self.settings.LLM_MAX_RETRIES)

    async def generate(self, prompt: str, *, task: str, structured: bool = False) -> str | dict[str, Any]:
        model = self.settings.update_model if task in _UPDATE_TASKS else self.settings.LLM_MODEL
        logger.info("LLM call task=%s provider=%s model=%s structured=%s", task, self.provider, model, structured)

        raw = await self._handler.execute_with_retry(
            call_provider,
            prompt,
            self.provider,
            model,
            api_key=self.api_key,
            system=SYSTEM_PROMPT,
            ollama_url=self.settings.OLLAMA_URL,
            temperature=self.settings.LLM_TEMPERATURE,
            max_tokens=self.settings.LLM_MAX_TOKENS,
            json_mode=structured,
        )
        if not raw or not raw.strip():
            raise GenerationError(f"Empty response from {self.provider} for task '{task}'")
        if not structured:
            return raw

        parsed = safe_parse_json(raw)
        if not parsed.ok:
            logger.warning("Unparseable JSON for task=%s: %r", task, parsed.raw_preview)
            raise GenerationError(f"Could not parse JSON response for task '{task}'")
        return parsed.data
