"""Pooled httpx clients, one per outbound integration.

LLM providers, the research task service, Unsplash and blog webhooks all
take their client from ``get_http_client(name)``. A client is bound to
the event loop it was created on; Celery tasks run each job on a fresh
loop, so a client from an older loop is replaced rather than reused.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

_LLM_TIMEOUT = httpx.Timeout(180.0, connect=15.0)

_TIMEOUTS: dict[str, httpx.Timeout] = {
    "ollama": httpx.Timeout(300.0, connect=15.0),
    "openai": _LLM_TIMEOUT,
    "anthropic": _LLM_TIMEOUT,
    "gemini": _LLM_TIMEOUT,
    "google": _LLM_TIMEOUT,
    "openrouter": _LLM_TIMEOUT,
    "research": httpx.Timeout(60.0, connect=10.0),
    "unsplash": httpx.Timeout(15.0, connect=5.0),
    "webhook": httpx.Timeout(30.0, connect=10.0),
}
_DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)

_LIMITS = httpx.Limits(max_connections=20, max_keepalive_connections=10, keepalive_expiry=120)
_HEADERS = {"User-Agent": "contentbot/1.0"}


@dataclass
class _PooledClient:
    client: httpx.AsyncClient
    loop_id: int


_pool: dict[str, _PooledClient] = {}


def _current_loop_id() -> int:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return 0


def get_http_client(name: str) -> httpx.AsyncClient:
    loop_id = _current_loop_id()
    pooled = _pool.get(name)
    if pooled is None or pooled.client.is_closed or pooled.loop_id != loop_id:
        client = httpx.AsyncClient(
            timeout=_TIMEOUTS.get(name, _DEFAULT_TIMEOUT),
            limits=_LIMITS,
            headers=_HEADERS,
        )
        _pool[name] = _PooledClient(client, loop_id)
        logger.debug("Opened HTTP client for %s", name)
    return _pool[name].client


async def close_all_clients() -> None:
    """Close pooled clients belonging to the running loop and forget the rest."""
    loop_id = _current_loop_id()
    for name, pooled in list(_pool.items()):
        if pooled.client.is_closed or pooled.loop_id != loop_id:
            continue
        try:
            await pooled.client.aclose()
        except (httpx.HTTPError, RuntimeError) as exc:
            logger.debug("Error closing HTTP client for %s: %s", name, exc)
    _pool.clear()
    logger.info("HTTP clients closed")
