"""Cover image lookup via the Unsplash search API.

Optional: without ``UNSPLASH_ACCESS_KEY`` the step is skipped, and any
error is returned to the caller to log rather than failing the run.
"""
from __future__ import annotations

import logging
from typing import Any

from contentbot.config import Settings, get_settings
from contentbot.services.http_client_manager import get_http_client

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"


def is_enabled(settings: Settings | None = None) -> bool:
    return bool((settings or get_settings()).UNSPLASH_ACCESS_KEY)


async def select_cover_image(query: str, settings: Settings | None = None) -> dict[str, Any] | None:
    """Return ``{url, alt, photographer, photographer_url, source_id}`` or None."""
    settings = settings or get_settings()
    if not settings.UNSPLASH_ACCESS_KEY:
        return None

    client = get_http_client("unsplash")
    resp = await client.get(
        UNSPLASH_SEARCH_URL,
        params={"query": query, "per_page": 1, "orientation": "landscape", "content_filter": "high"},
        headers={"Authorization": f"Client-ID {settings.UNSPLASH_ACCESS_KEY}", "Accept-Version": "v1"},
    )
    resp.raise_for_status()
    results = resp.json().get("results") or []
    if not results:
        logger.info("No cover image found for %r", query)
        return None

    photo = results[0]
    return {
        "url": photo["urls"]["regular"],
        "alt": photo.get("alt_description") or photo.get("description") or query,
        "photographer": (photo.get("user") or {}).get("name"),
        "photographer_url": ((photo.get("user") or {}).get("links") or {}).get("html"),
        "source_id": photo.get("id"),
    }
