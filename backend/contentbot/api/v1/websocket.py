"""WebSocket endpoint for real-time generation progress updates."""
from __future__ import annotations

import asyncio
import json
import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from redis.exceptions import RedisError

from contentbot.config import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed", "research_failed")


@router.websocket("/ws/generations/{generation_id}")
async def generation_progress_ws(websocket: WebSocket, generation_id: str):
    """Stream generation progress in real-time.

    Subscribes to the Redis pub/sub channel ``generation:{generation_id}``
    and forwards messages to the client. When Redis is unreachable the
    record itself is polled instead.
    """
    await websocket.accept()

    settings = get_settings()
    channel = f"generation:{generation_id}"
    try:
        r = aioredis.from_url(settings.REDIS_URL)
        pubsub = r.pubsub()
        await pubsub.subscribe(channel)
    except (RedisError, OSError, ValueError) as e:
        logger.warning("Redis unavailable for WebSocket (%s); falling back to DB polling", e)
        await _poll_db_fallback(websocket, generation_id)
        return

    try:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                await websocket.send_text(data)

                # Close once the run reaches a terminal state
                try:
                    if json.loads(data).get("status") in TERMINAL_STATUSES:
                        await asyncio.sleep(0.5)
                        break
                except json.JSONDecodeError:
                    pass
            else:
                await websocket.send_text(json.dumps({"heartbeat": True}))
                await asyncio.sleep(1)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for generation %s", generation_id)
    except RedisError as e:
        logger.error("WebSocket Redis error for generation %s: %s", generation_id, e)
    finally:
        await pubsub.unsubscribe(channel)
        await r.close()
        try:
            await websocket.close()
        except RuntimeError:
            pass


async def _poll_db_fallback(websocket: WebSocket, generation_id: str):
    """Poll the generation record when Redis is unavailable."""
    from contentbot.database import SessionLocal
    from contentbot.models import GenerationRecord

    try:
        while True:
            db = SessionLocal()
            try:
                record = db.get(GenerationRecord, generation_id)
                if not record:
                    await websocket.send_text(json.dumps({"error": "Generation not found"}))
                    break

                payload = {
                    "generation_id": record.id,
                    "article_id": record.article_id,
                    "status": record.status,
                    "progress": record.progress,
                    "current_phase": record.current_phase,
                    "error": record.error,
                }
                await websocket.send_text(json.dumps(payload))

                if record.status in TERMINAL_STATUSES:
                    break
            finally:
                db.close()

            await asyncio.sleep(2)
    except WebSocketDisconnect:
        pass
    finally:
        try:
            await websocket.close()
        except RuntimeError:
            pass
