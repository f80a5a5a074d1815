"""Aggregate API v1 router — mounts all sub-routers."""
from fastapi import APIRouter
from contentbot.api.v1 import articles, cron, generation, webhooks, websocket

router = APIRouter(prefix="/api/v1")

router.include_router(articles.router, tags=["Articles"])
router.include_router(generation.router, tags=["Generation"])
router.include_router(cron.router, prefix="/cron", tags=["Cron"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
router.include_router(websocket.router, tags=["WebSocket"])
