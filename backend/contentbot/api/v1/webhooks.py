"""Inbound webhook endpoints."""
from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from contentbot.api.v1.deps import get_research_client, get_resume_dispatcher
from contentbot.config import get_settings
from contentbot.database import get_db
from contentbot.schemas.webhook import ResearchWebhookPayload, WebhookAck
from contentbot.services.research_webhook import handle_research_notification, verify_webhook_signature

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/research", response_model=WebhookAck)
async def research_webhook(
    request: Request,
    research_client=Depends(get_research_client),
    dispatch=Depends(get_resume_dispatcher),
    db: Session = Depends(get_db),
):
    """Signed status callback for long-running research runs.

    The raw body is verified before it is parsed; a bad signature changes
    nothing.
    """
    webhook_id = request.headers.get("webhook-id")
    timestamp = request.headers.get("webhook-timestamp")
    signature = request.headers.get("webhook-signature")
    if not (webhook_id and timestamp and signature):
        raise HTTPException(status_code=400, detail="Missing webhook headers")

    body = (await request.body()).decode("utf-8")
    secret = get_settings().RESEARCH_WEBHOOK_SECRET
    if not verify_webhook_signature(webhook_id, timestamp, body, signature, secret):
        logger.warning("Rejected research webhook %s: invalid signature", webhook_id)
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = ResearchWebhookPayload.model_validate(json.loads(body))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid payload: {exc}")

    action = await handle_research_notification(db, payload, research_client, dispatch)
    return WebhookAck(action=action)
