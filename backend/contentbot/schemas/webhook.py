"""Inbound research webhook payload schemas."""
from pydantic import BaseModel


class ResearchRunError(BaseModel):
    message: str | None = None
    details: str | None = None


class ResearchRunData(BaseModel):
    run_id: str
    status: str
    error: ResearchRunError | None = None


class ResearchWebhookPayload(BaseModel):
    type: str
    timestamp: str | None = None
    data: ResearchRunData | None = None

    model_config = {"extra": "ignore"}


class WebhookAck(BaseModel):
    received: bool = True
    action: str
