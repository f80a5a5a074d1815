"""Shared request dependencies: caller identity, cron auth and task hand-off."""
from __future__ import annotations

import hmac

from fastapi import Header, HTTPException

from contentbot.config import get_settings
from contentbot.services import orchestrator
from contentbot.services.errors import GenerationValidationError
from contentbot.services.research_client import ResearchClient, ResearchService


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """The upstream gateway authenticates the caller and forwards its id."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    secret = get_settings().CRON_SECRET
    if not secret:
        return
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
        raise HTTPException(status_code=401, detail="Unauthorized")


def get_generation_dispatcher() -> orchestrator.GenerationDispatcher:
    return orchestrator.dispatch_generation


def get_resume_dispatcher() -> orchestrator.ResumeDispatcher:
    return orchestrator.dispatch_resume


def get_research_client() -> ResearchService:
    return ResearchClient(get_settings())


def to_http_error(exc: GenerationValidationError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail={"error": exc.code, "message": exc.message})
