"""Shared / common schemas: status enums and base responses."""
from datetime import datetime
from enum import Enum
from pydantic import BaseModel


# ── Enums ──────────────────────────────────────────────────────────────

class ArticleStatus(str, Enum):
    IDEA = "idea"
    TO_GENERATE = "to_generate"
    GENERATING = "generating"
    WAIT_FOR_PUBLISH = "wait_for_publish"
    PUBLISHED = "published"
    DELETED = "deleted"
    SCHEDULED = "scheduled"
    QUEUED = "queued"


class GenerationStatus(str, Enum):
    PENDING = "pending"
    RESEARCHING = "researching"
    OUTLINE = "outline"
    WRITING = "writing"
    QUALITY_CONTROL = "quality-control"
    VALIDATING = "validating"
    UPDATING = "updating"
    RESEARCH_FAILED = "research_failed"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueItemStatus(str, Enum):
    QUEUED = "queued"
    FAILED = "failed"


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    INVALID_STATE = "invalid_state"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class IssueSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ── Common Responses ───────────────────────────────────────────────────

class MessageResponse(BaseModel):
    message: str
    detail: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
