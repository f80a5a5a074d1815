"""Generation request, status and queue schemas."""
from datetime import datetime
from pydantic import BaseModel, Field
from contentbot.schemas.common import GenerationStatus, QueueItemStatus


class GenerationStartRequest(BaseModel):
    force_regenerate: bool = Field(default=False, description="Restart even if the article is already generating")


class GenerationStartResponse(BaseModel):
    generation_id: str
    article_id: str
    status: GenerationStatus
    message: str


class ScheduleGenerationRequest(BaseModel):
    scheduled_for: datetime = Field(description="When generation should start (UTC)")
    queue_position: int = Field(default=0, ge=0)


class QueueItemResponse(BaseModel):
    id: str
    article_id: str
    scheduled_for_date: datetime
    queue_position: int
    status: QueueItemStatus
    attempts: int
    error_message: str | None

    model_config = {"from_attributes": True}


class GenerationStatusResponse(BaseModel):
    generation_id: str | None
    article_id: str
    article_status: str
    status: GenerationStatus | None
    progress: int
    current_phase: str | None
    error: str | None
    scheduled_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    seo_score: int | None = None
    seo_issues: list[dict] = []
    publish_ready: bool | None = None


class QueueSweepResponse(BaseModel):
    processed: int
    started: int
    failed: int
    skipped: int
    queue_item_ids: list[str]


class PublishSweepResponse(BaseModel):
    checked: int
    published: int
    article_ids: list[str]


class GenerationRetryResponse(BaseModel):
    generation_id: str
    article_id: str
    status: GenerationStatus
    previous_generation_id: str
    restart_phase: GenerationStatus
    reasoning: str
    available_artifacts: list[str] = []
    message: str
