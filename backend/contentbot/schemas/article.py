"""Article kanban and publish-scheduling schemas."""
from datetime import datetime
from pydantic import BaseModel
from contentbot.schemas.common import ArticleStatus


class ArticleStatusUpdate(BaseModel):
    status: ArticleStatus


class SchedulePublishRequest(BaseModel):
    publish_at: datetime


class ArticleResponse(BaseModel):
    id: str
    project_id: str
    title: str
    status: ArticleStatus
    slug: str | None
    meta_description: str | None
    seo_score: int | None
    cover_image_url: str | None
    publish_scheduled_at: datetime | None
    published_at: datetime | None
    updated_at: datetime

    model_config = {"from_attributes": True}
