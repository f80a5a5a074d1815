"""GenerationQueueItem model — a deferred request to start generating an article."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from contentbot.database import Base


class GenerationQueueItem(Base):
    __tablename__ = "generation_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    article_id: Mapped[str] = mapped_column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    scheduled_for_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    queue_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="queued")  # queued | failed
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_generation_queue_status_due", "status", "scheduled_for_date"),
        Index("ix_generation_queue_article_id", "article_id"),
    )

    def __repr__(self) -> str:
        return f"<GenerationQueueItem {self.id[:8]} ({self.status}, attempts={self.attempts})>"
