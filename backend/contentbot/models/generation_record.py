"""GenerationRecord model — one row per article generation attempt."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, Integer, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contentbot.database import Base


class GenerationRecord(Base):
    __tablename__ = "article_generations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    article_id: Mapped[str] = mapped_column(String(36), ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), nullable=False)
    # pending | researching | outline | writing | quality-control | validating | updating
    # | research_failed | completed | failed
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_phase: Mapped[str | None] = mapped_column(String(64), nullable=True)
    artifacts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    research_run_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    article = relationship("Article", back_populates="generations")

    __table_args__ = (
        Index("ix_article_generations_article_id", "article_id"),
        Index("ix_article_generations_status", "status"),
        Index("ix_article_generations_research_run_id", "research_run_id"),
    )

    def __repr__(self) -> str:
        return f"<GenerationRecord {self.id[:8]} ({self.status} {self.progress}%)>"
