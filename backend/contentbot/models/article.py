"""Article model — a kanban card that moves from idea to published."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, Integer, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contentbot.database import Base


class Article(Base):
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    keywords: Mapped[list | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # idea | to_generate | generating | wait_for_publish | published | deleted | scheduled | queued
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="idea")
    publish_scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Denormalized generation output, written once a run completes
    slug: Mapped[str | None] = mapped_column(String(512), nullable=True)
    meta_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    intro_paragraph: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta_keywords: Mapped[list | None] = mapped_column(JSON, nullable=True)
    draft: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    seo_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cover_image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    cover_image_alt: Mapped[str | None] = mapped_column(Text, nullable=True)
    json_ld: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    project = relationship("Project", back_populates="articles")
    generations = relationship(
        "GenerationRecord", back_populates="article", cascade="all, delete-orphan", lazy="dynamic",
    )

    __table_args__ = (
        Index("ix_articles_project_id", "project_id"),
        Index("ix_articles_user_id", "user_id"),
        Index("ix_articles_status", "status"),
        Index("ix_articles_publish_scheduled_at", "publish_scheduled_at"),
    )

    def __repr__(self) -> str:
        return f"<Article {self.id[:8]} ({self.status})>"
