"""Project model — a customer website that groups articles and publishing settings."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from contentbot.database import Base


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    tone_of_voice: Mapped[str | None] = mapped_column(Text, nullable=True)
    article_structure: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_words: Mapped[int] = mapped_column(Integer, nullable=False, default=1800)
    excluded_domains: Mapped[list | None] = mapped_column(JSON, nullable=True)
    webhook_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    webhook_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    webhook_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    articles = relationship("Article", back_populates="project", cascade="all, delete-orphan", lazy="dynamic")

    __table_args__ = (
        Index("ix_projects_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<Project {self.name!r} ({self.id[:8]})>"
