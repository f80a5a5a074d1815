"""Per-run inputs shared by every phase executor."""
from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from contentbot.models import Article, Project
from contentbot.schemas.common import ArticleStatus

RELATED_ARTICLE_LIMIT = 10


@dataclass
class GenerationContext:
    article_id: str
    user_id: str
    project_id: str
    title: str
    description: str | None = None
    keywords: list[str] = field(default_factory=list)
    notes: str | None = None
    tone_of_voice: str | None = None
    article_structure: str | None = None
    max_words: int = 1800
    website_url: str | None = None
    excluded_domains: list[str] = field(default_factory=list)
    related_titles: list[str] = field(default_factory=list)

    @property
    def primary_keyword(self) -> str:
        return self.keywords[0] if self.keywords else self.title


def build_generation_context(db: Session, article: Article, project: Project) -> GenerationContext:
    """Snapshot the article and project settings a run needs.

    Keywords fall back to the title; related titles come from other live
    articles in the same project for internal linking.
    """
    keywords = [k for k in (article.keywords or []) if isinstance(k, str) and k.strip()]
    related = (
        db.query(Article.title)
        .filter(
            Article.project_id == project.id,
            Article.id != article.id,
            Article.status.notin_([ArticleStatus.DELETED.value, ArticleStatus.IDEA.value]),
        )
        .order_by(Article.created_at.desc())
        .limit(RELATED_ARTICLE_LIMIT)
        .all()
    )
    return GenerationContext(
        article_id=article.id,
        user_id=article.user_id,
        project_id=project.id,
        title=article.title,
        description=article.description,
        keywords=keywords or [article.title],
        notes=article.notes,
        tone_of_voice=project.tone_of_voice,
        article_structure=project.article_structure,
        max_words=project.max_words or 1800,
        website_url=project.website_url,
        excluded_domains=list(project.excluded_domains or []),
        related_titles=[row.title for row in related],
    )
