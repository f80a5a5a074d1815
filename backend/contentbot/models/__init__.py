"""SQLAlchemy ORM models package."""
from contentbot.models.project import Project
from contentbot.models.article import Article
from contentbot.models.generation_record import GenerationRecord
from contentbot.models.generation_queue_item import GenerationQueueItem
from contentbot.models.user_credit import UserCredit
from contentbot.models.webhook_delivery import WebhookDelivery

__all__ = [
    "Project",
    "Article",
    "GenerationRecord",
    "GenerationQueueItem",
    "UserCredit",
    "WebhookDelivery",
]
