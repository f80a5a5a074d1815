"""Typed exceptions raised by the generation services.

``GenerationValidationError`` and its subclasses are preflight failures:
they are raised before any state is mutated or any external cost is
incurred, and the API layer maps them to 4xx responses via ``http_status``.
"""
from __future__ import annotations


class GenerationValidationError(Exception):
    """Preflight check failed; nothing was changed."""

    http_status = 400

    def __init__(self, message: str, code: str = "validation_failed"):
        super().__init__(message)
        self.message = message
        self.code = code


class ArticleNotFoundError(GenerationValidationError):
    http_status = 404

    def __init__(self, article_id: str):
        super().__init__(f"Article {article_id} not found", code="article_not_found")


class InsufficientCreditsError(GenerationValidationError):
    http_status = 402

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient credits: {required} required, {available} available",
            code="insufficient_credits",
        )
        self.required = required
        self.available = available


class ArticleAlreadyGeneratingError(GenerationValidationError):
    http_status = 409

    def __init__(self, article_id: str):
        super().__init__(
            f"Article {article_id} is already being generated",
            code="already_generating",
        )


class InvalidStatusTransitionError(GenerationValidationError):
    http_status = 409

    def __init__(self, kind: str, current: str, target: str):
        super().__init__(
            f"Invalid {kind} status transition: {current} -> {target}",
            code="invalid_transition",
        )
        self.current = current
        self.target = target


class PhaseError(Exception):
    """A phase executor failed; the message names the phase."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase} failed: {message}")
        self.phase = phase


class WebhookSignatureError(Exception):
    pass


class GenerationNotRetryableError(GenerationValidationError):
    http_status = 409

    def __init__(self, article_id: str, status: str | None):
        detail = f"its latest generation is {status}" if status else "it has no generation to retry"
        super().__init__(f"Article {article_id} cannot be retried: {detail}", code="not_retryable")
        self.status = status
