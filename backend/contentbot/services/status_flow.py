"""Central status transition tables for articles and generation records.

Every status change in the service is checked against these tables
instead of ad hoc conditions at each call site. Sink states map to an
empty set.
"""
from __future__ import annotations

from contentbot.schemas.common import ArticleStatus, GenerationStatus
from contentbot.services.errors import InvalidStatusTransitionError

A = ArticleStatus
G = GenerationStatus

ARTICLE_STATUS_FLOW: dict[ArticleStatus, frozenset[ArticleStatus]] = {
    A.IDEA: frozenset({A.TO_GENERATE, A.QUEUED, A.SCHEDULED, A.GENERATING, A.DELETED}),
    A.TO_GENERATE: frozenset({A.GENERATING, A.QUEUED, A.SCHEDULED, A.IDEA, A.DELETED}),
    A.QUEUED: frozenset({A.GENERATING, A.IDEA, A.TO_GENERATE, A.DELETED}),
    A.SCHEDULED: frozenset({A.GENERATING, A.IDEA, A.TO_GENERATE, A.QUEUED, A.DELETED}),
    A.GENERATING: frozenset({A.WAIT_FOR_PUBLISH, A.TO_GENERATE, A.IDEA}),
    A.WAIT_FOR_PUBLISH: frozenset({A.PUBLISHED, A.GENERATING, A.DELETED}),
    A.PUBLISHED: frozenset(),
    A.DELETED: frozenset(),
}

GENERATION_STATUS_FLOW: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    G.PENDING: frozenset({G.RESEARCHING, G.FAILED}),
    G.RESEARCHING: frozenset({G.OUTLINE, G.RESEARCH_FAILED, G.FAILED}),
    G.OUTLINE: frozenset({G.WRITING, G.FAILED}),
    G.WRITING: frozenset({G.QUALITY_CONTROL, G.FAILED}),
    G.QUALITY_CONTROL: frozenset({G.VALIDATING, G.FAILED}),
    G.VALIDATING: frozenset({G.UPDATING, G.COMPLETED, G.FAILED}),
    G.UPDATING: frozenset({G.COMPLETED, G.FAILED}),
    G.RESEARCH_FAILED: frozenset(),
    G.COMPLETED: frozenset(),
    G.FAILED: frozenset(),
}

# Any status that may move into ``generating`` can be claimed.
CLAIMABLE_ARTICLE_STATUSES: frozenset[ArticleStatus] = frozenset(
    status for status, targets in ARTICLE_STATUS_FLOW.items() if A.GENERATING in targets
)

TERMINAL_GENERATION_STATUSES: frozenset[GenerationStatus] = frozenset(
    {G.COMPLETED, G.FAILED, G.RESEARCH_FAILED}
)

ACTIVE_GENERATION_STATUSES: frozenset[GenerationStatus] = frozenset(
    set(GenerationStatus) - TERMINAL_GENERATION_STATUSES
)

# Forward order of the pipeline; side branches are absent on purpose.
GENERATION_PHASE_ORDER: tuple[GenerationStatus, ...] = (
    G.PENDING,
    G.RESEARCHING,
    G.OUTLINE,
    G.WRITING,
    G.QUALITY_CONTROL,
    G.VALIDATING,
    G.UPDATING,
    G.COMPLETED,
)


def is_valid_article_transition(current: str, target: str) -> bool:
    current, target = ArticleStatus(current), ArticleStatus(target)
    if current == target:
        return True
    return target in ARTICLE_STATUS_FLOW[current]


def is_valid_generation_transition(current: str, target: str) -> bool:
    current, target = GenerationStatus(current), GenerationStatus(target)
    if current == target:
        return True
    return target in GENERATION_STATUS_FLOW[current]


def assert_article_transition(current: str, target: str) -> None:
    if not is_valid_article_transition(current, target):
        raise InvalidStatusTransitionError("article", ArticleStatus(current).value, ArticleStatus(target).value)


def assert_generation_transition(current: str, target: str) -> None:
    if not is_valid_generation_transition(current, target):
        raise InvalidStatusTransitionError("generation", GenerationStatus(current).value, GenerationStatus(target).value)


def is_terminal_generation_status(status: str) -> bool:
    return GenerationStatus(status) in TERMINAL_GENERATION_STATUSES


def phase_index(status: str) -> int:
    """Position of *status* in the forward pipeline order.

    Side-branch terminal states sort after ``completed`` so that nothing
    can resume past them.
    """
    status = GenerationStatus(status)
    if status in GENERATION_PHASE_ORDER:
        return GENERATION_PHASE_ORDER.index(status)
    return len(GENERATION_PHASE_ORDER)


def is_valid_resume_transition(current: str, target: str) -> bool:
    """Resumption may jump forward over skipped phases, never backwards.

    Terminal records cannot be resumed, and a run can only re-enter at a
    phase that has an executor (not ``pending`` or ``completed``).
    """
    current, target = GenerationStatus(current), GenerationStatus(target)
    if current in TERMINAL_GENERATION_STATUSES:
        return False
    if target in (G.PENDING, G.COMPLETED) or target not in GENERATION_PHASE_ORDER:
        return False
    return phase_index(current) <= phase_index(target)


def assert_resume_transition(current: str, target: str) -> None:
    if not is_valid_resume_transition(current, target):
        raise InvalidStatusTransitionError("generation", GenerationStatus(current).value, GenerationStatus(target).value)
