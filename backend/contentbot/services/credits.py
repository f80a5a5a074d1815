"""Credit ledger: balance lookup and atomic deduction per user."""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from contentbot.config import get_settings
from contentbot.models import UserCredit

logger = logging.getLogger(__name__)


def get_user_credits(db: Session, user_id: str, create: bool = True) -> int:
    """Return the user's balance, creating the row with the starting grant.

    With ``create=False`` a missing row reports the starting grant without
    writing anything (used by read-only preflight checks).
    """
    row = db.query(UserCredit).filter(UserCredit.user_id == user_id).first()
    if row is None:
        if not create:
            return get_settings().DEFAULT_STARTING_CREDITS
        row = UserCredit(user_id=user_id, amount=get_settings().DEFAULT_STARTING_CREDITS)
        db.add(row)
        db.commit()
        logger.info("Created credit row for user %s with %d credits", user_id, row.amount)
    return row.amount


def has_enough_credits(db: Session, user_id: str, cost: int | None = None) -> bool:
    if cost is None:
        cost = get_settings().ARTICLE_GENERATION_CREDIT_COST
    return get_user_credits(db, user_id, create=False) >= cost


def deduct_credits(db: Session, user_id: str, cost: int | None = None) -> bool:
    """Deduct *cost* credits with a conditional update.

    Returns False without changing anything when the balance is too low,
    so two concurrent deductions cannot drive the balance negative.
    """
    if cost is None:
        cost = get_settings().ARTICLE_GENERATION_CREDIT_COST
    get_user_credits(db, user_id)
    updated = (
        db.query(UserCredit)
        .filter(UserCredit.user_id == user_id, UserCredit.amount >= cost)
        .update({UserCredit.amount: UserCredit.amount - cost}, synchronize_session=False)
    )
    db.commit()
    if updated:
        logger.info("Deducted %d credits from user %s", cost, user_id)
    else:
        logger.warning("Could not deduct %d credits from user %s: balance too low", cost, user_id)
    return bool(updated)
