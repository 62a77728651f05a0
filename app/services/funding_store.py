"""
Reads and writes against the funding tables shared by the Stripe flows.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import PersistenceError
from app.models import FundingGoal, Lab, Profile, RecurringFunding, UserEmail

logger = logging.getLogger(__name__)


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def get_user_email(db: Session, user_id: str) -> Optional[str]:
    row = db.query(UserEmail).filter(UserEmail.user_id == user_id).first()
    return row.email if row else None


def get_lab(db: Session, lab_id: str) -> Optional[Lab]:
    return db.query(Lab).filter(Lab.lab_id == lab_id).first()


def get_membership_plan(db: Session, lab_id: str) -> Optional[RecurringFunding]:
    return db.query(RecurringFunding).filter(RecurringFunding.lab_id == lab_id).first()


def get_goal_name(db: Session, lab_id: str, goal_id: str) -> Optional[str]:
    goal = (
        db.query(FundingGoal)
        .filter(FundingGoal.id == goal_id, FundingGoal.lab_id == lab_id)
        .first()
    )
    return goal.goal_name if goal else None


def adjust_goal_contribution(
    db: Session, lab_id: str, goal_id: str, delta: float, commit: bool = True
) -> int:
    """
    Add ``delta`` (major units) to a goal's contributed amount in one UPDATE.

    Scoped by lab and goal so a goal id can never touch another lab's goal.
    With ``commit=False`` the UPDATE joins the caller's transaction and the
    caller commits. Returns the number of rows changed.
    """
    try:
        updated = (
            db.query(FundingGoal)
            .filter(FundingGoal.id == goal_id, FundingGoal.lab_id == lab_id)
            .update(
                {
                    FundingGoal.amount_contributed: func.coalesce(FundingGoal.amount_contributed, 0)
                    + delta
                },
                synchronize_session=False,
            )
        )
        if commit:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update funding goal {goal_id} for lab {lab_id}: {str(e)}")
        raise PersistenceError("Failed to update funding goal")
    if not updated:
        logger.warning(f"Funding goal {goal_id} not found for lab {lab_id}; contribution not recorded")
    return updated
