"""
Access checks for subscription-gated content.

An active subscription unlocks every program; otherwise access falls back
to per-program enrollments.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from fitpro.db.models.enrollment import Enrollment
from fitpro.db.models.user import User

logger = logging.getLogger(__name__)


def has_unlimited_access(user: User) -> bool:
    """Only subscription_status == 'active' unlocks everything; end date is not checked."""
    return user.subscription_status == "active"


def get_enrolled_program_ids(db: Session, user_id: int) -> List[str]:
    rows = db.query(Enrollment.program_id).filter(
        Enrollment.user_id == user_id,
        Enrollment.active.is_(True),
    ).all()
    return [program_id for (program_id,) in rows]


def can_access_program(db: Session, user: User, program_id: str) -> bool:
    """Check whether a user may open a program's content."""
    if has_unlimited_access(user):
        return True
    enrollment = db.query(Enrollment).filter(
        Enrollment.user_id == user.id,
        Enrollment.program_id == program_id,
        Enrollment.active.is_(True),
    ).first()
    return enrollment is not None


def get_program_status(db: Session, user: User) -> Dict[str, Any]:
    return {
        "enrolledProgramIds": get_enrolled_program_ids(db, user.id),
        "hasActiveSubscription": has_unlimited_access(user),
    }
