"""
Revenue and subscription reporting for the admin dashboard.
"""
import logging
from typing import Any, Dict

from sqlalchemy import func
from sqlalchemy.orm import Session

from fitpro.db.models.enrollment import Enrollment
from fitpro.db.models.payment import Payment
from fitpro.db.models.user import User

logger = logging.getLogger(__name__)

TOP_PROGRAMS_LIMIT = 5


def build_revenue_report(db: Session) -> Dict[str, Any]:
    """
    Aggregate user, enrollment, revenue and subscription counts.

    Returns:
        Dictionary with totalUsers, totalEnrollments, totalRevenue,
        activeSubscriptions, subscriptionsByStatus and topPrograms
    """
    total_users = db.query(func.count(User.id)).scalar() or 0
    total_enrollments = db.query(func.count(Enrollment.id)).scalar() or 0

    total_revenue = db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.status == "succeeded"
    ).scalar()

    status_rows = db.query(User.subscription_status, func.count(User.id)).filter(
        User.subscription_status.isnot(None)
    ).group_by(User.subscription_status).all()
    subscriptions_by_status = {status: int(count) for status, count in status_rows}

    top_rows = db.query(
        Enrollment.program_id,
        func.count(Enrollment.id).label("enrollments"),
    ).group_by(Enrollment.program_id).order_by(
        func.count(Enrollment.id).desc(),
        Enrollment.program_id,
    ).limit(TOP_PROGRAMS_LIMIT).all()

    report = {
        "totalUsers": int(total_users),
        "totalEnrollments": int(total_enrollments),
        "totalRevenue": round(float(total_revenue or 0), 2),
        "activeSubscriptions": subscriptions_by_status.get("active", 0),
        "subscriptionsByStatus": subscriptions_by_status,
        "topPrograms": [
            {"programId": program_id, "enrollments": int(count)}
            for program_id, count in top_rows
        ],
    }
    logger.debug(f"Revenue report built: users={report['totalUsers']}, revenue={report['totalRevenue']}")
    return report
