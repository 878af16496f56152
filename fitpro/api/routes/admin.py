"""
Admin endpoints: user listing, manual subscription overrides, reports.

Every route requires the ADMIN role.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from fitpro.core.auth_dependency import get_audit_log, get_db, require_admin
from fitpro.db.models.enrollment import Enrollment
from fitpro.db.models.user import User
from fitpro.schemas.billing import (
    AdminSubscriptionResponse,
    AdminUserSummary,
    GrantSubscriptionRequest,
    RevenueReportResponse,
    SubscriberResponse,
)
from fitpro.services.audit_log import AdminAuditLog
from fitpro.services.report_service import build_revenue_report
from fitpro.services.subscription_service import grant_subscription, revoke_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=List[AdminUserSummary])
def list_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """All users, newest first, with their subscriber fields and enrollment counts."""
    enrollment_counts = dict(
        db.query(Enrollment.user_id, func.count(Enrollment.id)).group_by(Enrollment.user_id).all()
    )
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()

    return [
        AdminUserSummary(
            id=u.id,
            email=u.email,
            full_name=u.full_name,
            role=u.role,
            created_at=u.created_at,
            subscription_id=u.subscription_id,
            subscription_price_id=u.subscription_price_id,
            subscription_status=u.subscription_status,
            subscription_start_date=u.subscription_start_date,
            subscription_end_date=u.subscription_end_date,
            enrollment_count=enrollment_counts.get(u.id, 0),
        )
        for u in users
    ]


@router.post("/users/{user_id}/subscription", response_model=AdminSubscriptionResponse)
def grant_user_subscription(
    user_id: int,
    request: Optional[GrantSubscriptionRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audit_log: AdminAuditLog = Depends(get_audit_log),
):
    """Activate a subscription for a user without going through Stripe."""
    subscription_id = request.subscription_id if request else None
    user = grant_subscription(db, user_id, admin, audit_log, subscription_id=subscription_id)
    return AdminSubscriptionResponse(user=SubscriberResponse.model_validate(user))


@router.delete("/users/{user_id}/subscription", response_model=AdminSubscriptionResponse)
def revoke_user_subscription(
    user_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    audit_log: AdminAuditLog = Depends(get_audit_log),
):
    """Deactivate a user's subscription locally; Stripe is not contacted."""
    user = revoke_subscription(db, user_id, admin, audit_log)
    return AdminSubscriptionResponse(user=SubscriberResponse.model_validate(user))


@router.get("/reports", response_model=RevenueReportResponse)
def revenue_report(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return RevenueReportResponse(**build_revenue_report(db))
