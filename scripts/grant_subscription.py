"""
Grant (or revoke) a comp subscription from the command line.

Run: python -m scripts.grant_subscription user@example.com --admin-email admin@example.com
     python -m scripts.grant_subscription user@example.com --admin-email admin@example.com --revoke
"""
import argparse
import logging
import sys
from typing import Optional

from fitpro.core.config import get_settings
from fitpro.core.errors import FitProError
from fitpro.db.models.user import User
from fitpro.db.session import SessionLocal
from fitpro.services.audit_log import AdminAuditLog
from fitpro.services.subscription_service import grant_subscription, revoke_subscription

logger = logging.getLogger(__name__)


def run(
    email: str,
    admin_email: str,
    subscription_id: Optional[str] = None,
    revoke: bool = False,
    session_factory=None,
    audit_log: Optional[AdminAuditLog] = None,
) -> bool:
    """Apply the grant or revoke through the same service calls the admin API uses."""
    if audit_log is None:
        audit_log = AdminAuditLog(get_settings().audit_log_path)
    db = (session_factory or SessionLocal)()
    try:
        admin = db.query(User).filter(User.email == admin_email.lower()).first()
        if not admin or not admin.is_admin:
            logger.error(f"{admin_email} is not an administrator")
            return False

        user = db.query(User).filter(User.email == email.lower()).first()
        if not user:
            logger.error(f"User {email} not found")
            return False

        if revoke:
            revoke_subscription(db, user.id, admin, audit_log)
        else:
            grant_subscription(db, user.id, admin, audit_log, subscription_id=subscription_id)
        return True
    except FitProError as e:
        logger.error(f"Failed to update subscription for {email}: {e.message}")
        return False
    finally:
        db.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Grant or revoke a FitPro subscription")
    parser.add_argument("email", help="Email of the member")
    parser.add_argument("--admin-email", required=True, help="Email of the acting administrator")
    parser.add_argument("--subscription-id", default=None, help="Custom subscription id for a grant")
    parser.add_argument("--revoke", action="store_true", help="Revoke instead of grant")
    args = parser.parse_args(argv)

    success = run(args.email, args.admin_email, args.subscription_id, args.revoke)
    action = "revoked" if args.revoke else "granted"
    if success:
        print(f"\n[SUCCESS] Subscription {action} for {args.email}")
        return 0
    print(f"\n[ERROR] Failed to update subscription for {args.email}")
    return 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sys.exit(main())
