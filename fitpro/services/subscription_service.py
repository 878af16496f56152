"""
Subscription reconciliation between Stripe and the local user record.

Handles webhook events, the client-side confirmation fallback, and admin
grant/revoke overrides. Every writer of the subscriber fields goes through
apply_subscription_snapshot() so the ordering rules live in one place.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fitpro.core.errors import PersistenceError, SubscriberNotFoundError
from fitpro.db.models.enrollment import Enrollment
from fitpro.db.models.payment import Payment
from fitpro.db.models.user import User
from fitpro.schemas.stripe_events import (
    CheckoutSessionCompletedEvent,
    InvoicePaymentFailedEvent,
    ProcessorEvent,
    SubscriptionLifecycleEvent,
    SubscriptionSnapshot,
    parse_checkout_session,
    parse_subscription,
)
from fitpro.services.audit_log import ACTION_GRANT, ACTION_REVOKE, AdminAuditLog
from fitpro.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_PAST_DUE = "past_due"
STATUS_INACTIVE = "inactive"

# ReconcileResult.action values
APPLIED = "applied"
ENROLLED = "enrolled"
UNMAPPED = "unmapped"
STALE = "stale"
IGNORED = "ignored"
NO_SUBSCRIPTION = "no_subscription"


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation step."""
    action: str
    user_id: Optional[int] = None
    subscription_id: Optional[str] = None
    status: Optional[str] = None


def utcnow() -> datetime:
    """Current time as naive UTC, matching the stored subscriber dates."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _commit(db: Session, context: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Database write failed: {context}")
        raise PersistenceError(f"Database error while {context}", cause=e) from e


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric userId in Stripe metadata: {raw!r}")
        return None


def get_user(db: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id).first()


def resolve_user(
    db: Session,
    gateway: StripeGateway,
    metadata_user_id: Optional[str],
    customer_id: Optional[str],
) -> Optional[User]:
    """
    Map a Stripe object to a local user.

    Tries the userId carried in metadata first, then the email of the Stripe
    customer. Returns None if neither leads to an existing user.

    Raises:
        UpstreamLookupError: If the customer lookup fails
    """
    user = get_user(db, _parse_user_id(metadata_user_id))
    if user:
        return user

    if not customer_id:
        return None

    email = gateway.retrieve_customer_email(customer_id)
    if not email:
        return None
    return db.query(User).filter(User.email == email).first()


def fetch_subscription_snapshot(gateway: StripeGateway, subscription_id: str) -> SubscriptionSnapshot:
    """Retrieve a subscription from Stripe and reduce it to the subscriber fields."""
    subscription = parse_subscription(gateway.retrieve_subscription(subscription_id))
    return SubscriptionSnapshot.from_subscription(subscription)


def is_stale_snapshot(user: User, snapshot: SubscriptionSnapshot) -> bool:
    """
    True when the user already holds a newer period of the same subscription.

    Snapshots of a different subscription are never stale: a new checkout
    replaces the previous subscription outright.
    """
    return (
        user.subscription_id == snapshot.subscription_id
        and user.subscription_end_date is not None
        and snapshot.end_date is not None
        and snapshot.end_date < user.subscription_end_date
    )


def apply_subscription_snapshot(
    db: Session,
    user: User,
    snapshot: SubscriptionSnapshot,
) -> ReconcileResult:
    """
    Overwrite the five subscriber fields from a Stripe snapshot in one commit.

    Re-applying the same snapshot is a no-op in effect. A snapshot whose
    period ends before the stored period of the same subscription is skipped.

    Raises:
        PersistenceError: If the commit fails
    """
    if is_stale_snapshot(user, snapshot):
        logger.warning(
            f"Skipping stale subscription snapshot: user_id={user.id}, "
            f"subscription_id={snapshot.subscription_id}, snapshot_end={snapshot.end_date}, "
            f"stored_end={user.subscription_end_date}"
        )
        return ReconcileResult(
            action=STALE,
            user_id=user.id,
            subscription_id=user.subscription_id,
            status=user.subscription_status,
        )

    user.subscription_id = snapshot.subscription_id
    user.subscription_price_id = snapshot.price_id
    user.subscription_status = snapshot.status
    user.subscription_start_date = snapshot.start_date
    user.subscription_end_date = snapshot.end_date

    _commit(db, f"updating subscription for user_id={user.id}")
    db.refresh(user)

    logger.info(
        f"Subscription synced: user_id={user.id}, subscription_id={snapshot.subscription_id}, "
        f"status={snapshot.status}, price_id={snapshot.price_id}, period_end={snapshot.end_date}"
    )
    return ReconcileResult(
        action=APPLIED,
        user_id=user.id,
        subscription_id=snapshot.subscription_id,
        status=snapshot.status,
    )


def record_program_purchase(db: Session, user: User, event: CheckoutSessionCompletedEvent) -> ReconcileResult:
    """
    Create the enrollment and payment rows for a one-time program checkout.

    Redelivered events write nothing new: one enrollment per (user, program)
    and one payment per payment intent. A purchase without a payment intent
    is only recorded when it creates or reactivates the enrollment.
    """
    session = event.session
    program_id = session.program_id
    payment_intent_id = session.payment_intent_id

    enrollment = db.query(Enrollment).filter(
        Enrollment.user_id == user.id,
        Enrollment.program_id == program_id,
    ).first()
    enrollment_changed = enrollment is None or not enrollment.active
    if enrollment is None:
        db.add(Enrollment(user_id=user.id, program_id=program_id, active=True))
    elif not enrollment.active:
        enrollment.active = True

    if payment_intent_id:
        record_payment = db.query(Payment).filter(
            Payment.stripe_payment_id == payment_intent_id
        ).first() is None
    else:
        record_payment = enrollment_changed

    if record_payment:
        db.add(Payment(
            user_id=user.id,
            amount=Decimal(session.amount_total or 0) / 100,
            currency=session.currency or "usd",
            status="succeeded",
            stripe_payment_id=payment_intent_id or "",
        ))

    if not enrollment_changed and not record_payment:
        logger.info(
            f"Program purchase already recorded: user_id={user.id}, program_id={program_id}, "
            f"session_id={session.id}"
        )
        return ReconcileResult(action=ENROLLED, user_id=user.id)

    _commit(db, f"recording program purchase for user_id={user.id}")

    logger.info(f"Enrollment recorded: user_id={user.id}, program_id={program_id}, session_id={session.id}")
    return ReconcileResult(action=ENROLLED, user_id=user.id)


def handle_checkout_session_completed(
    event: CheckoutSessionCompletedEvent,
    db: Session,
    gateway: StripeGateway,
) -> ReconcileResult:
    """
    Handle checkout.session.completed.

    A programId in metadata records a one-time purchase; a subscription
    reference syncs the subscriber record of metadata.userId. Unlike the
    lifecycle handlers this one fails loudly when the user cannot be found,
    so Stripe keeps redelivering the event.

    Raises:
        SubscriberNotFoundError: If metadata.userId does not name a local user
        UpstreamLookupError: If the subscription lookup fails
        PersistenceError: If a database write fails
    """
    session = event.session
    logger.debug(
        f"Checkout session completed: session_id={session.id}, user_id={session.metadata_user_id}, "
        f"program_id={session.program_id}, subscription_id={session.subscription_id}"
    )

    if not session.program_id and not session.subscription_id:
        logger.info(f"Checkout session {session.id} has neither program nor subscription, nothing to do")
        return ReconcileResult(action=IGNORED)

    user = get_user(db, _parse_user_id(session.metadata_user_id))
    if not user:
        raise SubscriberNotFoundError(
            session.metadata_user_id,
            f"Checkout session {session.id} does not reference a known user "
            f"(userId={session.metadata_user_id!r})",
        )

    result = ReconcileResult(action=IGNORED, user_id=user.id)
    if session.program_id:
        result = record_program_purchase(db, user, event)

    if session.subscription_id:
        snapshot = fetch_subscription_snapshot(gateway, session.subscription_id)
        result = apply_subscription_snapshot(db, user, snapshot)

    return result


def handle_subscription_lifecycle(
    event: SubscriptionLifecycleEvent,
    db: Session,
    gateway: StripeGateway,
) -> ReconcileResult:
    """
    Handle customer.subscription.created and customer.subscription.updated.

    Events that cannot be mapped to a user are logged and dropped; retrying
    them would not help.
    """
    subscription = event.subscription
    user = resolve_user(db, gateway, subscription.metadata_user_id, subscription.customer_id)

    if not user:
        logger.warning(
            f"{event.type} could not be mapped to a user: subscription_id={subscription.id}, "
            f"customer_id={subscription.customer_id}"
        )
        return ReconcileResult(action=UNMAPPED, subscription_id=subscription.id, status=subscription.status)

    return apply_subscription_snapshot(db, user, SubscriptionSnapshot.from_subscription(subscription))


def handle_invoice_payment_failed(
    event: InvoicePaymentFailedEvent,
    db: Session,
    gateway: StripeGateway,
) -> ReconcileResult:
    """
    Handle invoice.payment_failed.

    Marks the subscription past_due and leaves id, price and dates alone:
    Stripe may still recover the payment before canceling.
    """
    invoice = event.invoice
    metadata_user_id = None
    customer_id = invoice.customer_id

    if invoice.subscription_id:
        subscription = parse_subscription(gateway.retrieve_subscription(invoice.subscription_id))
        metadata_user_id = subscription.metadata_user_id
        customer_id = customer_id or subscription.customer_id

    user = resolve_user(db, gateway, metadata_user_id, customer_id)
    if not user:
        logger.warning(
            f"invoice.payment_failed could not be mapped to a user: invoice_id={invoice.id}, "
            f"subscription_id={invoice.subscription_id}, customer_id={customer_id}"
        )
        return ReconcileResult(action=UNMAPPED, subscription_id=invoice.subscription_id)

    user.subscription_status = STATUS_PAST_DUE
    _commit(db, f"marking subscription past_due for user_id={user.id}")

    logger.warning(f"Invoice payment failed: user_id={user.id}, subscription_id={user.subscription_id}")
    return ReconcileResult(
        action=APPLIED,
        user_id=user.id,
        subscription_id=user.subscription_id,
        status=STATUS_PAST_DUE,
    )


def dispatch_event(event: ProcessorEvent, db: Session, gateway: StripeGateway) -> ReconcileResult:
    """Route a parsed webhook event to its handler."""
    if isinstance(event, CheckoutSessionCompletedEvent):
        return handle_checkout_session_completed(event, db, gateway)
    if isinstance(event, SubscriptionLifecycleEvent):
        return handle_subscription_lifecycle(event, db, gateway)
    if isinstance(event, InvoicePaymentFailedEvent):
        return handle_invoice_payment_failed(event, db, gateway)

    logger.debug(f"Ignoring unhandled webhook event: type={event.type}, id={event.id}")
    return ReconcileResult(action=IGNORED)


def confirm_subscription(
    user: User,
    session_id: str,
    db: Session,
    gateway: StripeGateway,
) -> ReconcileResult:
    """
    Sync the caller's subscription from a completed checkout session.

    Fallback for environments where webhooks do not reach the API. The
    subscription is attached to the authenticated caller, not to whatever
    userId the session metadata carries.

    Returns:
        ReconcileResult with action "no_subscription" when the session did not
        create a subscription; nothing is written in that case.
    """
    session = parse_checkout_session(gateway.retrieve_checkout_session(session_id))
    logger.debug(f"Confirming subscription: session_id={session_id}, subscription_id={session.subscription_id}")

    if not session.subscription_id:
        logger.info(f"No subscription in checkout session: session_id={session_id}, user_id={user.id}")
        return ReconcileResult(action=NO_SUBSCRIPTION, user_id=user.id)

    snapshot = fetch_subscription_snapshot(gateway, session.subscription_id)
    if snapshot.start_date is None:
        snapshot = snapshot.model_copy(update={"start_date": utcnow()})

    return apply_subscription_snapshot(db, user, snapshot)


def grant_subscription(
    db: Session,
    target_user_id: int,
    admin: User,
    audit_log: AdminAuditLog,
    subscription_id: Optional[str] = None,
) -> User:
    """
    Manually activate a subscription without going through Stripe.

    Raises:
        SubscriberNotFoundError: If the target user does not exist
        PersistenceError: If the commit fails
    """
    user = get_user(db, target_user_id)
    if not user:
        raise SubscriberNotFoundError(target_user_id)

    user.subscription_status = STATUS_ACTIVE
    user.subscription_id = subscription_id or f"admin-{int(time.time() * 1000)}"
    user.subscription_start_date = utcnow()
    user.subscription_end_date = None

    _commit(db, f"granting subscription to user_id={user.id}")
    db.refresh(user)

    audit_log.record(
        ACTION_GRANT,
        admin_id=admin.id,
        admin_email=admin.email,
        target_user_id=user.id,
        subscription_id=user.subscription_id,
    )
    logger.info(f"Subscription granted: user_id={user.id}, subscription_id={user.subscription_id}, admin_id={admin.id}")
    return user


def revoke_subscription(
    db: Session,
    target_user_id: int,
    admin: User,
    audit_log: AdminAuditLog,
) -> User:
    """
    Deactivate a user's subscription locally.

    The Stripe subscription, if any, is left running.

    Raises:
        SubscriberNotFoundError: If the target user does not exist
        PersistenceError: If the commit fails
    """
    user = get_user(db, target_user_id)
    if not user:
        raise SubscriberNotFoundError(target_user_id)

    previous_subscription_id = user.subscription_id
    user.subscription_status = STATUS_INACTIVE
    user.subscription_id = None
    user.subscription_end_date = utcnow()

    _commit(db, f"revoking subscription of user_id={user.id}")
    db.refresh(user)

    audit_log.record(
        ACTION_REVOKE,
        admin_id=admin.id,
        admin_email=admin.email,
        target_user_id=user.id,
    )
    logger.info(
        f"Subscription revoked: user_id={user.id}, previous_subscription_id={previous_subscription_id}, "
        f"admin_id={admin.id}"
    )
    return user
