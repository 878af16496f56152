"""
Checkout endpoints: start a subscription checkout and confirm it afterwards.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fitpro.core.auth_dependency import get_current_user_obj, get_db, get_stripe_gateway
from fitpro.db.models.user import User
from fitpro.schemas.billing import (
    ConfirmSubscriptionRequest,
    ConfirmSubscriptionResponse,
    CreateCheckoutSessionRequest,
    CreateCheckoutSessionResponse,
)
from fitpro.services.stripe_gateway import StripeGateway
from fitpro.services.subscription_service import NO_SUBSCRIPTION, confirm_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", response_model=CreateCheckoutSessionResponse, status_code=status.HTTP_200_OK)
def create_checkout(
    request: Optional[CreateCheckoutSessionRequest] = None,
    user: User = Depends(get_current_user_obj),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Create a hosted checkout session for the membership subscription."""
    request = request or CreateCheckoutSessionRequest()
    price_id = gateway.get_default_price_id()
    session = gateway.create_checkout_session(
        user_id=user.id,
        user_email=user.email,
        price_id=price_id,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )
    return CreateCheckoutSessionResponse(session_id=session["id"], session_url=session["url"])


@router.post("/confirm-subscription", response_model=ConfirmSubscriptionResponse)
def confirm_checkout_subscription(
    request: ConfirmSubscriptionRequest,
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """
    Persist the subscription created by a checkout session.

    Used by the checkout success page when webhooks are not delivered
    (local development). A session without a subscription is a normal
    outcome, not an error.
    """
    result = confirm_subscription(user, request.session_id, db, gateway)

    if result.action == NO_SUBSCRIPTION:
        return ConfirmSubscriptionResponse(
            success=False,
            message="No subscription found in checkout session",
        )

    return ConfirmSubscriptionResponse(
        success=True,
        message="Subscription confirmed",
        subscription_id=result.subscription_id,
        status=result.status,
    )
