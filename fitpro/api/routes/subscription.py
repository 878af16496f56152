"""
Subscription status endpoints for members.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fitpro.core.auth_dependency import get_current_user_obj, get_db, get_stripe_gateway
from fitpro.core.errors import FitProError
from fitpro.db.models.user import User
from fitpro.schemas.billing import (
    MySubscriptionResponse,
    ProgramStatusResponse,
    SubscriberResponse,
    SubscriptionPriceResponse,
)
from fitpro.services.access_service import get_program_status, has_unlimited_access
from fitpro.services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Subscription"])


@router.get("/subscription/price", response_model=SubscriptionPriceResponse)
def subscription_price(gateway: StripeGateway = Depends(get_stripe_gateway)):
    """Display price of the membership; null when Stripe cannot provide one."""
    try:
        price = gateway.get_subscription_price()
    except FitProError as e:
        logger.warning(f"Could not fetch subscription price: {e.message}")
        price = None
    return SubscriptionPriceResponse(price=price)


@router.get("/me/subscription", response_model=MySubscriptionResponse)
def my_subscription(user: User = Depends(get_current_user_obj)):
    record = SubscriberResponse.model_validate(user)
    return MySubscriptionResponse(
        **record.model_dump(),
        has_active_subscription=has_unlimited_access(user),
    )


@router.get("/me/programs-status", response_model=ProgramStatusResponse)
def my_programs_status(
    user: User = Depends(get_current_user_obj),
    db: Session = Depends(get_db),
):
    status = get_program_status(db, user)
    return ProgramStatusResponse(
        enrolled_program_ids=status["enrolledProgramIds"],
        has_active_subscription=status["hasActiveSubscription"],
    )
