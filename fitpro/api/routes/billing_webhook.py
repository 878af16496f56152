"""
Stripe webhook endpoint.

Processing errors answer 500 so Stripe redelivers the event later; events
that cannot be mapped to a user answer 200 because a retry cannot fix them.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from fitpro.core.auth_dependency import get_db, get_stripe_gateway
from fitpro.core.config import Settings, get_settings
from fitpro.core.errors import EventParseError, FitProError, WebhookVerificationError
from fitpro.schemas.billing import WebhookAck
from fitpro.schemas.stripe_events import parse_event
from fitpro.services.stripe_gateway import StripeGateway
from fitpro.services.subscription_service import dispatch_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Billing Webhook"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    settings: Settings = Depends(get_settings),
):
    payload = await request.body()

    try:
        gateway.verify_webhook(payload, stripe_signature)
    except WebhookVerificationError as e:
        if not settings.allow_unsigned_webhooks:
            return JSONResponse(status_code=e.status_code, content=e.to_detail())
        logger.warning(
            f"Signature verification failed, processing unsigned payload "
            f"(STRIPE_ALLOW_UNSIGNED_WEBHOOKS enabled): {e.message}"
        )

    try:
        event = parse_event(json.loads(payload))
    except ValueError as e:
        logger.error(f"Webhook body is not valid JSON: {e}")
        return JSONResponse(status_code=400, content={"error": "invalid_event", "message": str(e)})
    except EventParseError as e:
        logger.error(f"Webhook event rejected: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_detail())

    logger.info(f"Webhook event received: type={event.type}, id={event.id}")

    try:
        result = dispatch_event(event, db, gateway)
    except EventParseError as e:
        # A malformed object fetched from Stripe will not parse on redelivery either
        logger.error(f"Webhook event rejected: type={event.type}, id={event.id}, error={e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_detail())
    except FitProError as e:
        logger.error(f"Webhook processing failed: type={event.type}, id={event.id}, error={e.message}")
        return JSONResponse(status_code=500, content=e.to_detail())

    return WebhookAck(action=result.action)
