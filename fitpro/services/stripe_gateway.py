"""
Stripe gateway for checkout, subscription lookups, and webhook verification.

Every outbound call to Stripe goes through StripeGateway so that API errors
surface as UpstreamLookupError and the API key comes from Settings rather
than module globals.
"""
import logging
from typing import Any, Dict, Optional

import stripe

from fitpro.core.config import Settings
from fitpro.core.errors import (
    ConfigurationError,
    UpstreamLookupError,
    WebhookVerificationError,
)

logger = logging.getLogger(__name__)

MEMBERSHIP_PRODUCT_TYPE = "fitpro_subscription"
MEMBERSHIP_PRICES = {
    "monthly": {"unit_amount": 2900, "interval": "month"},   # $29.00
    "yearly": {"unit_amount": 24900, "interval": "year"},    # $249.00
}
CURRENCY_SYMBOLS = {"usd": "$", "eur": "€", "gbp": "£"}


def to_plain_dict(obj: Any) -> Dict[str, Any]:
    """Convert a StripeObject (or a plain dict) into nested plain dicts."""
    if obj is None:
        return {}
    for method in ("to_dict_recursive", "to_dict"):
        converter = getattr(obj, method, None)
        if callable(converter):
            return converter()
    return dict(obj)


def format_price(unit_amount: int, currency: str) -> str:
    """Format an amount in minor units for display, e.g. 2900/usd -> '$29.00'."""
    amount = unit_amount / 100
    symbol = CURRENCY_SYMBOLS.get(currency.lower())
    if symbol:
        return f"{symbol}{amount:,.2f}"
    return f"{amount:,.2f} {currency.upper()}"


class StripeGateway:
    """Thin wrapper over the Stripe SDK bound to one API key."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.api_key = settings.stripe_secret_key
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe features disabled")

    def _require_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("Stripe not configured - STRIPE_SECRET_KEY required")
        return self.api_key

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """
        Retrieve a subscription with its price expanded.

        Raises:
            UpstreamLookupError: If the Stripe call fails
        """
        api_key = self._require_key()
        try:
            subscription = stripe.Subscription.retrieve(
                subscription_id,
                api_key=api_key,
                expand=["items.data.price"],
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving subscription {subscription_id}: {e}")
            raise UpstreamLookupError(f"Failed to retrieve subscription: {e}", cause=e) from e
        return to_plain_dict(subscription)

    def retrieve_customer_email(self, customer_id: str) -> Optional[str]:
        """Return the customer's email, or None for deleted or email-less customers."""
        api_key = self._require_key()
        try:
            customer = stripe.Customer.retrieve(customer_id, api_key=api_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving customer {customer_id}: {e}")
            raise UpstreamLookupError(f"Failed to retrieve customer: {e}", cause=e) from e
        customer = to_plain_dict(customer)
        if customer.get("deleted"):
            return None
        return customer.get("email") or None

    def retrieve_checkout_session(self, session_id: str) -> Dict[str, Any]:
        """Retrieve a checkout session with its subscription and line items expanded."""
        api_key = self._require_key()
        try:
            session = stripe.checkout.Session.retrieve(
                session_id,
                api_key=api_key,
                expand=["subscription", "line_items.data.price"],
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving checkout session {session_id}: {e}")
            raise UpstreamLookupError(f"Failed to retrieve checkout session: {e}", cause=e) from e
        return to_plain_dict(session)

    def create_checkout_session(
        self,
        user_id: int,
        user_email: str,
        price_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a Stripe Checkout session for the membership subscription.

        The local user id is written to both the session and the subscription
        metadata so later lifecycle events can be mapped back to the user.

        Returns:
            Dictionary with 'id' and 'url' keys
        """
        api_key = self._require_key()
        frontend_url = self.settings.frontend_url
        if not success_url:
            success_url = f"{frontend_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}"
        if not cancel_url:
            cancel_url = f"{frontend_url}/programs"

        try:
            session = stripe.checkout.Session.create(
                api_key=api_key,
                payment_method_types=["card"],
                line_items=[{
                    "price": price_id,
                    "quantity": 1,
                }],
                mode="subscription",
                subscription_data={
                    "metadata": {"userId": str(user_id)},
                },
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=user_email,
                metadata={"userId": str(user_id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {e}")
            raise UpstreamLookupError(f"Failed to create checkout session: {e}", cause=e) from e

        logger.info(f"Created checkout session for user_id={user_id}, session_id={session.id}")
        return {"id": session.id, "url": getattr(session, "url", None)}

    def ensure_subscription_prices(self) -> Dict[str, str]:
        """
        Find or create the membership product and its recurring prices.

        Safe to call repeatedly: existing prices tagged with plan_type are reused.

        Returns:
            Dictionary with 'product', 'monthly' and 'yearly' ids
        """
        api_key = self._require_key()
        try:
            products = to_plain_dict(stripe.Product.list(limit=100, active=True, api_key=api_key))
            product_id = next(
                (
                    p["id"] for p in products.get("data", [])
                    if (p.get("metadata") or {}).get("type") == MEMBERSHIP_PRODUCT_TYPE
                ),
                None,
            )

            price_ids: Dict[str, str] = {}
            if product_id is not None:
                prices = to_plain_dict(stripe.Price.list(
                    product=product_id, type="recurring", active=True, api_key=api_key
                ))
                for price in prices.get("data", []):
                    plan_type = (price.get("metadata") or {}).get("plan_type")
                    if plan_type in MEMBERSHIP_PRICES and plan_type not in price_ids:
                        price_ids[plan_type] = price["id"]
            else:
                product = stripe.Product.create(
                    name="FitPro Academy Membership",
                    description="Premium access to all fitness programs, courses, and video content",
                    metadata={"type": MEMBERSHIP_PRODUCT_TYPE},
                    api_key=api_key,
                )
                product_id = product.id
                logger.info(f"Created membership product: product_id={product_id}")

            for plan_type, plan in MEMBERSHIP_PRICES.items():
                if plan_type in price_ids:
                    continue
                price = stripe.Price.create(
                    product=product_id,
                    unit_amount=plan["unit_amount"],
                    currency="usd",
                    recurring={"interval": plan["interval"]},
                    metadata={"plan_type": plan_type},
                    api_key=api_key,
                )
                price_ids[plan_type] = price.id
                logger.info(f"Created membership price: plan={plan_type}, price_id={price.id}")
        except stripe.StripeError as e:
            logger.error(f"Stripe error initializing membership prices: {e}")
            raise UpstreamLookupError(f"Failed to initialize subscription prices: {e}", cause=e) from e

        return {"product": product_id, **price_ids}

    def get_default_price_id(self) -> str:
        """Configured STRIPE_PRICE_ID, else the membership's monthly price."""
        if self.settings.stripe_price_id:
            return self.settings.stripe_price_id
        return self.ensure_subscription_prices()["monthly"]

    def get_subscription_price(self) -> Optional[str]:
        """Display price of the default membership price, or None if unavailable."""
        api_key = self._require_key()
        price_id = self.get_default_price_id()
        try:
            price = to_plain_dict(stripe.Price.retrieve(price_id, api_key=api_key))
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving price {price_id}: {e}")
            raise UpstreamLookupError(f"Failed to retrieve price: {e}", cause=e) from e
        unit_amount = price.get("unit_amount")
        if not isinstance(unit_amount, int):
            return None
        return format_price(unit_amount, price.get("currency") or "usd")

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> None:
        """
        Verify a webhook body against its Stripe-Signature header.

        Args:
            payload: Raw request body bytes
            signature: Stripe-Signature header value

        Raises:
            WebhookVerificationError: If the secret is missing or verification fails
        """
        secret = self.settings.stripe_webhook_secret
        if not secret:
            raise WebhookVerificationError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise WebhookVerificationError(f"Invalid webhook payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise WebhookVerificationError(f"Invalid signature: {e}") from e

        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
