"""
Typed view of the Stripe webhook payloads the reconciler consumes.

Webhook bodies are parsed once into one of a closed set of event models;
handlers never touch the raw dictionaries. Any event type the service does
not act on becomes an UnknownEvent and is acknowledged without side effects.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fitpro.core.errors import EventParseError

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

# Stripe sends either an id string or the expanded object for references
Reference = Union[str, Dict[str, Any], None]


def reference_id(value: Reference) -> Optional[str]:
    """Return the id of a Stripe reference that may be a string or an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return value.get("id")


# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_UNIX_TIMESTAMP = 253402300799

# Unix seconds as Stripe sends them; out-of-range values fail validation
UnixTimestamp = Annotated[int, Field(ge=0, le=MAX_UNIX_TIMESTAMP)]


def from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert Unix seconds to a naive UTC datetime."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class StripeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Price(StripeModel):
    id: str


class SubscriptionItem(StripeModel):
    id: Optional[str] = None
    price: Optional[Price] = None
    current_period_end: Optional[UnixTimestamp] = None


class SubscriptionItemList(StripeModel):
    data: List[SubscriptionItem] = Field(default_factory=list)


class StripeSubscription(StripeModel):
    """Subscription object, as delivered in lifecycle events or retrieved from the API."""
    id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    customer: Reference = None
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)
    status: Optional[str] = None
    created: Optional[UnixTimestamp] = None
    current_period_end: Optional[UnixTimestamp] = None

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        if item and item.price:
            return item.price.id
        return None

    @property
    def period_end(self) -> Optional[int]:
        # Newer API versions report the period on the subscription item
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None

    @property
    def customer_id(self) -> Optional[str]:
        return reference_id(self.customer)

    @property
    def metadata_user_id(self) -> Optional[str]:
        return _metadata_value(self.metadata, "userId")


class CheckoutSession(StripeModel):
    id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    subscription: Reference = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_intent: Reference = None
    customer: Reference = None
    customer_email: Optional[str] = None

    @property
    def subscription_id(self) -> Optional[str]:
        return reference_id(self.subscription)

    @property
    def payment_intent_id(self) -> Optional[str]:
        return reference_id(self.payment_intent)

    @property
    def metadata_user_id(self) -> Optional[str]:
        return _metadata_value(self.metadata, "userId")

    @property
    def program_id(self) -> Optional[str]:
        return _metadata_value(self.metadata, "programId")


class Invoice(StripeModel):
    id: Optional[str] = None
    subscription: Reference = None
    customer: Reference = None
    parent: Optional[Dict[str, Any]] = None

    @property
    def subscription_id(self) -> Optional[str]:
        # Newer API versions move the reference to parent.subscription_details
        subscription_id = reference_id(self.subscription)
        if subscription_id:
            return subscription_id
        details = (self.parent or {}).get("subscription_details") or {}
        return reference_id(details.get("subscription"))

    @property
    def customer_id(self) -> Optional[str]:
        return reference_id(self.customer)


class CheckoutSessionCompletedEvent(StripeModel):
    kind: Literal["checkout_completed"] = "checkout_completed"
    id: str
    type: str
    session: CheckoutSession


class SubscriptionLifecycleEvent(StripeModel):
    kind: Literal["subscription_lifecycle"] = "subscription_lifecycle"
    id: str
    type: str
    subscription: StripeSubscription


class InvoicePaymentFailedEvent(StripeModel):
    kind: Literal["invoice_payment_failed"] = "invoice_payment_failed"
    id: str
    type: str
    invoice: Invoice


class UnknownEvent(StripeModel):
    kind: Literal["unknown"] = "unknown"
    id: str
    type: str


ProcessorEvent = Union[
    CheckoutSessionCompletedEvent,
    SubscriptionLifecycleEvent,
    InvoicePaymentFailedEvent,
    UnknownEvent,
]


class SubscriptionSnapshot(StripeModel):
    """The five subscriber fields as seen by Stripe at one point in time."""
    subscription_id: str
    price_id: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_subscription(cls, subscription: StripeSubscription) -> "SubscriptionSnapshot":
        return cls(
            subscription_id=subscription.id,
            price_id=subscription.price_id,
            status=subscription.status,
            start_date=from_unix(subscription.created),
            end_date=from_unix(subscription.period_end),
        )


def _metadata_value(metadata: Dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key) if metadata else None
    if value is None or value == "":
        return None
    return str(value)


def parse_subscription(obj: Dict[str, Any]) -> StripeSubscription:
    """Validate a subscription object retrieved from the Stripe API."""
    try:
        return StripeSubscription.model_validate(obj)
    except ValidationError as e:
        raise EventParseError(f"Malformed subscription object: {e}") from e


def parse_checkout_session(obj: Dict[str, Any]) -> CheckoutSession:
    """Validate a checkout session retrieved from the Stripe API."""
    try:
        return CheckoutSession.model_validate(obj)
    except ValidationError as e:
        raise EventParseError(f"Malformed checkout session: {e}") from e


def parse_event(payload: Any) -> ProcessorEvent:
    """
    Parse a webhook body into one of the known event models.

    Args:
        payload: Decoded JSON body of a Stripe webhook delivery

    Returns:
        A CheckoutSessionCompletedEvent, SubscriptionLifecycleEvent,
        InvoicePaymentFailedEvent, or UnknownEvent

    Raises:
        EventParseError: If the envelope or the data object is malformed
    """
    if not isinstance(payload, dict):
        raise EventParseError("Event payload must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise EventParseError("Event payload missing id or type")

    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None

    try:
        if event_type == CHECKOUT_SESSION_COMPLETED:
            return CheckoutSessionCompletedEvent(
                id=event_id, type=event_type, session=_require_object(obj)
            )
        if event_type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            return SubscriptionLifecycleEvent(
                id=event_id, type=event_type, subscription=_require_object(obj)
            )
        if event_type == INVOICE_PAYMENT_FAILED:
            return InvoicePaymentFailedEvent(
                id=event_id, type=event_type, invoice=_require_object(obj)
            )
    except ValidationError as e:
        raise EventParseError(f"Malformed {event_type} event: {e}") from e

    return UnknownEvent(id=event_id, type=event_type)


def _require_object(obj: Any) -> Dict[str, Any]:
    if not isinstance(obj, dict):
        raise EventParseError("Event payload missing data.object")
    return obj
