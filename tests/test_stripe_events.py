"""
Tests for parsing Stripe webhook payloads into event models.
"""
import pytest

from conftest import DT0, DT1, T0, T1, make_event, make_subscription
from fitpro.core.errors import EventParseError
from fitpro.schemas.stripe_events import (
    CheckoutSessionCompletedEvent,
    InvoicePaymentFailedEvent,
    SubscriptionLifecycleEvent,
    SubscriptionSnapshot,
    UnknownEvent,
    StripeSubscription,
    from_unix,
    parse_event,
    parse_subscription,
    reference_id,
)


def test_parse_checkout_session_completed():
    event = parse_event(make_event("checkout.session.completed", {
        "id": "cs_1",
        "metadata": {"userId": "7", "programId": "prog_9"},
        "subscription": "sub_1",
        "amount_total": 4999,
        "currency": "usd",
        "payment_intent": {"id": "pi_1", "object": "payment_intent"},
    }))

    assert isinstance(event, CheckoutSessionCompletedEvent)
    assert event.session.metadata_user_id == "7"
    assert event.session.program_id == "prog_9"
    assert event.session.subscription_id == "sub_1"
    assert event.session.payment_intent_id == "pi_1"


def test_parse_checkout_session_with_expanded_subscription():
    event = parse_event(make_event("checkout.session.completed", {
        "id": "cs_1",
        "subscription": make_subscription("sub_expanded"),
    }))

    assert event.session.subscription_id == "sub_expanded"
    assert event.session.metadata_user_id is None


@pytest.mark.parametrize("event_type", ["customer.subscription.created", "customer.subscription.updated"])
def test_parse_subscription_lifecycle(event_type):
    event = parse_event(make_event(event_type, make_subscription(user_id=3)))

    assert isinstance(event, SubscriptionLifecycleEvent)
    assert event.type == event_type
    assert event.subscription.metadata_user_id == "3"
    assert event.subscription.price_id == "price_1"
    assert event.subscription.customer_id == "cus_1"


def test_parse_invoice_payment_failed():
    event = parse_event(make_event("invoice.payment_failed", {
        "id": "in_1",
        "subscription": "sub_1",
        "customer": "cus_1",
    }))

    assert isinstance(event, InvoicePaymentFailedEvent)
    assert event.invoice.subscription_id == "sub_1"
    assert event.invoice.customer_id == "cus_1"


def test_unknown_event_type_is_routed_to_unknown():
    event = parse_event(make_event("charge.refunded", {"id": "ch_1"}))
    assert isinstance(event, UnknownEvent)
    assert event.type == "charge.refunded"


@pytest.mark.parametrize("payload", [
    [],
    {"type": "checkout.session.completed"},
    {"id": "evt_1"},
    {"id": "evt_1", "type": "checkout.session.completed", "data": {}},
    {"id": "evt_1", "type": "customer.subscription.updated", "data": {"object": {"status": "active"}}},
])
def test_malformed_payloads_raise(payload):
    with pytest.raises(EventParseError):
        parse_event(payload)


def test_snapshot_from_subscription_converts_timestamps():
    subscription = StripeSubscription.model_validate(make_subscription(created=T0, current_period_end=T1))
    snapshot = SubscriptionSnapshot.from_subscription(subscription)

    assert snapshot.subscription_id == "sub_1"
    assert snapshot.price_id == "price_1"
    assert snapshot.status == "active"
    assert snapshot.start_date == DT0
    assert snapshot.end_date == DT1


def test_period_end_falls_back_to_subscription_item():
    obj = make_subscription(current_period_end=None)
    obj["items"]["data"][0]["current_period_end"] = T1
    subscription = StripeSubscription.model_validate(obj)

    assert subscription.period_end == T1


def test_subscription_without_items_has_no_price():
    obj = make_subscription()
    obj["items"] = {"data": []}
    subscription = StripeSubscription.model_validate(obj)

    assert subscription.price_id is None


def test_reference_and_timestamp_helpers():
    assert reference_id(None) is None
    assert reference_id("") is None
    assert reference_id("cus_1") == "cus_1"
    assert reference_id({"id": "cus_2"}) == "cus_2"
    assert from_unix(None) is None
    assert from_unix(T0) == DT0


def test_invoice_subscription_from_parent_details():
    event = parse_event(make_event("invoice.payment_failed", {
        "id": "in_1",
        "customer": "cus_1",
        "parent": {
            "type": "subscription_details",
            "subscription_details": {"subscription": "sub_9", "metadata": {}},
        },
    }))

    assert event.invoice.subscription_id == "sub_9"


def test_invoice_top_level_subscription_wins_over_parent():
    event = parse_event(make_event("invoice.payment_failed", {
        "id": "in_1",
        "subscription": "sub_1",
        "parent": {"subscription_details": {"subscription": "sub_9"}},
    }))

    assert event.invoice.subscription_id == "sub_1"


def test_invoice_without_subscription_reference():
    event = parse_event(make_event("invoice.payment_failed", {"id": "in_1", "parent": None}))
    assert event.invoice.subscription_id is None


@pytest.mark.parametrize("field,value", [
    ("created", -1),
    ("created", 10 ** 12),
    ("current_period_end", 10 ** 18),
])
def test_out_of_range_timestamps_are_parse_errors(field, value):
    subscription = make_subscription()
    subscription[field] = value

    with pytest.raises(EventParseError):
        parse_event(make_event("customer.subscription.updated", subscription))
    with pytest.raises(EventParseError):
        parse_subscription(subscription)


def test_out_of_range_item_period_end_is_a_parse_error():
    subscription = make_subscription(current_period_end=None)
    subscription["items"]["data"][0]["current_period_end"] = 10 ** 15

    with pytest.raises(EventParseError):
        parse_event(make_event("customer.subscription.updated", subscription))
