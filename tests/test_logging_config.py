"""
Tests for logging setup and log sanitizing.
"""
import logging

import pytest

from fitpro.core.logging_config import REDACTED, resolve_log_level, sanitize_log_data, setup_logging


@pytest.mark.parametrize("name,expected", [
    ("DEBUG", logging.DEBUG),
    ("info", logging.INFO),
    ("warn", logging.WARNING),
    ("Error", logging.ERROR),
    ("silent", logging.CRITICAL + 10),
    ("loud", logging.INFO),
    ("", logging.INFO),
])
def test_resolve_log_level(name, expected):
    assert resolve_log_level(name) == expected


def test_sanitize_log_data_redacts_nested_secrets():
    data = {
        "secret_key": "abc",
        "stripe_price_id": "price_1",
        "nested": {"stripe_webhook_secret": "whsec", "email": "a@example.com"},
        "items": [{"password": "hunter22"}],
    }

    sanitized = sanitize_log_data(data)

    assert sanitized["secret_key"] == REDACTED
    assert sanitized["stripe_price_id"] == "price_1"
    assert sanitized["nested"] == {"stripe_webhook_secret": REDACTED, "email": "a@example.com"}
    assert sanitized["items"] == [{"password": REDACTED}]
    assert data["secret_key"] == "abc"


def test_setup_logging_writes_billing_log(settings):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(settings)
        setup_logging(settings)

        billing_logger = logging.getLogger("fitpro.services.subscription_service")
        assert len([h for h in billing_logger.handlers if h.get_name() == "fitpro-billing"]) == 1

        billing_logger.info("Subscription synced: user_id=1")
        for handler in root.handlers + billing_logger.handlers:
            handler.flush()

        log_dir = settings.log_dir
        with open(f"{log_dir}/billing.log", encoding="utf-8") as fh:
            assert "Subscription synced: user_id=1" in fh.read()
        with open(f"{log_dir}/fitpro.log", encoding="utf-8") as fh:
            assert "Subscription synced: user_id=1" in fh.read()
    finally:
        for name in ("fitpro.api.routes.billing_webhook", "fitpro.services.subscription_service",
                     "fitpro.services.stripe_gateway", "fitpro.services.audit_log"):
            target = logging.getLogger(name)
            for handler in target.handlers[:]:
                target.removeHandler(handler)
                handler.close()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        root.handlers.extend(saved_handlers)
        root.setLevel(saved_level)
