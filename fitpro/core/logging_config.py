"""
Logging configuration for FitPro API.

Console plus two rotating files under LOG_DIR: fitpro.log for everything and
billing.log for the webhook and reconciliation loggers, so a subscription's
history can be followed without the request noise. Secrets never reach
either file through sanitize_log_data().
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any

from fitpro.core.config import Settings

REDACTED = "***REDACTED***"

# LOG_LEVEL accepts the stdlib names plus these aliases
LEVEL_ALIASES = {
    "silent": logging.CRITICAL + 10,
    "warn": logging.WARNING,
}

BILLING_LOGGERS = (
    "fitpro.api.routes.billing_webhook",
    "fitpro.services.subscription_service",
    "fitpro.services.stripe_gateway",
    "fitpro.services.audit_log",
)

SENSITIVE_KEYS = (
    "password", "token", "secret", "key",
    "database_url", "authorization",
)

MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5


def resolve_log_level(name: str) -> int:
    """Map a LOG_LEVEL value to a logging level, defaulting to INFO."""
    name = (name or "").strip().lower()
    if name in LEVEL_ALIASES:
        return LEVEL_ALIASES[name]
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _rotating_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    return handler


def setup_logging(settings: Settings):
    """
    Configure application logging.

    Safe to call more than once; handlers installed by a previous call are
    replaced.

    Args:
        settings: Application settings (log level and log directory)
    """
    level = resolve_log_level(settings.log_level)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    root.addHandler(console_handler)
    root.addHandler(_rotating_handler(log_dir / "fitpro.log", level))

    billing_handler = _rotating_handler(log_dir / "billing.log", level)
    billing_handler.set_name("fitpro-billing")
    for name in BILLING_LOGGERS:
        billing_logger = logging.getLogger(name)
        for old in [h for h in billing_logger.handlers if h.get_name() == "fitpro-billing"]:
            billing_logger.removeHandler(old)
            old.close()
        billing_logger.addHandler(billing_handler)

    # Third-party libraries stay quiet unless something goes wrong
    for noisy in ("uvicorn", "uvicorn.access", "stripe", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


def sanitize_log_data(data: Any) -> Any:
    """
    Redact secrets from data before it is logged.

    Walks nested dicts and lists; any key containing one of SENSITIVE_KEYS
    has its value replaced.
    """
    if isinstance(data, dict):
        return {
            key: REDACTED if _is_sensitive(key) else sanitize_log_data(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [sanitize_log_data(item) for item in data]
    return data


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)
