"""
Application configuration for FitPro API.

Settings are read from the process environment once, at startup, and then
handed to the pieces that need them (dependencies, gateway, audit log).
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    # ✅ Database
    database_url: str = "sqlite:///./fitpro.db"

    # ✅ Security
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # ✅ Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id: Optional[str] = None
    # Development only: accept webhook bodies whose signature cannot be verified
    allow_unsigned_webhooks: bool = False

    # ✅ Frontend / HTTP
    frontend_url: str = "http://localhost:3000"
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    # ✅ Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    audit_log_path: str = "logs/admin-actions.log"

    @property
    def stripe_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        log_dir = os.getenv("LOG_DIR", "logs")
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            secret_key=os.getenv("SECRET_KEY", cls.secret_key),
            algorithm=os.getenv("ALGORITHM", cls.algorithm),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET") or None,
            stripe_price_id=os.getenv("STRIPE_PRICE_ID") or None,
            allow_unsigned_webhooks=_env_bool("STRIPE_ALLOW_UNSIGNED_WEBHOOKS"),
            frontend_url=os.getenv("FRONTEND_URL", cls.frontend_url),
            cors_origins=_env_list("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            log_dir=log_dir,
            audit_log_path=os.getenv("ADMIN_AUDIT_LOG", str(Path(log_dir) / "admin-actions.log")),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    return Settings.from_env()
