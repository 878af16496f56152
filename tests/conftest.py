"""
Shared fixtures: in-memory SQLite database, test settings, fake Stripe gateway.
"""
import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fitpro.main import app
from fitpro.core.auth_dependency import get_db, get_stripe_gateway
from fitpro.core.config import Settings, get_settings
from fitpro.core.errors import UpstreamLookupError, WebhookVerificationError
from fitpro.core.security import create_access_token
from fitpro.db.base import Base
from fitpro.db.models.user import User, ROLE_ADMIN
from fitpro.services.audit_log import AdminAuditLog
from fitpro.services.stripe_gateway import StripeGateway


# Setup in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

# 2024-01-01T00:00:00Z, 2024-02-01T00:00:00Z, 2024-03-01T00:00:00Z
T0 = 1704067200
T1 = 1706745600
T2 = 1709251200
DT0 = datetime(2024, 1, 1)
DT1 = datetime(2024, 2, 1)
DT2 = datetime(2024, 3, 1)

VALID_SIGNATURE = "t=1,v1=valid"


def make_subscription(
    subscription_id="sub_1",
    price_id="price_1",
    status="active",
    created=T0,
    current_period_end=T1,
    user_id=None,
    customer="cus_1",
):
    """Build a Stripe subscription object as the API returns it."""
    metadata = {"userId": str(user_id)} if user_id is not None else {}
    return {
        "id": subscription_id,
        "object": "subscription",
        "metadata": metadata,
        "customer": customer,
        "items": {"object": "list", "data": [{"id": "si_1", "price": {"id": price_id}}]},
        "status": status,
        "created": created,
        "current_period_end": current_period_end,
    }


def make_event(event_type, obj, event_id="evt_1"):
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


class FakeStripeGateway(StripeGateway):
    """In-memory stand-in for the Stripe API."""

    def __init__(self, settings):
        super().__init__(settings)
        self.subscriptions = {}
        self.customers = {}
        self.checkout_sessions = {}
        self.created_sessions = []
        self.calls = []
        self.fail_with = None
        self.price = "$29.00"
        self.price_id = "price_monthly"

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", subscription_id))
        self._maybe_fail()
        if subscription_id not in self.subscriptions:
            raise UpstreamLookupError(f"No such subscription: '{subscription_id}'")
        return self.subscriptions[subscription_id]

    def retrieve_customer_email(self, customer_id):
        self.calls.append(("retrieve_customer_email", customer_id))
        self._maybe_fail()
        if customer_id not in self.customers:
            raise UpstreamLookupError(f"No such customer: '{customer_id}'")
        return self.customers[customer_id]

    def retrieve_checkout_session(self, session_id):
        self.calls.append(("retrieve_checkout_session", session_id))
        self._maybe_fail()
        if session_id not in self.checkout_sessions:
            raise UpstreamLookupError(f"No such checkout.session: '{session_id}'")
        return self.checkout_sessions[session_id]

    def create_checkout_session(self, user_id, user_email, price_id, success_url=None, cancel_url=None):
        self.calls.append(("create_checkout_session", user_id))
        self._maybe_fail()
        session = {"id": f"cs_test_{len(self.created_sessions) + 1}", "url": "https://checkout.stripe.com/c/pay/cs_test"}
        self.created_sessions.append({
            "user_id": user_id,
            "user_email": user_email,
            "price_id": price_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
        })
        return session

    def get_default_price_id(self):
        self._maybe_fail()
        return self.price_id

    def get_subscription_price(self):
        self._maybe_fail()
        return self.price

    def verify_webhook(self, payload, signature):
        if signature != VALID_SIGNATURE:
            raise WebhookVerificationError("Invalid signature: No signatures found matching the expected signature")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=TEST_DATABASE_URL,
        secret_key="test-secret-key",
        stripe_secret_key="sk_test_fake",
        stripe_webhook_secret="whsec_test",
        log_dir=str(tmp_path / "logs"),
        audit_log_path=str(tmp_path / "logs" / "admin-actions.log"),
    )


@pytest.fixture
def gateway(settings):
    return FakeStripeGateway(settings)


@pytest.fixture
def audit_log(settings):
    return AdminAuditLog(settings.audit_log_path)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db, settings, gateway):
    """Test client wired to the test database, settings and fake gateway."""
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def member(db):
    """A member with no subscription."""
    user = User(full_name="Test Member", email="member@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db):
    user = User(full_name="Test Admin", email="admin@example.com", role=ROLE_ADMIN)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user, settings):
    token = create_access_token({"sub": user.email}, settings)
    return {"Authorization": f"Bearer {token}"}
