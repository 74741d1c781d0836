"""Shared test fixtures for all test modules."""

import contextlib
import hashlib
import hmac
import json
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import jwt
import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import database as db_module
from app.core.config import settings
from app.core.database import Base, get_db
from app.models.user import User
from app.models.user_subscription import UserSubscription
from app.services.payment_gateway import GatewaySubscription, PaymentGatewayBase, RazorpayGateway
from app.services.plan_catalog import PlanCatalog

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known users present in every test
DEFAULT_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test_key_secret"
TEST_WEBHOOK_SECRET = "test_webhook_secret"


def _seed_default_users(session: Session) -> None:
    """Insert the users all tests can reference."""
    for user_id, email in (
        (DEFAULT_USER_ID, "client@example.com"),
        (OTHER_USER_ID, "other@example.com"),
    ):
        if session.query(User).filter(User.id == user_id).first() is None:
            session.add(User(id=user_id, email=email, name=email.split("@")[0]))
    session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    # Patch module-level engine and session factory
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    session = _TestSessionLocal()
    try:
        _seed_default_users(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    # Restore originals
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def plans(db_session):
    """Seed the default catalog and return the plans keyed by code."""
    PlanCatalog(db_session).seed_default_plans()
    return {plan.code: plan for plan in PlanCatalog(db_session).list_plans()}


@pytest.fixture
def gateway():
    """Gateway double: API calls are mocks, signatures use the real Razorpay scheme."""
    real = RazorpayGateway(
        key_id=TEST_KEY_ID,
        key_secret=TEST_KEY_SECRET,
        webhook_secret=TEST_WEBHOOK_SECRET,
        base_url="https://api.razorpay.test/v1",
    )
    mock = MagicMock(spec=PaymentGatewayBase)
    mock.provider_name = "razorpay"
    mock.public_key = TEST_KEY_ID
    mock.create_subscription.return_value = GatewaySubscription(
        id="sub_test123", status="created", short_url="https://rzp.io/i/test"
    )
    mock.cancel_subscription.return_value = GatewaySubscription(id="sub_test123")
    mock.update_subscription.return_value = GatewaySubscription(id="sub_test123")
    mock.verify_webhook_signature.side_effect = real.verify_webhook_signature
    mock.verify_payment_signature.side_effect = real.verify_payment_signature
    return mock


def sign(body: bytes, secret: str = TEST_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_body(
    event: str,
    subscription: dict[str, Any] | None = None,
    payment: dict[str, Any] | None = None,
) -> bytes:
    """Serialize a Razorpay-shaped webhook payload."""
    payload: dict[str, Any] = {}
    if subscription is not None:
        payload["subscription"] = {"entity": subscription}
    if payment is not None:
        payload["payment"] = {"entity": payment}
    return json.dumps(
        {"entity": "event", "event": event, "payload": payload, "created_at": 1767225600}
    ).encode()


def access_token(user_id: uuid.UUID = DEFAULT_USER_ID, expires_in: int = 3600) -> str:
    return jwt.encode(
        {
            "sub": str(user_id),
            "aud": settings.AUTH_JWT_AUDIENCE,
            "exp": datetime.now(UTC) + timedelta(seconds=expires_in),
        },
        settings.AUTH_JWT_SECRET,
        algorithm="HS256",
    )


def auth_headers(user_id: uuid.UUID = DEFAULT_USER_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token(user_id)}"}


def make_subscription(
    db: Session,
    plan: Any,
    user_id: uuid.UUID = DEFAULT_USER_ID,
    gateway_subscription_id: str = "sub_test123",
    **fields: Any,
):
    """Insert a subscription row directly, bypassing the gateway."""
    values: dict[str, Any] = {
        "status": "CREATED",
        "payment_status": "PENDING",
        "total_count": 120,
        "paid_count": 0,
        "remaining_count": 120,
        "start_date": datetime.now(UTC),
    }
    values.update(fields)
    subscription = UserSubscription(
        user_id=user_id,
        plan_id=plan.id,
        gateway_subscription_id=gateway_subscription_id,
        **values,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription
