"""API tests for the Razorpay webhook endpoint."""

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.webhook_event import WebhookEvent
from app.services.payment_gateway import get_payment_gateway
from tests.conftest import make_subscription, sign, webhook_body

URL = "/v1/webhooks/razorpay"


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_payment_gateway, None)


def post_webhook(client, body, event_id=None, signature=None):
    headers = {
        "Content-Type": "application/json",
        "X-Razorpay-Signature": signature if signature is not None else sign(body),
    }
    if event_id:
        headers["X-Razorpay-Event-Id"] = event_id
    return client.post(URL, content=body, headers=headers)


class TestRazorpayWebhookAPI:
    def test_activates_subscription(self, client: TestClient, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="AUTHENTICATED")
        body = webhook_body(
            "subscription.activated",
            {"id": "sub_test123", "paid_count": 1, "remaining_count": 119},
        )

        response = post_webhook(client, body, "evt_100")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "status": "processed",
            "event": "subscription.activated",
        }
        db_session.refresh(subscription)
        assert subscription.status == "ACTIVE"
        assert subscription.paid_count == 1

    def test_signature_checked_on_raw_bytes(self, client: TestClient, plans, db_session):
        make_subscription(db_session, plans["fitness_q"])
        body = webhook_body("subscription.activated", {"id": "sub_test123"})
        # Same JSON, different bytes
        reformatted = body.replace(b'": ', b'":')

        response = post_webhook(client, reformatted, signature=sign(body))

        assert response.status_code == 401
        assert response.json()["errorType"] == "INVALID_SIGNATURE"

    def test_missing_signature(self, client: TestClient):
        body = webhook_body("subscription.activated", {"id": "sub_test123"})
        response = client.post(URL, content=body)
        assert response.status_code == 400
        assert response.json()["errorType"] == "MISSING_SIGNATURE"

    def test_duplicate_event_id(self, client: TestClient, plans, db_session):
        make_subscription(db_session, plans["fitness_q"])
        body = webhook_body("subscription.authenticated", {"id": "sub_test123"})

        assert post_webhook(client, body, "evt_dup").json()["status"] == "processed"
        second = post_webhook(client, body, "evt_dup")

        assert second.status_code == 200
        assert second.json()["status"] == "duplicate"
        assert db_session.query(WebhookEvent).count() == 1

    def test_unknown_subscription_acknowledged(self, client: TestClient, plans):
        body = webhook_body("subscription.charged", {"id": "sub_unknown"})
        response = post_webhook(client, body)
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_empty_body(self, client: TestClient):
        response = client.post(URL, content=b"", headers={"X-Razorpay-Signature": "x"})
        assert response.status_code == 400
