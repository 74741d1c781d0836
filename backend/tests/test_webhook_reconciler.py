"""Tests for webhook verification, de-duplication and reconciliation."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from app.models.webhook_event import WebhookEvent
from app.repositories.subscription_event_repository import SubscriptionEventRepository
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.services.webhook_reconciler import GatewayEventType, WebhookReconciler
from tests.conftest import make_subscription, sign, webhook_body

JAN_1 = 1767225600  # 2026-01-01T00:00:00Z
APR_1 = 1775001600  # 2026-04-01T00:00:00Z
JUL_1 = 1782864000  # 2026-07-01T00:00:00Z


def _utc(value):
    return value.replace(tzinfo=UTC) if value is not None and value.tzinfo is None else value


@pytest.fixture
def reconciler(db_session, gateway):
    return WebhookReconciler(db_session, gateway)


def deliver(reconciler, body, webhook_id=None, signature=None):
    return reconciler.process(body, signature or sign(body), webhook_id)


def subscription_entity(**fields):
    entity = {"id": "sub_test123", "entity": "subscription"}
    entity.update(fields)
    return entity


class TestRejections:
    def test_empty_body(self, reconciler):
        outcome = reconciler.process(b"", "sig")
        assert outcome.status_code == 400
        assert outcome.body["error"] == "Empty payload"

    def test_invalid_json(self, reconciler):
        body = b"{not json"
        outcome = reconciler.process(body, sign(body))
        assert outcome.status_code == 400
        assert outcome.body["errorType"] == "INVALID_PAYLOAD"

    def test_json_array(self, reconciler):
        body = b"[1, 2]"
        assert reconciler.process(body, sign(body)).status_code == 400

    def test_missing_signature(self, reconciler):
        body = webhook_body("subscription.activated", subscription_entity())
        outcome = reconciler.process(body, None)
        assert outcome.status_code == 400
        assert outcome.body["errorType"] == "MISSING_SIGNATURE"

    def test_tampered_body(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"])
        body = webhook_body("subscription.activated", subscription_entity())
        signature = sign(body)
        tampered = body.replace(b"sub_test123", b"sub_test124")

        outcome = reconciler.process(tampered, signature, "evt_1")

        assert outcome.status_code == 401
        assert outcome.body["errorType"] == "INVALID_SIGNATURE"
        db_session.refresh(subscription)
        assert subscription.status == "CREATED"
        assert db_session.query(WebhookEvent).count() == 0

    def test_missing_event_type(self, reconciler):
        body = b'{"payload": {}}'
        outcome = reconciler.process(body, sign(body))
        assert outcome.status_code == 400
        assert outcome.body["error"] == "Missing event type"

    def test_subscription_event_without_entity(self, reconciler):
        body = webhook_body("subscription.charged")
        outcome = deliver(reconciler, body)
        assert outcome.status_code == 400
        assert outcome.body["error"] == "Missing subscription data"


class TestDispatch:
    def test_every_event_type_has_a_handler(self, reconciler):
        assert set(reconciler.handlers) == set(GatewayEventType)

    def test_unknown_event_is_ignored(self, reconciler, db_session):
        body = webhook_body("invoice.paid")
        outcome = deliver(reconciler, body, "evt_unknown")

        assert outcome.status_code == 200
        assert outcome.body["status"] == "ignored"
        assert db_session.query(WebhookEvent).one().status == "success"

    def test_unknown_subscription_is_ignored(self, reconciler, plans, db_session):
        body = webhook_body("subscription.activated", subscription_entity(id="sub_elsewhere"))
        outcome = deliver(reconciler, body)

        assert outcome.status_code == 200
        assert outcome.body["status"] == "ignored"

    def test_duplicate_delivery_is_skipped(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"])
        body = webhook_body("subscription.authenticated", subscription_entity())

        first = deliver(reconciler, body, "evt_1")
        second = deliver(reconciler, body, "evt_1")

        assert first.body["status"] == "processed"
        assert second.status_code == 200
        assert second.body["status"] == "duplicate"
        events = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)
        assert len(events) == 1

    def test_processing_error_returns_500_and_marks_failed(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"])
        reconciler.handlers[GatewayEventType.SUBSCRIPTION_ACTIVATED] = MagicMock(
            side_effect=RuntimeError("boom")
        )
        body = webhook_body("subscription.activated", subscription_entity())

        outcome = deliver(reconciler, body, "evt_fail")

        assert outcome.status_code == 500
        assert outcome.body["errorType"] == "PROCESSING_ERROR"
        row = db_session.query(WebhookEvent).one()
        assert row.status == "failed"
        assert row.error == "boom"
        db_session.refresh(subscription)
        assert subscription.status == "CREATED"

    def test_failure_never_overwrites_committed_success(self, db_session):
        db_session.add(
            WebhookEvent(
                webhook_id="evt_race",
                event_type="subscription.charged",
                payload={},
                status="success",
            )
        )
        db_session.commit()

        WebhookEventRepository(db_session).mark_failed(
            "evt_race", "subscription.charged", {}, "UNIQUE constraint failed"
        )

        row = db_session.query(WebhookEvent).one()
        assert row.status == "success"
        assert row.error is None

    def test_failed_delivery_can_be_retried(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"])
        original = reconciler.handlers[GatewayEventType.SUBSCRIPTION_AUTHENTICATED]
        reconciler.handlers[GatewayEventType.SUBSCRIPTION_AUTHENTICATED] = MagicMock(
            side_effect=RuntimeError("boom")
        )
        body = webhook_body("subscription.authenticated", subscription_entity())
        assert deliver(reconciler, body, "evt_retry").status_code == 500

        reconciler.handlers[GatewayEventType.SUBSCRIPTION_AUTHENTICATED] = original
        outcome = deliver(reconciler, body, "evt_retry")

        assert outcome.body["status"] == "processed"
        assert db_session.query(WebhookEvent).one().status == "success"
        db_session.refresh(subscription)
        assert subscription.status == "AUTHENTICATED"


class TestHandlers:
    def test_authenticated(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"])
        deliver(reconciler, webhook_body("subscription.authenticated", subscription_entity()))

        db_session.refresh(subscription)
        assert subscription.status == "AUTHENTICATED"
        assert subscription.payment_status == "PENDING"

    def test_late_authenticated_does_not_downgrade(self, reconciler, plans, db_session):
        subscription = make_subscription(
            db_session, plans["fitness_q"], status="ACTIVE", payment_status="PAID"
        )
        outcome = deliver(
            reconciler, webhook_body("subscription.authenticated", subscription_entity())
        )

        assert outcome.body["status"] == "processed"
        db_session.refresh(subscription)
        assert subscription.status == "ACTIVE"
        assert subscription.payment_status == "PAID"

    def test_activated_sets_cycle_and_counters(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="AUTHENTICATED")
        body = webhook_body(
            "subscription.activated",
            subscription_entity(
                current_start=JAN_1,
                current_end=APR_1,
                charge_at=APR_1,
                total_count=120,
                paid_count=1,
                remaining_count=119,
            ),
        )
        deliver(reconciler, body)

        db_session.refresh(subscription)
        assert subscription.status == "ACTIVE"
        assert subscription.payment_status == "PAID"
        assert _utc(subscription.current_start) == datetime(2026, 1, 1, tzinfo=UTC)
        assert _utc(subscription.current_end) == datetime(2026, 4, 1, tzinfo=UTC)
        assert _utc(subscription.next_charge_at) == datetime(2026, 4, 1, tzinfo=UTC)
        assert subscription.paid_count == 1
        assert subscription.remaining_count == 119

    def test_charged_counters_are_absolute(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="ACTIVE")
        body = webhook_body(
            "subscription.charged",
            subscription_entity(paid_count=3, remaining_count=117, current_start=APR_1, current_end=JUL_1),
            payment={"id": "pay_1", "amount": 21000},
        )

        deliver(reconciler, body)
        deliver(reconciler, body)

        db_session.refresh(subscription)
        assert subscription.paid_count == 3
        assert subscription.remaining_count == 117

    def test_charged_recovers_from_pending(self, reconciler, plans, db_session):
        subscription = make_subscription(
            db_session,
            plans["fitness_q"],
            status="PENDING",
            payment_status="FAILED",
            retry_attempts=2,
        )
        body = webhook_body(
            "subscription.charged",
            subscription_entity(paid_count=2),
            payment={"id": "pay_2", "amount": 21000},
        )
        deliver(reconciler, body)

        db_session.refresh(subscription)
        assert subscription.status == "ACTIVE"
        assert subscription.payment_status == "PAID"
        assert subscription.retry_attempts == 0
        event = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)[0]
        assert event.event_type == "subscription.charged"
        assert event.metadata_["recovery"] is True
        assert event.metadata_["gateway_payment_id"] == "pay_2"

    def test_older_cycle_does_not_overwrite(self, reconciler, plans, db_session):
        subscription = make_subscription(
            db_session,
            plans["fitness_q"],
            status="ACTIVE",
            current_start=datetime(2026, 4, 1, tzinfo=UTC),
            current_end=datetime(2026, 7, 1, tzinfo=UTC),
        )
        body = webhook_body(
            "subscription.charged",
            subscription_entity(current_start=JAN_1, current_end=APR_1),
            payment={"id": "pay_old"},
        )
        deliver(reconciler, body)

        db_session.refresh(subscription)
        assert _utc(subscription.current_start) == datetime(2026, 4, 1, tzinfo=UTC)
        assert _utc(subscription.current_end) == datetime(2026, 7, 1, tzinfo=UTC)

    def test_pending_records_retry_attempts(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="ACTIVE")
        deliver(
            reconciler, webhook_body("subscription.pending", subscription_entity(auth_attempts=2))
        )

        db_session.refresh(subscription)
        assert subscription.status == "PENDING"
        assert subscription.payment_status == "FAILED"
        assert subscription.retry_attempts == 2

    def test_halted_after_pending(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="PENDING")
        deliver(reconciler, webhook_body("subscription.halted", subscription_entity()))

        db_session.refresh(subscription)
        assert subscription.status == "HALTED"

    def test_paused_then_resumed(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="ACTIVE")

        deliver(reconciler, webhook_body("subscription.paused", subscription_entity(paused_at=JAN_1)))
        db_session.refresh(subscription)
        assert subscription.status == "PAUSED"

        deliver(reconciler, webhook_body("subscription.resumed", subscription_entity()))
        db_session.refresh(subscription)
        assert subscription.status == "ACTIVE"

    def test_cancelled_after_cycle_end_request(self, reconciler, plans, db_session):
        subscription = make_subscription(
            db_session,
            plans["fitness_q"],
            status="ACTIVE",
            cancel_at_cycle_end=True,
            cancel_requested_at=datetime(2026, 2, 1, tzinfo=UTC),
            current_end=datetime(2026, 4, 1, tzinfo=UTC),
        )
        deliver(
            reconciler,
            webhook_body("subscription.cancelled", subscription_entity(ended_at=APR_1)),
        )

        db_session.refresh(subscription)
        assert subscription.status == "CANCELLED"
        assert subscription.cancel_at_cycle_end is False
        assert subscription.cancel_requested_at is None
        assert _utc(subscription.end_date) == datetime(2026, 4, 1, tzinfo=UTC)
        event = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)[0]
        assert event.metadata_["user_requested"] is True
        assert event.metadata_["cancellation_type"] == "end_of_cycle"

    def test_cancelled_by_gateway(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="HALTED")
        deliver(reconciler, webhook_body("subscription.cancelled", subscription_entity()))

        db_session.refresh(subscription)
        assert subscription.status == "CANCELLED"
        assert subscription.end_date is not None
        event = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)[0]
        assert event.metadata_["user_requested"] is False
        assert event.metadata_["cancellation_type"] == "immediate"

    def test_terminal_status_is_sticky(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="CANCELLED")
        deliver(reconciler, webhook_body("subscription.activated", subscription_entity()))

        db_session.refresh(subscription)
        assert subscription.status == "CANCELLED"

    @pytest.mark.parametrize("event", ["subscription.activated", "subscription.charged"])
    def test_late_success_keeps_failed_payment_of_cancelled(
        self, reconciler, plans, db_session, event
    ):
        subscription = make_subscription(
            db_session, plans["fitness_q"], status="CANCELLED", payment_status="FAILED"
        )
        deliver(
            reconciler,
            webhook_body(event, subscription_entity(paid_count=1), payment={"id": "pay_late"}),
        )

        db_session.refresh(subscription)
        assert subscription.status == "CANCELLED"
        assert subscription.payment_status == "FAILED"

    @pytest.mark.parametrize(
        "event,expected",
        [("subscription.completed", "COMPLETED"), ("subscription.expired", "EXPIRED")],
    )
    def test_ended(self, reconciler, plans, db_session, event, expected):
        subscription = make_subscription(
            db_session,
            plans["fitness_q"],
            status="ACTIVE",
            next_charge_at=datetime(2026, 7, 1, tzinfo=UTC),
        )
        deliver(
            reconciler,
            webhook_body(event, subscription_entity(ended_at=JUL_1, remaining_count=0)),
        )

        db_session.refresh(subscription)
        assert subscription.status == expected
        assert subscription.next_charge_at is None
        assert subscription.remaining_count == 0
        assert _utc(subscription.end_date) == datetime(2026, 7, 1, tzinfo=UTC)

    def test_updated_takes_gateway_values(self, reconciler, plans, db_session):
        subscription = make_subscription(
            db_session,
            plans["fitness_a"],
            status="ACTIVE",
            paid_count=10,
            remaining_count=110,
            current_start=datetime(2026, 4, 1, tzinfo=UTC),
        )
        body = webhook_body(
            "subscription.updated",
            subscription_entity(
                plan_id=plans["fitness_a"].gateway_plan_id,
                total_count=30,
                paid_count=10,
                remaining_count=20,
                current_start=JAN_1,
                current_end=APR_1,
            ),
        )
        deliver(reconciler, body)

        db_session.refresh(subscription)
        assert subscription.total_count == 30
        assert subscription.remaining_count == 20
        assert _utc(subscription.current_start) == datetime(2026, 1, 1, tzinfo=UTC)
        event = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)[0]
        assert event.metadata_["gateway_plan_id"] == plans["fitness_a"].gateway_plan_id

    def test_payment_failed_matches_by_payment_entity(self, reconciler, plans, db_session):
        subscription = make_subscription(db_session, plans["fitness_q"], status="AUTHENTICATED")
        body = webhook_body(
            "payment.failed",
            payment={
                "id": "pay_9",
                "subscription_id": "sub_test123",
                "error_code": "BAD_REQUEST_ERROR",
                "error_description": "Card declined",
            },
        )
        outcome = deliver(reconciler, body)

        assert outcome.body["status"] == "processed"
        db_session.refresh(subscription)
        assert subscription.payment_status == "FAILED"
        assert subscription.status == "AUTHENTICATED"
        event = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)[0]
        assert event.event_type == "payment_failed"
        assert event.metadata_["error_description"] == "Card declined"


def _snapshot(subscription):
    return (
        subscription.status,
        subscription.payment_status,
        subscription.paid_count,
        subscription.remaining_count,
        subscription.retry_attempts,
    )


class TestIdempotence:
    @pytest.mark.parametrize("event", list(GatewayEventType), ids=lambda e: e.value)
    def test_redelivery_converges(self, reconciler, plans, db_session, event):
        subscription = make_subscription(db_session, plans["fitness_q"], status="ACTIVE")
        body = webhook_body(
            event.value,
            subscription_entity(
                paid_count=4,
                remaining_count=116,
                current_start=APR_1,
                current_end=JUL_1,
                ended_at=JUL_1,
            ),
            payment={"id": "pay_x", "subscription_id": "sub_test123"},
        )

        assert deliver(reconciler, body, "evt_a").body["status"] == "processed"
        db_session.refresh(subscription)
        first = _snapshot(subscription)

        assert deliver(reconciler, body, "evt_b").body["status"] == "processed"
        db_session.refresh(subscription)
        second = _snapshot(subscription)

        assert first == second

    @pytest.mark.parametrize("event", list(GatewayEventType), ids=lambda e: e.value)
    def test_same_event_id_applied_once(self, reconciler, plans, db_session, event):
        subscription = make_subscription(db_session, plans["fitness_q"], status="ACTIVE")
        body = webhook_body(
            event.value,
            subscription_entity(paid_count=4, remaining_count=116),
            payment={"id": "pay_x", "subscription_id": "sub_test123"},
        )

        deliver(reconciler, body, "evt_once")
        deliver(reconciler, body, "evt_once")

        events = SubscriptionEventRepository(db_session).get_by_subscription(subscription.id)
        assert len(events) == 1
