"""Reconciles local subscriptions with Razorpay webhook events.

The gateway is the source of truth for billing progress. Each delivery is
verified against the raw request body, de-duplicated by its event id and then
applied to the matching ``UserSubscription``. Status changes go through the
precedence rules in ``subscription_status`` so out-of-order deliveries cannot
move a subscription backwards; counters are copied as-is from the gateway.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.core.database import run_with_optimistic_retry
from app.models.shared import as_utc, from_unix, utc_now
from app.models.user_subscription import PaymentStatus, SubscriptionStatus, UserSubscription
from app.repositories.subscription_event_repository import SubscriptionEventRepository
from app.repositories.user_subscription_repository import UserSubscriptionRepository
from app.repositories.webhook_event_repository import WebhookEventRepository
from app.services.payment_gateway import PaymentGatewayBase
from app.services.subscription_status import is_recovery, resolve_status, safe_billing_cycle_update

logger = logging.getLogger(__name__)


class GatewayEventType(str, Enum):
    SUBSCRIPTION_AUTHENTICATED = "subscription.authenticated"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CHARGED = "subscription.charged"
    SUBSCRIPTION_PENDING = "subscription.pending"
    SUBSCRIPTION_HALTED = "subscription.halted"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_COMPLETED = "subscription.completed"
    SUBSCRIPTION_EXPIRED = "subscription.expired"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    PAYMENT_FAILED = "payment.failed"


@dataclass
class WebhookOutcome:
    """HTTP status and JSON body to answer the gateway with."""

    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[UserSubscription, dict[str, Any], dict[str, Any]], dict[str, Any]]


def _entity(payload: dict[str, Any], name: str) -> dict[str, Any]:
    """Return ``payload.payload.<name>.entity`` or an empty dict."""
    container = payload.get("payload")
    if not isinstance(container, dict):
        return {}
    wrapper = container.get(name)
    if not isinstance(wrapper, dict):
        return {}
    entity = wrapper.get("entity")
    return entity if isinstance(entity, dict) else {}


def _counter_fields(entity: dict[str, Any]) -> dict[str, Any]:
    return {
        key: entity[key]
        for key in ("total_count", "paid_count", "remaining_count")
        if entity.get(key) is not None
    }


def _next_charge_fields(entity: dict[str, Any]) -> dict[str, Any]:
    if "charge_at" not in entity:
        return {}
    return {"next_charge_at": from_unix(entity.get("charge_at"))}


def _cycle_fields(subscription: UserSubscription, entity: dict[str, Any]) -> dict[str, Any]:
    return safe_billing_cycle_update(
        as_utc(subscription.current_start),
        as_utc(subscription.current_end),
        from_unix(entity.get("current_start")),
        from_unix(entity.get("current_end")),
    )


class WebhookReconciler:
    def __init__(self, db: Session, gateway: PaymentGatewayBase):
        self.db = db
        self.gateway = gateway
        self.subscription_repo = UserSubscriptionRepository(db)
        self.event_repo = SubscriptionEventRepository(db)
        self.webhook_repo = WebhookEventRepository(db)
        self.handlers: dict[GatewayEventType, EventHandler] = {
            GatewayEventType.SUBSCRIPTION_AUTHENTICATED: self._on_authenticated,
            GatewayEventType.SUBSCRIPTION_ACTIVATED: self._on_activated,
            GatewayEventType.SUBSCRIPTION_CHARGED: self._on_charged,
            GatewayEventType.SUBSCRIPTION_PENDING: self._on_pending,
            GatewayEventType.SUBSCRIPTION_HALTED: self._on_halted,
            GatewayEventType.SUBSCRIPTION_PAUSED: self._on_paused,
            GatewayEventType.SUBSCRIPTION_RESUMED: self._on_resumed,
            GatewayEventType.SUBSCRIPTION_CANCELLED: self._on_cancelled,
            GatewayEventType.SUBSCRIPTION_COMPLETED: self._on_completed,
            GatewayEventType.SUBSCRIPTION_EXPIRED: self._on_expired,
            GatewayEventType.SUBSCRIPTION_UPDATED: self._on_updated,
            GatewayEventType.PAYMENT_FAILED: self._on_payment_failed,
        }

    def process(
        self,
        raw_body: bytes,
        signature: str | None,
        webhook_id: str | None = None,
    ) -> WebhookOutcome:
        """Verify, de-duplicate and apply one webhook delivery."""
        if not raw_body or not raw_body.strip():
            logger.warning("Rejected webhook with empty body")
            return WebhookOutcome(400, {"error": "Empty payload", "errorType": "INVALID_PAYLOAD"})

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            logger.warning("Rejected webhook with invalid JSON: %r", raw_body[:200])
            return WebhookOutcome(
                400, {"error": "Invalid JSON payload", "errorType": "INVALID_PAYLOAD"}
            )
        if not isinstance(payload, dict):
            return WebhookOutcome(
                400, {"error": "Invalid JSON payload", "errorType": "INVALID_PAYLOAD"}
            )

        if not signature:
            logger.warning("Rejected webhook without signature header")
            return WebhookOutcome(
                400, {"error": "Missing signature header", "errorType": "MISSING_SIGNATURE"}
            )

        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Rejected webhook with invalid signature (event id %s)", webhook_id)
            return WebhookOutcome(
                401, {"error": "Invalid signature", "errorType": "INVALID_SIGNATURE"}
            )

        event_type = payload.get("event")
        if not event_type or not isinstance(event_type, str):
            return WebhookOutcome(
                400, {"error": "Missing event type", "errorType": "INVALID_PAYLOAD"}
            )

        if webhook_id and self.webhook_repo.is_processed(webhook_id):
            logger.info("Webhook %s (%s) already processed", webhook_id, event_type)
            return WebhookOutcome(
                200, {"success": True, "status": "duplicate", "message": "Already processed"}
            )

        if event_type.startswith("subscription.") and not _entity(payload, "subscription").get(
            "id"
        ):
            return WebhookOutcome(
                400, {"error": "Missing subscription data", "errorType": "INVALID_PAYLOAD"}
            )

        try:
            status = run_with_optimistic_retry(
                self.db, lambda: self._apply(payload, event_type, webhook_id)
            )
        except Exception as exc:
            self.db.rollback()
            logger.exception("Failed to process webhook %s (%s)", webhook_id, event_type)
            if webhook_id:
                self.webhook_repo.mark_failed(webhook_id, event_type, payload, str(exc)[:1000])
            return WebhookOutcome(
                500, {"error": "Webhook processing failed", "errorType": "PROCESSING_ERROR"}
            )

        return WebhookOutcome(200, {"success": True, "status": status, "event": event_type})

    def _apply(self, payload: dict[str, Any], event_type: str, webhook_id: str | None) -> str:
        if webhook_id:
            self.webhook_repo.start(webhook_id, event_type, payload)

        status = self._dispatch(payload, event_type)

        if webhook_id:
            self.webhook_repo.mark_success(webhook_id)
        return status

    def _dispatch(self, payload: dict[str, Any], event_type: str) -> str:
        try:
            kind = GatewayEventType(event_type)
        except ValueError:
            logger.info("Ignoring unhandled webhook event %s", event_type)
            return "ignored"

        subscription_entity = _entity(payload, "subscription")
        payment_entity = _entity(payload, "payment")
        gateway_id = subscription_entity.get("id") or payment_entity.get("subscription_id")
        subscription = (
            self.subscription_repo.get_by_gateway_id(gateway_id) if gateway_id else None
        )
        if subscription is None:
            # May belong to another system sharing the gateway account
            logger.warning("No subscription for %s event (gateway id %s)", event_type, gateway_id)
            return "ignored"

        metadata = self.handlers[kind](subscription, subscription_entity, payment_entity)
        metadata.setdefault("gateway_subscription_id", gateway_id)
        self.event_repo.create(
            event_type="payment_failed" if kind == GatewayEventType.PAYMENT_FAILED else kind.value,
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            metadata=metadata,
        )
        return "processed"

    def _update(
        self,
        subscription: UserSubscription,
        target: SubscriptionStatus | None,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply ``fields`` plus the precedence-checked ``target`` status."""
        previous = subscription.status
        if target is not None:
            fields["status"] = resolve_status(previous, target)
        self.subscription_repo.apply(subscription, fields)
        if subscription.status != previous:
            logger.info(
                "Subscription %s status %s -> %s", subscription.id, previous, subscription.status
            )
        return {"previous_status": previous, "status": subscription.status}

    def _paid_if_active(self, subscription: UserSubscription) -> dict[str, Any]:
        # A late success for a finished subscription must not overwrite its FAILED
        resolved = resolve_status(subscription.status, SubscriptionStatus.ACTIVE)
        if resolved != SubscriptionStatus.ACTIVE:
            return {}
        return {"payment_status": PaymentStatus.PAID}

    def _payment_failed_unless_paid(self, subscription: UserSubscription) -> dict[str, Any]:
        if subscription.payment_status == PaymentStatus.PAID.value:
            return {}
        return {"payment_status": PaymentStatus.FAILED}

    def _on_authenticated(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if subscription.payment_status != PaymentStatus.PAID.value:
            fields["payment_status"] = PaymentStatus.PENDING
        return self._update(subscription, SubscriptionStatus.AUTHENTICATED, fields)

    def _on_activated(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        fields = self._paid_if_active(subscription)
        fields.update(_cycle_fields(subscription, entity))
        fields.update(_next_charge_fields(entity))
        fields.update(_counter_fields(entity))
        if is_recovery(subscription.status, SubscriptionStatus.ACTIVE):
            fields["retry_attempts"] = 0
        return self._update(subscription, SubscriptionStatus.ACTIVE, fields)

    def _on_charged(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        recovered = is_recovery(subscription.status, SubscriptionStatus.ACTIVE)
        fields = self._paid_if_active(subscription)
        fields["retry_attempts"] = 0
        fields.update(_cycle_fields(subscription, entity))
        fields.update(_next_charge_fields(entity))
        fields.update(_counter_fields(entity))
        metadata = self._update(subscription, SubscriptionStatus.ACTIVE, fields)
        metadata.update(
            {
                "gateway_payment_id": payment.get("id"),
                "amount": payment.get("amount"),
                "paid_count": subscription.paid_count,
                "remaining_count": subscription.remaining_count,
                "recovery": recovered,
            }
        )
        return metadata

    def _on_pending(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        fields = self._payment_failed_unless_paid(subscription)
        if entity.get("auth_attempts") is not None:
            fields["retry_attempts"] = entity["auth_attempts"]
        fields.update(_cycle_fields(subscription, entity))
        fields.update(_next_charge_fields(entity))
        fields.update(_counter_fields(entity))
        metadata = self._update(subscription, SubscriptionStatus.PENDING, fields)
        metadata["retry_attempts"] = subscription.retry_attempts
        return metadata

    def _on_halted(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        fields = self._payment_failed_unless_paid(subscription)
        if entity.get("auth_attempts") is not None:
            fields["retry_attempts"] = entity["auth_attempts"]
        fields.update(_counter_fields(entity))
        return self._update(subscription, SubscriptionStatus.HALTED, fields)

    def _on_paused(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        metadata = self._update(subscription, SubscriptionStatus.PAUSED, {})
        metadata["paused_at"] = entity.get("paused_at")
        return metadata

    def _on_resumed(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {"retry_attempts": 0}
        fields.update(_cycle_fields(subscription, entity))
        fields.update(_next_charge_fields(entity))
        return self._update(subscription, SubscriptionStatus.ACTIVE, fields)

    def _on_cancelled(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        user_requested = subscription.cancel_requested_at is not None
        cancellation_type = "end_of_cycle" if subscription.cancel_at_cycle_end else "immediate"
        end_date = (
            from_unix(entity.get("ended_at")) or as_utc(subscription.current_end) or utc_now()
        )
        fields: dict[str, Any] = {
            "end_date": end_date,
            "cancel_requested_at": None,
            "cancel_at_cycle_end": False,
            "next_charge_at": None,
        }
        fields.update(_counter_fields(entity))
        metadata = self._update(subscription, SubscriptionStatus.CANCELLED, fields)
        metadata.update(
            {
                "user_requested": user_requested,
                "cancellation_type": cancellation_type,
                "ended_at": end_date.isoformat(),
            }
        )
        return metadata

    def _ended(
        self,
        subscription: UserSubscription,
        entity: dict[str, Any],
        target: SubscriptionStatus,
    ) -> dict[str, Any]:
        fields: dict[str, Any] = {"next_charge_at": None}
        ended_at = from_unix(entity.get("ended_at"))
        if ended_at is not None:
            fields["end_date"] = ended_at
        fields.update(_counter_fields(entity))
        return self._update(subscription, target, fields)

    def _on_completed(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        return self._ended(subscription, entity, SubscriptionStatus.COMPLETED)

    def _on_expired(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        return self._ended(subscription, entity, SubscriptionStatus.EXPIRED)

    def _on_updated(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        """The gateway's view after a plan change wins outright, dates included."""
        fields: dict[str, Any] = {}
        for column, key in (
            ("start_date", "start_at"),
            ("end_date", "end_at"),
            ("current_start", "current_start"),
            ("current_end", "current_end"),
        ):
            if entity.get(key):
                fields[column] = from_unix(entity[key])
        fields.update(_next_charge_fields(entity))
        fields.update(_counter_fields(entity))
        metadata = self._update(subscription, SubscriptionStatus.ACTIVE, fields)
        metadata["gateway_plan_id"] = entity.get("plan_id")
        return metadata

    def _on_payment_failed(
        self, subscription: UserSubscription, entity: dict[str, Any], payment: dict[str, Any]
    ) -> dict[str, Any]:
        metadata = self._update(subscription, None, {"payment_status": PaymentStatus.FAILED})
        metadata.update(
            {
                "gateway_payment_id": payment.get("id"),
                "error_code": payment.get("error_code"),
                "error_description": payment.get("error_description"),
            }
        )
        return metadata
