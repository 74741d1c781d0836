"""Subscription commands issued by a signed-in user.

Every command validates its input, checks ownership, talks to the gateway
first and only then writes locally. The local row changes and the event log
entry of a command are committed together. Commands never raise: the outcome
is always a ``CommandResult`` carrying either data or one error message.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import run_with_optimistic_retry
from app.models.shared import as_utc, utc_now
from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan
from app.models.user_subscription import PaymentStatus, SubscriptionStatus, UserSubscription
from app.repositories.subscription_event_repository import SubscriptionEventRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.repositories.user_repository import UserRepository
from app.repositories.user_subscription_repository import UserSubscriptionRepository
from app.schemas.plan import PlanResponse
from app.schemas.subscription import (
    ChangePlanInput,
    ChangePlanResponse,
    CheckoutResponse,
    CommandResponse,
    CreateSubscriptionInput,
    MarkPaymentFailedInput,
    MarkCancelledInput,
    SubscriptionActionInput,
    SubscriptionWithPlanResponse,
    VerifyPaymentInput,
)
from app.services.payment_gateway import GatewayError, PaymentGatewayBase
from app.services.plan_catalog import (
    PlanCatalog,
    remaining_count_after_change,
    total_count_for_cycle,
)
from app.services.subscription_dates import add_months
from app.services.subscription_state import (
    ButtonAction,
    SubscriptionStateService,
    button_state_for_category,
)
from app.services.subscription_status import resolve_status

logger = logging.getLogger(__name__)

T = TypeVar("T")
InputT = TypeVar("InputT", bound=BaseModel)

IMMEDIATELY_CANCELLABLE_STATUSES = frozenset(
    {
        SubscriptionStatus.CREATED,
        SubscriptionStatus.PENDING,
        SubscriptionStatus.AUTHENTICATED,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.HALTED,
        SubscriptionStatus.PAUSED,
    }
)

FINAL_STATUSES = frozenset(
    {
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.COMPLETED,
    }
)


class CancellationReason(str, Enum):
    USER_REQUESTED = "user_requested"
    PAYMENT_FAILED = "payment_failed"
    USER_DISMISSED_PAYMENT_MODAL = "user_dismissed_payment_modal"
    MANUAL_CANCELLATION = "manual_cancellation"


CHECKOUT_CANCELLATION_REASONS = frozenset(
    {CancellationReason.USER_DISMISSED_PAYMENT_MODAL, CancellationReason.MANUAL_CANCELLATION}
)


class SubscriptionEventType(str, Enum):
    CREATED = "subscription.created"
    CANCELLED = "subscription.cancelled"
    CANCEL_REQUESTED = "cancel_requested"
    PLAN_CHANGED = "plan_changed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RETRY_INITIATED = "payment_retry_initiated"
    PAYMENT_VERIFIED = "payment_verified"


@dataclass
class CommandResult(Generic[T]):
    """Outcome of a command: ``data`` on success, ``error`` otherwise."""

    data: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: T) -> "CommandResult[T]":
        return cls(data=data)

    @classmethod
    def failure(cls, error: str) -> "CommandResult[T]":
        return cls(error=error)


def _validate(
    schema: type[InputT], data: InputT | Mapping[str, Any]
) -> tuple[InputT | None, str]:
    """Coerce ``data`` into ``schema``; returns ``(None, message)`` when invalid."""
    if isinstance(data, schema):
        return data, ""
    try:
        return schema.model_validate(data), ""
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        message = f"{location}: {first['msg']}" if location else first["msg"]
        return None, f"Invalid input: {message}"


class SubscriptionCommandService:
    """Create, cancel and change subscriptions on behalf of a user."""

    def __init__(self, db: Session, gateway: PaymentGatewayBase):
        self.db = db
        self.gateway = gateway
        self.subscription_repo = UserSubscriptionRepository(db)
        self.plan_repo = SubscriptionPlanRepository(db)
        self.event_repo = SubscriptionEventRepository(db)
        self.user_repo = UserRepository(db)
        self.catalog = PlanCatalog(db)

    def _commit(self, operation: str, write: Any) -> Any:
        """Run the local writes of a command in one transaction.

        Returns the value of ``write`` or raises ``SQLAlchemyError`` after the
        session has been rolled back.
        """
        try:
            return run_with_optimistic_retry(self.db, write)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Local write failed during %s", operation)
            raise

    def create_subscription(
        self, data: CreateSubscriptionInput | Mapping[str, Any]
    ) -> CommandResult[CheckoutResponse]:
        params, error = _validate(CreateSubscriptionInput, data)
        if params is None:
            return CommandResult.failure(error)

        plan = self.catalog.get_active_plan(params.plan_id)
        if plan is None:
            return CommandResult.failure("Subscription plan not found or inactive")

        if self.user_repo.get_by_id(params.user_id) is None:
            return CommandResult.failure("User details not found")

        conflict = self._category_conflict(params.user_id, plan)
        if conflict:
            logger.info(
                "Rejected subscription to plan %s for user %s: %s",
                plan.code,
                params.user_id,
                conflict,
            )
            return CommandResult.failure(conflict)

        try:
            total_count = total_count_for_cycle(plan.billing_cycle)
        except ValueError:
            logger.error("Plan %s has unsupported billing cycle %s", plan.code, plan.billing_cycle)
            return CommandResult.failure("Failed to create subscription")

        try:
            gateway_subscription = self.gateway.create_subscription(
                gateway_plan_id=plan.gateway_plan_id,
                total_count=total_count,
                notes={
                    "user_id": str(params.user_id),
                    "plan_id": str(plan.id),
                    "plan_name": plan.name,
                },
            )
        except GatewayError as exc:
            logger.error(
                "Gateway create failed for user %s plan %s: %s", params.user_id, plan.code, exc
            )
            return CommandResult.failure("Failed to create subscription")

        now = utc_now()

        def write() -> UserSubscription:
            subscription = self.subscription_repo.create(
                user_id=params.user_id,
                plan_id=plan.id,
                gateway_subscription_id=gateway_subscription.id,
                total_count=total_count,
                start_date=now,
            )
            self.event_repo.create(
                event_type=SubscriptionEventType.CREATED.value,
                user_id=params.user_id,
                subscription_id=subscription.id,
                plan_id=plan.id,
                metadata={
                    "gateway_subscription_id": gateway_subscription.id,
                    "total_count": total_count,
                    "amount": plan.price,
                },
            )
            return subscription

        try:
            subscription = self._commit("create_subscription", write)
        except SQLAlchemyError:
            self._compensate_gateway_create(gateway_subscription.id)
            return CommandResult.failure("Failed to create subscription")

        logger.info(
            "Created subscription %s (gateway %s) for user %s on plan %s",
            subscription.id,
            gateway_subscription.id,
            params.user_id,
            plan.code,
        )
        return CommandResult.success(
            CheckoutResponse(
                subscription_id=subscription.id,
                gateway_subscription_id=gateway_subscription.id,
                key_id=self.gateway.public_key,
                amount=plan.price,
                currency=settings.razorpay_currency,
                name=plan.name,
                description=f"{plan.category} Subscription - {plan.name}",
                short_url=gateway_subscription.short_url,
            )
        )

    def _category_conflict(self, user_id: UUID, plan: SubscriptionPlan) -> str | None:
        state = SubscriptionStateService(self.db).get_effective_state(user_id)
        category = SubscriptionCategory(plan.category)
        button = button_state_for_category(state, category, plan.name)
        if button.button_action == ButtonAction.CHANGE_PLAN:
            return f"You already have an active {plan.category} subscription"
        if button.button_action == ButtonAction.DISABLED:
            return button.disabled_reason
        return None

    def _compensate_gateway_create(self, gateway_subscription_id: str) -> None:
        """Cancel a gateway subscription whose local row could not be saved."""
        try:
            self.gateway.cancel_subscription(gateway_subscription_id, at_cycle_end=False)
        except GatewayError as exc:
            logger.error(
                "Gateway subscription %s has no local row and could not be cancelled: %s",
                gateway_subscription_id,
                exc,
            )

    def cancel_subscription_immediately(
        self,
        data: SubscriptionActionInput | Mapping[str, Any],
        reason: CancellationReason = CancellationReason.USER_REQUESTED,
    ) -> CommandResult[CommandResponse]:
        params, error = _validate(SubscriptionActionInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_owned(params.subscription_id, params.user_id)
        if subscription is None:
            return CommandResult.failure(
                "Subscription not found or you do not have permission to cancel it"
            )

        if SubscriptionStatus(subscription.status) not in IMMEDIATELY_CANCELLABLE_STATUSES:
            return CommandResult.failure(
                f"Subscription cannot be cancelled in its current state ({subscription.status})"
            )

        gateway_id = subscription.gateway_subscription_id
        gateway_cancelled = False
        gateway_error: str | None = None
        if gateway_id:
            try:
                self.gateway.cancel_subscription(gateway_id, at_cycle_end=False)
                gateway_cancelled = True
            except GatewayError as exc:
                # The local row is still cancelled; the gateway state is reconciled by webhook
                gateway_error = str(exc)
                logger.error(
                    "Gateway cancel failed for subscription %s (gateway %s): %s",
                    subscription.id,
                    gateway_id,
                    exc,
                )

        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            now = utc_now()
            self.subscription_repo.apply(
                current,
                {
                    "status": SubscriptionStatus.CANCELLED,
                    "payment_status": PaymentStatus.FAILED,
                    "end_date": now,
                    "cancel_requested_at": None,
                    "cancel_at_cycle_end": False,
                },
            )
            metadata: dict[str, Any] = {
                "gateway_subscription_id": gateway_id,
                "cancellation_reason": reason.value,
                "cancellation_type": "immediate",
                "cancelled_at": now.isoformat(),
                "gateway_cancelled": gateway_cancelled,
            }
            if gateway_error is not None:
                metadata["gateway_error"] = gateway_error
            self.event_repo.create(
                event_type=SubscriptionEventType.CANCELLED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata=metadata,
            )

        try:
            self._commit("cancel_subscription_immediately", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to cancel subscription")

        logger.info(
            "Cancelled subscription %s immediately (reason=%s, gateway_cancelled=%s)",
            subscription_id,
            reason.value,
            gateway_cancelled,
        )
        return CommandResult.success(
            CommandResponse(
                message="Subscription cancelled successfully",
                subscription_id=subscription_id,
            )
        )

    def mark_cancelled(
        self, data: MarkCancelledInput | Mapping[str, Any]
    ) -> CommandResult[CommandResponse]:
        """Cancel a checkout the user abandoned, locally only.

        The gateway subscription was never paid for, so no gateway call is
        made; an orphan left there is cancelled by the hourly cleanup.
        """
        params, error = _validate(MarkCancelledInput, data)
        if params is None:
            return CommandResult.failure(error)

        invalid_reason = f"Invalid cancellation reason: {params.reason}"
        try:
            reason = CancellationReason(params.reason)
        except ValueError:
            return CommandResult.failure(invalid_reason)
        if reason not in CHECKOUT_CANCELLATION_REASONS:
            return CommandResult.failure(invalid_reason)

        subscription = self.subscription_repo.get_by_gateway_id(params.gateway_subscription_id)
        if subscription is None or subscription.user_id != params.user_id:
            return CommandResult.failure("Subscription not found")
        if SubscriptionStatus(subscription.status) in FINAL_STATUSES:
            return CommandResult.failure("Subscription is already in a final state")

        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            self.subscription_repo.apply(
                current,
                {
                    "status": SubscriptionStatus.CANCELLED,
                    "payment_status": PaymentStatus.FAILED,
                    "cancel_requested_at": None,
                    "cancel_at_cycle_end": False,
                },
            )
            self.event_repo.create(
                event_type=SubscriptionEventType.CANCELLED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata={
                    "gateway_subscription_id": params.gateway_subscription_id,
                    "cancellation_reason": reason.value,
                    "cancellation_type": "immediate",
                    "cancelled_at": utc_now().isoformat(),
                    "source": "checkout_dismissed",
                },
            )

        try:
            self._commit("mark_cancelled", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to cancel subscription")

        logger.info(
            "Marked subscription %s cancelled after checkout (reason=%s)",
            subscription_id,
            reason.value,
        )
        return CommandResult.success(
            CommandResponse(
                message="Subscription cancelled successfully", subscription_id=subscription_id
            )
        )

    def cancel_subscription_at_cycle_end(
        self, data: SubscriptionActionInput | Mapping[str, Any]
    ) -> CommandResult[CommandResponse]:
        params, error = _validate(SubscriptionActionInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_owned(params.subscription_id, params.user_id)
        if subscription is None:
            return CommandResult.failure(
                "Subscription not found or you do not have permission to cancel it"
            )
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            return CommandResult.failure("Only active subscriptions can be cancelled")
        if subscription.cancel_requested_at is not None:
            return CommandResult.failure("Cancellation already requested for this subscription")
        if not subscription.gateway_subscription_id:
            return CommandResult.failure("Invalid subscription: missing gateway subscription ID")

        gateway_id = subscription.gateway_subscription_id
        try:
            self.gateway.cancel_subscription(gateway_id, at_cycle_end=True)
        except GatewayError as exc:
            logger.error(
                "Gateway cycle-end cancel failed for subscription %s (gateway %s): %s",
                subscription.id,
                gateway_id,
                exc,
            )
            return CommandResult.failure("Failed to cancel subscription. Please try again.")

        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            now = utc_now()
            ends_at = as_utc(current.current_end)
            self.subscription_repo.apply(
                current,
                {
                    "cancel_requested_at": now,
                    "cancel_at_cycle_end": True,
                    "end_date": ends_at,
                },
            )
            self.event_repo.create(
                event_type=SubscriptionEventType.CANCEL_REQUESTED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata={
                    "gateway_subscription_id": gateway_id,
                    "cancellation_type": "end_of_cycle",
                    "requested_at": now.isoformat(),
                    "ends_at": ends_at.isoformat() if ends_at else None,
                },
            )

        try:
            self._commit("cancel_subscription_at_cycle_end", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to cancel subscription")

        logger.info("Scheduled cancellation at cycle end for subscription %s", subscription_id)
        return CommandResult.success(
            CommandResponse(
                message=(
                    "Subscription cancelled. You will have access until the end of your "
                    "current billing period."
                ),
                subscription_id=subscription_id,
            )
        )

    def change_plan(
        self, data: ChangePlanInput | Mapping[str, Any]
    ) -> CommandResult[ChangePlanResponse]:
        params, error = _validate(ChangePlanInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_owned(params.subscription_id, params.user_id)
        if subscription is None or subscription.status != SubscriptionStatus.ACTIVE.value:
            return CommandResult.failure("Subscription not found or not active")

        new_plan = self.catalog.get_active_plan(params.new_plan_id)
        if new_plan is None:
            return CommandResult.failure("New plan not found")
        if new_plan.id == subscription.plan_id:
            return CommandResult.failure("New plan must be different from the current plan")

        current_plan = self.plan_repo.get_by_id(subscription.plan_id)
        if current_plan is None:
            return CommandResult.failure("Subscription plan not found")

        try:
            new_total = total_count_for_cycle(new_plan.billing_cycle)
        except ValueError:
            logger.error(
                "Plan %s has unsupported billing cycle %s", new_plan.code, new_plan.billing_cycle
            )
            return CommandResult.failure("Failed to update subscription")

        remaining = remaining_count_after_change(new_plan.billing_cycle, subscription.paid_count)
        if remaining <= 0:
            return CommandResult.failure(
                "Invalid plan change: would result in negative remaining count"
            )

        gateway_id = subscription.gateway_subscription_id
        if not gateway_id:
            return CommandResult.failure("Invalid subscription: missing gateway subscription ID")

        try:
            self.gateway.update_subscription(
                gateway_id,
                gateway_plan_id=new_plan.gateway_plan_id,
                remaining_count=remaining,
            )
        except GatewayError as exc:
            logger.error(
                "Gateway plan change failed for subscription %s to plan %s: %s",
                subscription.id,
                new_plan.code,
                exc,
            )
            return CommandResult.failure(
                f"Subscription update process to {new_plan.name} failed"
            )

        subscription_id = subscription.id
        previous_plan_id = current_plan.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            self.subscription_repo.apply(current, {"plan_id": new_plan.id})
            self.event_repo.create(
                event_type=SubscriptionEventType.PLAN_CHANGED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=new_plan.id,
                metadata={
                    "gateway_subscription_id": gateway_id,
                    "previous_plan_id": str(previous_plan_id),
                    "new_plan_id": str(new_plan.id),
                    "new_total_count": new_total,
                    "remaining_count": remaining,
                },
            )

        try:
            self._commit("change_plan", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to update subscription")

        logger.info(
            "Changed plan of subscription %s from %s to %s (remaining=%d)",
            subscription_id,
            current_plan.code,
            new_plan.code,
            remaining,
        )
        return CommandResult.success(
            ChangePlanResponse(
                subscription_id=subscription_id,
                previous_plan_id=previous_plan_id,
                plan_id=new_plan.id,
                total_count=new_total,
                remaining_count=remaining,
                message=f"Subscription successfully updated to {new_plan.name}",
            )
        )

    def mark_payment_failed(
        self, data: MarkPaymentFailedInput | Mapping[str, Any]
    ) -> CommandResult[CommandResponse]:
        params, error = _validate(MarkPaymentFailedInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_owned(params.subscription_id, params.user_id)
        if subscription is None:
            return CommandResult.failure(
                "Subscription not found or you do not have permission to update it"
            )

        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            previous = current.payment_status
            self.subscription_repo.apply(current, {"payment_status": PaymentStatus.FAILED})
            self.event_repo.create(
                event_type=SubscriptionEventType.PAYMENT_FAILED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata={
                    "gateway_subscription_id": current.gateway_subscription_id,
                    "error": params.error,
                    "failure_reason": params.failure_reason,
                    "previous_payment_status": previous,
                },
            )

        try:
            self._commit("mark_payment_failed", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to mark payment as failed. Please try again.")

        return CommandResult.success(
            CommandResponse(
                message="Payment marked as failed successfully", subscription_id=subscription_id
            )
        )

    def reset_payment_status(
        self, data: SubscriptionActionInput | Mapping[str, Any]
    ) -> CommandResult[CommandResponse]:
        """Put a failed payment back to PENDING so the user can retry checkout."""
        params, error = _validate(SubscriptionActionInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_owned(params.subscription_id, params.user_id)
        if subscription is None:
            return CommandResult.failure(
                "Subscription not found or you do not have permission to update it"
            )

        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            previous = current.payment_status
            self.subscription_repo.apply(current, {"payment_status": PaymentStatus.PENDING})
            self.event_repo.create(
                event_type=SubscriptionEventType.PAYMENT_RETRY_INITIATED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata={
                    "gateway_subscription_id": current.gateway_subscription_id,
                    "previous_payment_status": previous,
                },
            )

        try:
            self._commit("reset_payment_status", write)
        except SQLAlchemyError:
            return CommandResult.failure("Failed to reset payment status. Please try again.")

        return CommandResult.success(
            CommandResponse(
                message="Payment status reset successfully for retry",
                subscription_id=subscription_id,
            )
        )

    def verify_payment(
        self, data: VerifyPaymentInput | Mapping[str, Any]
    ) -> CommandResult[CommandResponse]:
        """Confirm the checkout callback signature and activate the subscription.

        Billing counters are left alone; the ``subscription.charged`` webhook
        carries the authoritative values.
        """
        params, error = _validate(VerifyPaymentInput, data)
        if params is None:
            return CommandResult.failure(error)

        subscription = self.subscription_repo.get_by_gateway_id(params.gateway_subscription_id)
        if subscription is None or subscription.user_id != params.user_id:
            return CommandResult.failure("Subscription not found")

        if not self.gateway.verify_payment_signature(
            params.gateway_payment_id, params.gateway_subscription_id, params.signature
        ):
            logger.warning(
                "Payment signature mismatch for gateway subscription %s",
                params.gateway_subscription_id,
            )
            return CommandResult.failure("Payment signature verification failed")

        plan = self.plan_repo.get_by_id(subscription.plan_id)
        subscription_id = subscription.id

        def write() -> None:
            current = self.subscription_repo.get_by_id(subscription_id)
            now = utc_now()
            status = resolve_status(current.status, SubscriptionStatus.ACTIVE)
            fields: dict[str, Any] = {"status": status}
            if status == SubscriptionStatus.ACTIVE:
                fields["payment_status"] = PaymentStatus.PAID
            if current.current_start is None and plan is not None:
                fields["current_start"] = now
                fields["current_end"] = add_months(now, plan.billing_cycle)
            self.subscription_repo.apply(current, fields)
            self.event_repo.create(
                event_type=SubscriptionEventType.PAYMENT_VERIFIED.value,
                user_id=current.user_id,
                subscription_id=current.id,
                plan_id=current.plan_id,
                metadata={
                    "gateway_subscription_id": params.gateway_subscription_id,
                    "gateway_payment_id": params.gateway_payment_id,
                },
            )

        try:
            self._commit("verify_payment", write)
        except SQLAlchemyError:
            return CommandResult.failure("Internal server error during payment verification")

        logger.info(
            "Verified payment %s for subscription %s", params.gateway_payment_id, subscription_id
        )
        return CommandResult.success(
            CommandResponse(message="Payment verified successfully", subscription_id=subscription_id)
        )

    def list_user_subscriptions(
        self, user_id: UUID
    ) -> CommandResult[list[SubscriptionWithPlanResponse]]:
        try:
            subscriptions = self.subscription_repo.get_by_user(user_id)
            plans = self.plan_repo.get_by_ids(list({s.plan_id for s in subscriptions}))
        except SQLAlchemyError:
            logger.exception("Failed to list subscriptions for user %s", user_id)
            return CommandResult.failure("Failed to fetch subscriptions")

        items = []
        for subscription in subscriptions:
            item = SubscriptionWithPlanResponse.model_validate(subscription)
            plan = plans.get(subscription.plan_id)
            item.plan = PlanResponse.model_validate(plan) if plan is not None else None
            items.append(item)
        return CommandResult.success(items)
