from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.subscription_plan import SubscriptionCategory
from app.models.user_subscription import PaymentStatus, SubscriptionStatus
from app.schemas.plan import PlanResponse

# Command inputs. The caller's user id is always explicit.


class CreateSubscriptionInput(BaseModel):
    user_id: UUID
    plan_id: UUID


class SubscriptionActionInput(BaseModel):
    user_id: UUID
    subscription_id: UUID


class ChangePlanInput(BaseModel):
    user_id: UUID
    subscription_id: UUID
    new_plan_id: UUID


class MarkPaymentFailedInput(BaseModel):
    user_id: UUID
    subscription_id: UUID
    error: str | None = Field(default=None, max_length=1000)
    failure_reason: str | None = Field(default=None, max_length=255)


class VerifyPaymentInput(BaseModel):
    user_id: UUID
    gateway_subscription_id: str = Field(..., min_length=1, max_length=255)
    gateway_payment_id: str = Field(..., min_length=1, max_length=255)
    signature: str = Field(..., min_length=1)


class MarkCancelledInput(BaseModel):
    user_id: UUID
    gateway_subscription_id: str = Field(..., min_length=1, max_length=255)
    reason: str = Field(default="user_dismissed_payment_modal", max_length=50)


# HTTP request bodies. The user id comes from the bearer token.


class CreateSubscriptionRequest(BaseModel):
    plan_id: UUID


class CancelSubscriptionRequest(BaseModel):
    at_cycle_end: bool = Field(
        default=False,
        description="Keep access until the current billing cycle ends.",
    )


class ChangePlanRequest(BaseModel):
    new_plan_id: UUID


class MarkPaymentFailedRequest(BaseModel):
    error: str | None = Field(default=None, max_length=1000)
    failure_reason: str | None = Field(default=None, max_length=255)


class VerifyPaymentRequest(BaseModel):
    gateway_subscription_id: str = Field(..., min_length=1, max_length=255)
    gateway_payment_id: str = Field(..., min_length=1, max_length=255)
    signature: str = Field(..., min_length=1)


class MarkCancelledRequest(BaseModel):
    gateway_subscription_id: str = Field(..., min_length=1, max_length=255)
    reason: str = Field(default="user_dismissed_payment_modal", max_length=50)


# Responses


class SubscriptionResponse(BaseModel):
    id: UUID
    user_id: UUID
    plan_id: UUID
    status: SubscriptionStatus
    payment_status: PaymentStatus
    gateway_subscription_id: str | None
    start_date: datetime | None
    end_date: datetime | None
    current_start: datetime | None
    current_end: datetime | None
    next_charge_at: datetime | None
    total_count: int | None
    paid_count: int
    remaining_count: int | None
    retry_attempts: int
    cancel_requested_at: datetime | None
    cancel_at_cycle_end: bool
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubscriptionWithPlanResponse(SubscriptionResponse):
    plan: PlanResponse | None = None


class CheckoutResponse(BaseModel):
    """Data the browser needs to open the gateway checkout widget."""

    subscription_id: UUID
    gateway_subscription_id: str
    key_id: str
    amount: int
    currency: str
    name: str
    description: str
    short_url: str | None = None


class CommandResponse(BaseModel):
    success: bool = True
    message: str
    subscription_id: UUID | None = None


class ChangePlanResponse(BaseModel):
    subscription_id: UUID
    previous_plan_id: UUID
    plan_id: UUID
    total_count: int
    remaining_count: int
    message: str


class SubscriptionStateResponse(BaseModel):
    state: str
    active_subscriptions: list[SubscriptionWithPlanResponse]
    scheduled_cancellations: list[SubscriptionWithPlanResponse]
    available_categories: list[SubscriptionCategory]
    has_active_subscriptions: bool
    has_scheduled_cancellations: bool
    show_upgrade_options_only: bool


class ButtonStateResponse(BaseModel):
    category: SubscriptionCategory
    button_text: str
    button_action: str
    is_disabled: bool
    disabled_reason: str | None = None
    has_current_plan: bool = False
    ends_at: datetime | None = None


class CleanupResponse(BaseModel):
    success: bool = True
    cleaned_count: int
    message: str


class PlanChangeOptionsResponse(BaseModel):
    subscription_id: UUID
    current_plan: PlanResponse
    upgrades: list[PlanResponse]
    downgrades: list[PlanResponse]

    model_config = {"from_attributes": True}


class PlanMatrixItemResponse(BaseModel):
    plan: PlanResponse
    button_state: str
    button_text: str
    action_type: str
    disabled: bool
    variant: str
    subscription_id: UUID | None = None
    ends_at: datetime | None = None
    conflict_subscription_ids: list[UUID] = Field(default_factory=list)


class SubscriptionEventResponse(BaseModel):
    id: UUID
    event_type: str
    subscription_id: UUID | None
    plan_id: UUID | None
    metadata_: dict[str, Any] | None

    model_config = {"from_attributes": True}

    created_at: datetime
