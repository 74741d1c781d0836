from typing import TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_user_id
from app.core.database import get_db
from app.models.subscription_event import SubscriptionEvent
from app.models.subscription_plan import SubscriptionCategory
from app.repositories.subscription_event_repository import SubscriptionEventRepository
from app.schemas.plan import PlanResponse
from app.schemas.subscription import (
    ButtonStateResponse,
    CancelSubscriptionRequest,
    ChangePlanInput,
    ChangePlanRequest,
    ChangePlanResponse,
    CheckoutResponse,
    CommandResponse,
    CreateSubscriptionInput,
    CreateSubscriptionRequest,
    MarkCancelledInput,
    MarkCancelledRequest,
    MarkPaymentFailedInput,
    MarkPaymentFailedRequest,
    PlanChangeOptionsResponse,
    PlanMatrixItemResponse,
    SubscriptionActionInput,
    SubscriptionEventResponse,
    SubscriptionStateResponse,
    SubscriptionWithPlanResponse,
    VerifyPaymentInput,
    VerifyPaymentRequest,
)
from app.services.payment_gateway import PaymentGatewayBase, get_payment_gateway
from app.services.subscription_commands import (
    CancellationReason,
    CommandResult,
    SubscriptionCommandService,
)
from app.services.subscription_state import HeldSubscription, SubscriptionStateService

router = APIRouter()

T = TypeVar("T")

COMMAND_ERROR_RESPONSES: dict[int | str, dict[str, str]] = {
    400: {"description": "Command rejected"},
    401: {"description": "Unauthorized – invalid or missing access token"},
}


def _unwrap(result: CommandResult[T]) -> T:
    if result.error is not None or result.data is None:
        raise HTTPException(status_code=400, detail=result.error or "Request failed")
    return result.data


def _held_response(held: HeldSubscription) -> SubscriptionWithPlanResponse:
    item = SubscriptionWithPlanResponse.model_validate(held.subscription)
    item.plan = PlanResponse.model_validate(held.plan)
    return item


@router.get(
    "/",
    response_model=list[SubscriptionWithPlanResponse],
    summary="List my subscriptions",
    responses=COMMAND_ERROR_RESPONSES,
)
async def list_subscriptions(
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> list[SubscriptionWithPlanResponse]:
    """All subscriptions of the caller, newest first."""
    return _unwrap(SubscriptionCommandService(db, gateway).list_user_subscriptions(user_id))


@router.get(
    "/state",
    response_model=SubscriptionStateResponse,
    summary="Get effective subscription state",
)
async def get_subscription_state(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> SubscriptionStateResponse:
    service = SubscriptionStateService(db)
    state = service.get_effective_state(user_id)
    return SubscriptionStateResponse(
        state=state.state.value,
        active_subscriptions=[_held_response(h) for h in state.active_subscriptions],
        scheduled_cancellations=[_held_response(h) for h in state.scheduled_cancellations],
        available_categories=state.available_categories,
        has_active_subscriptions=state.has_active_subscriptions,
        has_scheduled_cancellations=state.has_scheduled_cancellations,
        show_upgrade_options_only=state.show_upgrade_options_only,
    )


@router.get(
    "/button-state",
    response_model=ButtonStateResponse,
    summary="Get subscribe button state for a category",
)
async def get_button_state(
    category: SubscriptionCategory,
    plan_name: str = Query(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> ButtonStateResponse:
    button = SubscriptionStateService(db).get_button_state(user_id, category, plan_name)
    return ButtonStateResponse(
        category=button.category,
        button_text=button.button_text,
        button_action=button.button_action.value,
        is_disabled=button.is_disabled,
        disabled_reason=button.disabled_reason,
        has_current_plan=button.has_current_plan,
        ends_at=button.ends_at,
    )


@router.get(
    "/plan-changes",
    response_model=list[PlanChangeOptionsResponse],
    summary="List plan changes available to my active subscriptions",
)
async def get_plan_changes(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> list[PlanChangeOptionsResponse]:
    options = SubscriptionStateService(db).get_available_plan_changes(user_id)
    return [PlanChangeOptionsResponse.model_validate(option) for option in options]


@router.get(
    "/plan-matrix",
    response_model=list[PlanMatrixItemResponse],
    summary="Get the subscribe button for every plan",
)
async def get_plan_matrix(
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> list[PlanMatrixItemResponse]:
    items = SubscriptionStateService(db).get_plan_matrix(user_id)
    return [
        PlanMatrixItemResponse(
            plan=PlanResponse.model_validate(item.plan),
            button_state=item.button_state.value,
            button_text=item.button_text,
            action_type=item.action_type.value,
            disabled=item.disabled,
            variant=item.variant,
            subscription_id=item.subscription_id,
            ends_at=item.ends_at,
            conflict_subscription_ids=item.conflict_subscription_ids,
        )
        for item in items
    ]


@router.get(
    "/events",
    response_model=list[SubscriptionEventResponse],
    summary="List my subscription history",
)
async def list_subscription_events(
    event_type: str | None = Query(default=None, max_length=100),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    user_id: UUID = Depends(get_current_user_id),
) -> list[SubscriptionEvent]:
    """Events recorded for the caller's subscriptions, newest first."""
    repo = SubscriptionEventRepository(db)
    return repo.get_by_user(user_id, event_type=event_type, skip=skip, limit=limit)


@router.post(
    "/",
    response_model=CheckoutResponse,
    status_code=201,
    summary="Subscribe to a plan",
    responses=COMMAND_ERROR_RESPONSES,
)
async def create_subscription(
    data: CreateSubscriptionRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CheckoutResponse:
    """Create the gateway subscription and return the data the checkout widget needs."""
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.create_subscription(CreateSubscriptionInput(user_id=user_id, plan_id=data.plan_id))
    )


@router.post(
    "/verify-payment",
    response_model=CommandResponse,
    summary="Verify a checkout payment",
    responses=COMMAND_ERROR_RESPONSES,
)
async def verify_payment(
    data: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CommandResponse:
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.verify_payment(
            VerifyPaymentInput(
                user_id=user_id,
                gateway_subscription_id=data.gateway_subscription_id,
                gateway_payment_id=data.gateway_payment_id,
                signature=data.signature,
            )
        )
    )


@router.post(
    "/mark-cancelled",
    response_model=CommandResponse,
    summary="Cancel a checkout the user dismissed",
    responses=COMMAND_ERROR_RESPONSES,
)
async def mark_cancelled(
    data: MarkCancelledRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CommandResponse:
    """Record the cancellation locally; the gateway is not called."""
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.mark_cancelled(
            MarkCancelledInput(
                user_id=user_id,
                gateway_subscription_id=data.gateway_subscription_id,
                reason=data.reason,
            )
        )
    )


@router.post(
    "/{subscription_id}/cancel",
    response_model=CommandResponse,
    summary="Cancel a subscription",
    responses=COMMAND_ERROR_RESPONSES,
)
async def cancel_subscription(
    subscription_id: UUID,
    data: CancelSubscriptionRequest | None = None,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CommandResponse:
    """Cancel now, or at the end of the current billing cycle when ``at_cycle_end`` is set."""
    service = SubscriptionCommandService(db, gateway)
    params = SubscriptionActionInput(user_id=user_id, subscription_id=subscription_id)
    if data is not None and data.at_cycle_end:
        return _unwrap(service.cancel_subscription_at_cycle_end(params))
    return _unwrap(
        service.cancel_subscription_immediately(params, reason=CancellationReason.USER_REQUESTED)
    )


@router.post(
    "/{subscription_id}/change-plan",
    response_model=ChangePlanResponse,
    summary="Change to another plan",
    responses=COMMAND_ERROR_RESPONSES,
)
async def change_plan(
    subscription_id: UUID,
    data: ChangePlanRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> ChangePlanResponse:
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.change_plan(
            ChangePlanInput(
                user_id=user_id, subscription_id=subscription_id, new_plan_id=data.new_plan_id
            )
        )
    )


@router.post(
    "/{subscription_id}/mark-payment-failed",
    response_model=CommandResponse,
    summary="Record a failed checkout payment",
    responses=COMMAND_ERROR_RESPONSES,
)
async def mark_payment_failed(
    subscription_id: UUID,
    data: MarkPaymentFailedRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CommandResponse:
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.mark_payment_failed(
            MarkPaymentFailedInput(
                user_id=user_id,
                subscription_id=subscription_id,
                error=data.error,
                failure_reason=data.failure_reason,
            )
        )
    )


@router.post(
    "/{subscription_id}/reset-payment-status",
    response_model=CommandResponse,
    summary="Reset a failed payment so checkout can be retried",
    responses=COMMAND_ERROR_RESPONSES,
)
async def reset_payment_status(
    subscription_id: UUID,
    db: Session = Depends(get_db),
    gateway: PaymentGatewayBase = Depends(get_payment_gateway),
    user_id: UUID = Depends(get_current_user_id),
) -> CommandResponse:
    service = SubscriptionCommandService(db, gateway)
    return _unwrap(
        service.reset_payment_status(
            SubscriptionActionInput(user_id=user_id, subscription_id=subscription_id)
        )
    )
