from app.schemas.plan import PlanResponse
from app.schemas.subscription import (
    ButtonStateResponse,
    CancelSubscriptionRequest,
    ChangePlanInput,
    ChangePlanRequest,
    ChangePlanResponse,
    CheckoutResponse,
    CleanupResponse,
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
    SubscriptionResponse,
    SubscriptionStateResponse,
    SubscriptionWithPlanResponse,
    VerifyPaymentInput,
    VerifyPaymentRequest,
)

__all__ = [
    "ButtonStateResponse",
    "CancelSubscriptionRequest",
    "ChangePlanInput",
    "ChangePlanRequest",
    "ChangePlanResponse",
    "CheckoutResponse",
    "CleanupResponse",
    "CommandResponse",
    "CreateSubscriptionInput",
    "CreateSubscriptionRequest",
    "MarkCancelledInput",
    "MarkCancelledRequest",
    "MarkPaymentFailedInput",
    "MarkPaymentFailedRequest",
    "PlanChangeOptionsResponse",
    "PlanMatrixItemResponse",
    "PlanResponse",
    "SubscriptionActionInput",
    "SubscriptionEventResponse",
    "SubscriptionResponse",
    "SubscriptionStateResponse",
    "SubscriptionWithPlanResponse",
    "VerifyPaymentInput",
    "VerifyPaymentRequest",
]
