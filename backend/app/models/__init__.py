from app.models.subscription_event import SubscriptionEvent
from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan
from app.models.user import User
from app.models.user_subscription import PaymentStatus, SubscriptionStatus, UserSubscription
from app.models.webhook_event import WebhookEvent, WebhookEventStatus

__all__ = [
    "PaymentStatus",
    "SubscriptionCategory",
    "SubscriptionEvent",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "User",
    "UserSubscription",
    "WebhookEvent",
    "WebhookEventStatus",
]
