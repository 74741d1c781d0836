from app.repositories.subscription_event_repository import SubscriptionEventRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.repositories.user_repository import UserRepository
from app.repositories.user_subscription_repository import UserSubscriptionRepository
from app.repositories.webhook_event_repository import WebhookEventRepository

__all__ = [
    "SubscriptionEventRepository",
    "SubscriptionPlanRepository",
    "UserRepository",
    "UserSubscriptionRepository",
    "WebhookEventRepository",
]
