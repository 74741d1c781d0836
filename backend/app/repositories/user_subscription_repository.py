from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.subscription_plan import SubscriptionPlan
from app.models.user_subscription import (
    NON_TERMINAL_STATUSES,
    PaymentStatus,
    SubscriptionStatus,
    UserSubscription,
)


class UserSubscriptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, subscription_id: UUID) -> UserSubscription | None:
        return (
            self.db.query(UserSubscription)
            .filter(UserSubscription.id == subscription_id)
            .first()
        )

    def get_owned(self, subscription_id: UUID, user_id: UUID) -> UserSubscription | None:
        """Return the subscription only if it belongs to ``user_id``."""
        return (
            self.db.query(UserSubscription)
            .filter(
                UserSubscription.id == subscription_id,
                UserSubscription.user_id == user_id,
            )
            .first()
        )

    def get_by_gateway_id(self, gateway_subscription_id: str) -> UserSubscription | None:
        return (
            self.db.query(UserSubscription)
            .filter(UserSubscription.gateway_subscription_id == gateway_subscription_id)
            .first()
        )

    def get_by_user(self, user_id: UUID) -> list[UserSubscription]:
        return (
            self.db.query(UserSubscription)
            .filter(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
            .all()
        )

    def get_non_terminal_with_plans(
        self, user_id: UUID
    ) -> list[tuple[UserSubscription, SubscriptionPlan]]:
        """Subscriptions still holding a category seat, joined with their plan."""
        rows = (
            self.db.query(UserSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
            .filter(
                UserSubscription.user_id == user_id,
                UserSubscription.status.in_([s.value for s in NON_TERMINAL_STATUSES]),
            )
            .order_by(UserSubscription.created_at)
            .all()
        )
        return [(sub, plan) for sub, plan in rows]

    def get_created_before(self, cutoff: datetime) -> list[UserSubscription]:
        return (
            self.db.query(UserSubscription)
            .filter(
                UserSubscription.status == SubscriptionStatus.CREATED.value,
                UserSubscription.created_at < cutoff,
            )
            .all()
        )

    def create(
        self,
        *,
        user_id: UUID,
        plan_id: UUID,
        gateway_subscription_id: str,
        total_count: int,
        start_date: datetime,
    ) -> UserSubscription:
        subscription = UserSubscription(
            user_id=user_id,
            plan_id=plan_id,
            status=SubscriptionStatus.CREATED.value,
            payment_status=PaymentStatus.PENDING.value,
            gateway_subscription_id=gateway_subscription_id,
            total_count=total_count,
            paid_count=0,
            remaining_count=total_count,
            start_date=start_date,
        )
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def apply(self, subscription: UserSubscription, fields: dict[str, Any]) -> UserSubscription:
        """Assign ``fields`` and flush; the caller owns the commit."""
        for key, value in fields.items():
            if isinstance(value, (SubscriptionStatus, PaymentStatus)):
                value = value.value
            setattr(subscription, key, value)
        self.db.flush()
        return subscription
