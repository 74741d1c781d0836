from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class SubscriptionStatus(str, Enum):
    CREATED = "CREATED"
    PENDING = "PENDING"
    AUTHENTICATED = "AUTHENTICATED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    HALTED = "HALTED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    COMPLETED = "COMPLETED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


# Statuses that still hold (or may soon hold) a seat in a category
NON_TERMINAL_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.CREATED,
    SubscriptionStatus.AUTHENTICATED,
    SubscriptionStatus.PENDING,
)


class UserSubscription(Base):
    __tablename__ = "user_subscriptions"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    plan_id = Column(
        UUIDType,
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    status = Column(
        String(20), nullable=False, default=SubscriptionStatus.CREATED.value, index=True
    )
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    gateway_subscription_id = Column(String(255), unique=True, index=True, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    current_start = Column(DateTime(timezone=True), nullable=True)
    current_end = Column(DateTime(timezone=True), nullable=True)
    next_charge_at = Column(DateTime(timezone=True), nullable=True)
    total_count = Column(Integer, nullable=True)
    paid_count = Column(Integer, nullable=False, default=0)
    remaining_count = Column(Integer, nullable=True)
    retry_attempts = Column(Integer, nullable=False, default=0)
    cancel_requested_at = Column(DateTime(timezone=True), nullable=True)
    cancel_at_cycle_end = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}
