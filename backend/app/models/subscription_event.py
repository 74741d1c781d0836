"""SubscriptionEvent model - append-only audit trail of subscription lifecycle events."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class SubscriptionEvent(Base):
    __tablename__ = "subscription_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    event_type = Column(String(100), nullable=False, index=True)
    user_id = Column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    subscription_id = Column(UUIDType, nullable=True, index=True)
    plan_id = Column(UUIDType, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
