"""Repository for the append-only subscription event log."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.shared import generate_uuid
from app.models.subscription_event import SubscriptionEvent


class SubscriptionEventRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        event_type: str,
        user_id: UUID,
        subscription_id: UUID | None = None,
        plan_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> SubscriptionEvent:
        """Append an event. Flushes only, so it joins the caller's transaction."""
        event = SubscriptionEvent(
            id=generate_uuid(),
            event_type=event_type,
            user_id=user_id,
            subscription_id=subscription_id,
            plan_id=plan_id,
            metadata_=metadata,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def get_by_subscription(self, subscription_id: UUID) -> list[SubscriptionEvent]:
        return (
            self.db.query(SubscriptionEvent)
            .filter(SubscriptionEvent.subscription_id == subscription_id)
            .order_by(SubscriptionEvent.created_at)
            .all()
        )

    def get_by_user(
        self,
        user_id: UUID,
        event_type: str | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[SubscriptionEvent]:
        query = self.db.query(SubscriptionEvent).filter(SubscriptionEvent.user_id == user_id)
        if event_type is not None:
            query = query.filter(SubscriptionEvent.event_type == event_type)
        return query.order_by(SubscriptionEvent.created_at.desc()).offset(skip).limit(limit).all()
