from typing import Any

from sqlalchemy.orm import Session

from app.models.shared import utc_now
from app.models.webhook_event import WebhookEvent, WebhookEventStatus


class WebhookEventRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_webhook_id(self, webhook_id: str) -> WebhookEvent | None:
        return self.db.query(WebhookEvent).filter(WebhookEvent.webhook_id == webhook_id).first()

    def is_processed(self, webhook_id: str) -> bool:
        event = self.get_by_webhook_id(webhook_id)
        return event is not None and event.status == WebhookEventStatus.SUCCESS.value

    def start(self, webhook_id: str, event_type: str, payload: dict[str, Any]) -> WebhookEvent:
        """Record (or re-open after a failed attempt) a delivery as processing."""
        event = self.get_by_webhook_id(webhook_id)
        if event is None:
            event = WebhookEvent(webhook_id=webhook_id, event_type=event_type, payload=payload)
            self.db.add(event)
        event.status = WebhookEventStatus.PROCESSING.value  # type: ignore[assignment]
        event.error = None  # type: ignore[assignment]
        event.processed_at = utc_now()  # type: ignore[assignment]
        self.db.flush()
        return event

    def mark_success(self, webhook_id: str) -> None:
        event = self.get_by_webhook_id(webhook_id)
        if event is not None:
            event.status = WebhookEventStatus.SUCCESS.value  # type: ignore[assignment]
            event.error = None  # type: ignore[assignment]
            self.db.flush()

    def mark_failed(
        self, webhook_id: str, event_type: str, payload: dict[str, Any], error: str
    ) -> None:
        """Persist a failed attempt in its own commit.

        Called after the processing transaction was rolled back, so the row
        written by ``start`` may not exist any more. A row another delivery
        already committed as SUCCESS is left unchanged.
        """
        event = self.get_by_webhook_id(webhook_id)
        if event is not None and event.status == WebhookEventStatus.SUCCESS.value:
            return
        if event is None:
            event = WebhookEvent(webhook_id=webhook_id, event_type=event_type, payload=payload)
            self.db.add(event)
        event.status = WebhookEventStatus.FAILED.value  # type: ignore[assignment]
        event.error = error  # type: ignore[assignment]
        event.processed_at = utc_now()  # type: ignore[assignment]
        self.db.commit()
