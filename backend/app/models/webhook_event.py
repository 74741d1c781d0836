"""WebhookEvent model - one row per gateway delivery id, for redelivery detection."""

from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String, Text, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class WebhookEventStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    webhook_id = Column(String(255), unique=True, index=True, nullable=False)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=True)
    status = Column(String(20), nullable=False, default=WebhookEventStatus.PROCESSING.value)
    error = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
