from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class SubscriptionCategory(str, Enum):
    FITNESS = "FITNESS"
    PSYCHOLOGY = "PSYCHOLOGY"
    MANIFESTATION = "MANIFESTATION"
    ALL_IN_ONE = "ALL_IN_ONE"


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(20), nullable=False, index=True)
    # Minor currency units (paise)
    price = Column(Integer, nullable=False)
    billing_cycle = Column(Integer, nullable=False)
    gateway_plan_id = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
