from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from app.models.subscription_plan import SubscriptionCategory


class PlanResponse(BaseModel):
    id: UUID
    code: str
    name: str
    category: SubscriptionCategory
    price: int
    billing_cycle: int
    gateway_plan_id: str
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
