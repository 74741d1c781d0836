from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan
from app.schemas.plan import PlanResponse
from app.services.plan_catalog import PlanCatalog

router = APIRouter()


@router.get(
    "/",
    response_model=list[PlanResponse],
    summary="List plans",
)
async def list_plans(
    category: SubscriptionCategory | None = None,
    db: Session = Depends(get_db),
) -> list[SubscriptionPlan]:
    """List active plans, optionally limited to one category."""
    return PlanCatalog(db).list_plans(category=category)


@router.get(
    "/{plan_id}",
    response_model=PlanResponse,
    summary="Get plan",
    responses={404: {"description": "Plan not found"}},
)
async def get_plan(
    plan_id: UUID,
    db: Session = Depends(get_db),
) -> SubscriptionPlan:
    plan = PlanCatalog(db).get_plan(plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    return plan
