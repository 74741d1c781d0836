from uuid import UUID

from sqlalchemy.orm import Session

from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan


class SubscriptionPlanRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_all(
        self,
        category: SubscriptionCategory | None = None,
        active_only: bool = True,
    ) -> list[SubscriptionPlan]:
        query = self.db.query(SubscriptionPlan)
        if category is not None:
            query = query.filter(SubscriptionPlan.category == category.value)
        if active_only:
            query = query.filter(SubscriptionPlan.is_active.is_(True))
        return query.order_by(SubscriptionPlan.category, SubscriptionPlan.billing_cycle).all()

    def get_by_id(self, plan_id: UUID) -> SubscriptionPlan | None:
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    def get_by_code(self, code: str) -> SubscriptionPlan | None:
        return self.db.query(SubscriptionPlan).filter(SubscriptionPlan.code == code).first()

    def get_by_ids(self, plan_ids: list[UUID]) -> dict[UUID, SubscriptionPlan]:
        if not plan_ids:
            return {}
        plans = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id.in_(plan_ids)).all()
        return {plan.id: plan for plan in plans}  # type: ignore[misc]

    def create(
        self,
        *,
        code: str,
        name: str,
        category: SubscriptionCategory,
        price: int,
        billing_cycle: int,
        gateway_plan_id: str,
        is_active: bool = True,
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            code=code,
            name=name,
            category=category.value,
            price=price,
            billing_cycle=billing_cycle,
            gateway_plan_id=gateway_plan_id,
            is_active=is_active,
        )
        self.db.add(plan)
        self.db.flush()
        return plan
