"""Plan catalog: the fixed set of coaching plans and their billing arithmetic."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository

logger = logging.getLogger(__name__)

# Billing cycle (months) -> number of charges the gateway is asked to schedule.
# Every cycle length covers the same 30 year horizon.
TOTAL_COUNT_BY_BILLING_CYCLE: dict[int, int] = {
    3: 120,
    6: 60,
    12: 30,
}


@dataclass(frozen=True)
class PlanDefinition:
    code: str
    name: str
    category: SubscriptionCategory
    price: int
    billing_cycle: int
    gateway_plan_id: str


DEFAULT_PLANS: tuple[PlanDefinition, ...] = (
    PlanDefinition(
        "fitness_q", "Fitness Quarterly", SubscriptionCategory.FITNESS, 21000, 3,
        "plan_Qpm6Y0UaT0Cu",
    ),
    PlanDefinition(
        "fitness_sa", "Fitness Semi-Annual", SubscriptionCategory.FITNESS, 110000, 6,
        "plan_Qpm1PvU1aVDX8",
    ),
    PlanDefinition(
        "fitness_a", "Fitness Annual", SubscriptionCategory.FITNESS, 210000, 12,
        "plan_Qpm6Y0UaT0Cu",
    ),
    PlanDefinition(
        "psychology_q", "Psychological Quarterly", SubscriptionCategory.PSYCHOLOGY, 67500, 3,
        "plan_QpnBDlB7mqLivd",
    ),
    PlanDefinition(
        "psychology_sa", "Psychological Semi-Annual", SubscriptionCategory.PSYCHOLOGY, 120000, 6,
        "plan_QpNNZQcIOwW9",
    ),
    PlanDefinition(
        "psychology_a", "Psychological Annual", SubscriptionCategory.PSYCHOLOGY, 210000, 12,
        "plan_QpmnMq0Ng81hv",
    ),
    PlanDefinition(
        "manifestation_q", "Manifestation Quarterly", SubscriptionCategory.MANIFESTATION, 67500,
        3, "plan_QnNI8PJeaVcekC",
    ),
    PlanDefinition(
        "manifestation_sa", "Manifestation Semi-Annual", SubscriptionCategory.MANIFESTATION,
        120000, 6, "plan_QpnGp0507VPu8",
    ),
    PlanDefinition(
        "manifestation_a", "Manifestation Annual", SubscriptionCategory.MANIFESTATION, 210000,
        12, "plan_QpnYkH59Cqu7x",
    ),
    PlanDefinition(
        "aio_q", "All-In-One Quarterly", SubscriptionCategory.ALL_IN_ONE, 202500, 3,
        "plan_Qpn1PYRkSnVS6F",
    ),
    PlanDefinition(
        "aio_sa", "All-In-One Semi-Annual", SubscriptionCategory.ALL_IN_ONE, 336000, 6,
        "plan_QpnWMvS0Uljx8",
    ),
    PlanDefinition(
        "aio_a", "All-In-One Annual", SubscriptionCategory.ALL_IN_ONE, 630000, 12,
        "plan_QpnNBl8mqivid",
    ),
)


def total_count_for_cycle(billing_cycle: int) -> int:
    """Return the gateway total_count for a billing cycle length in months.

    Raises:
        ValueError: If the cycle length is not one the catalog offers.
    """
    try:
        return TOTAL_COUNT_BY_BILLING_CYCLE[billing_cycle]
    except KeyError:
        raise ValueError(f"Unsupported billing cycle: {billing_cycle} months") from None


def remaining_count_after_change(new_billing_cycle: int, paid_count: int) -> int:
    """Charges left to schedule when moving to a plan with ``new_billing_cycle``."""
    return total_count_for_cycle(new_billing_cycle) - (paid_count or 0)


class PlanCatalog:
    """Read access to the plan catalog plus seeding of the default plans."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SubscriptionPlanRepository(db)

    def list_plans(self, category: SubscriptionCategory | None = None) -> list[SubscriptionPlan]:
        return self.repo.get_all(category=category)

    def get_plan(self, plan_id: UUID) -> SubscriptionPlan | None:
        return self.repo.get_by_id(plan_id)

    def get_active_plan(self, plan_id: UUID) -> SubscriptionPlan | None:
        plan = self.repo.get_by_id(plan_id)
        if plan is None or not plan.is_active:
            return None
        return plan

    def seed_default_plans(
        self, plans: tuple[PlanDefinition, ...] = DEFAULT_PLANS
    ) -> list[SubscriptionPlan]:
        """Insert catalog plans missing from the table. Existing codes are left alone."""
        created = []
        for definition in plans:
            if self.repo.get_by_code(definition.code) is not None:
                continue
            created.append(
                self.repo.create(
                    code=definition.code,
                    name=definition.name,
                    category=definition.category,
                    price=definition.price,
                    billing_cycle=definition.billing_cycle,
                    gateway_plan_id=definition.gateway_plan_id,
                )
            )
        self.db.commit()
        if created:
            logger.info("Seeded %d subscription plans", len(created))
        return created
