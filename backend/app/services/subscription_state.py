"""Effective subscription state of a user, and what the subscribe buttons show.

A user holds at most one live subscription per category. A subscription whose
``cancel_at_cycle_end`` flag is set still occupies its category until the
gateway confirms the cancellation, but it no longer counts as active.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.shared import as_utc
from app.models.subscription_plan import SubscriptionCategory, SubscriptionPlan
from app.models.user_subscription import SubscriptionStatus, UserSubscription
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.repositories.user_subscription_repository import UserSubscriptionRepository

logger = logging.getLogger(__name__)


class EffectiveSubscriptionState(str, Enum):
    NO_SUBSCRIPTIONS = "NO_SUBSCRIPTIONS"
    ACTIVE_SUBSCRIPTIONS = "ACTIVE_SUBSCRIPTIONS"
    CANCELLATION_SCHEDULED = "CANCELLATION_SCHEDULED"
    MIXED_STATE = "MIXED_STATE"


class ButtonAction(str, Enum):
    SUBSCRIBE = "subscribe"
    CHANGE_PLAN = "change_plan"
    DISABLED = "disabled"


@dataclass(frozen=True)
class HeldSubscription:
    """A non-terminal subscription together with its plan."""

    subscription: UserSubscription
    plan: SubscriptionPlan

    @property
    def category(self) -> SubscriptionCategory:
        return SubscriptionCategory(self.plan.category)

    @property
    def ends_at(self) -> datetime | None:
        return as_utc(self.subscription.current_end)


@dataclass
class SubscriptionStateResult:
    state: EffectiveSubscriptionState
    active_subscriptions: list[HeldSubscription] = field(default_factory=list)
    scheduled_cancellations: list[HeldSubscription] = field(default_factory=list)
    available_categories: list[SubscriptionCategory] = field(default_factory=list)

    @property
    def has_active_subscriptions(self) -> bool:
        return bool(self.active_subscriptions)

    @property
    def has_scheduled_cancellations(self) -> bool:
        return bool(self.scheduled_cancellations)

    @property
    def show_upgrade_options_only(self) -> bool:
        """True once every category is taken by an active subscription."""
        return not self.available_categories

    def active_in(self, category: SubscriptionCategory) -> HeldSubscription | None:
        return next((h for h in self.active_subscriptions if h.category == category), None)

    def scheduled_in(self, category: SubscriptionCategory) -> HeldSubscription | None:
        return next((h for h in self.scheduled_cancellations if h.category == category), None)


@dataclass
class CategoryButtonState:
    category: SubscriptionCategory
    button_text: str
    button_action: ButtonAction
    is_disabled: bool
    disabled_reason: str | None = None
    has_current_plan: bool = False
    ends_at: datetime | None = None


@dataclass
class PlanChangeOptions:
    subscription_id: UUID
    current_plan: SubscriptionPlan
    upgrades: list[SubscriptionPlan] = field(default_factory=list)
    downgrades: list[SubscriptionPlan] = field(default_factory=list)


def classify_state(active_count: int, scheduled_count: int) -> EffectiveSubscriptionState:
    if active_count and scheduled_count:
        return EffectiveSubscriptionState.MIXED_STATE
    if active_count:
        return EffectiveSubscriptionState.ACTIVE_SUBSCRIPTIONS
    if scheduled_count:
        return EffectiveSubscriptionState.CANCELLATION_SCHEDULED
    return EffectiveSubscriptionState.NO_SUBSCRIPTIONS


def build_state(held: list[HeldSubscription]) -> SubscriptionStateResult:
    active = [h for h in held if not h.subscription.cancel_at_cycle_end]
    scheduled = [h for h in held if h.subscription.cancel_at_cycle_end]
    taken = {h.category for h in active}

    return SubscriptionStateResult(
        state=classify_state(len(active), len(scheduled)),
        active_subscriptions=active,
        scheduled_cancellations=scheduled,
        available_categories=[c for c in SubscriptionCategory if c not in taken],
    )


def format_end_date(value: datetime | None) -> str:
    """Human date used on buttons, e.g. ``15 Mar 2026``; "soon" when unknown."""
    if value is None:
        return "soon"
    return value.strftime("%d %b %Y")


def button_state_for_category(
    state: SubscriptionStateResult,
    category: SubscriptionCategory,
    plan_name: str,
) -> CategoryButtonState:
    # An active plan in the category wins over a scheduled cancellation
    if state.active_in(category) is not None:
        return CategoryButtonState(
            category=category,
            button_text="Change Plan",
            button_action=ButtonAction.CHANGE_PLAN,
            is_disabled=False,
            has_current_plan=True,
        )

    scheduled = state.scheduled_in(category)
    if scheduled is not None:
        end_date = format_end_date(scheduled.ends_at)
        return CategoryButtonState(
            category=category,
            button_text=f"Ends {end_date}",
            button_action=ButtonAction.DISABLED,
            is_disabled=True,
            disabled_reason=(
                f"Current plan ends on {end_date}. Wait for cancellation to complete."
            ),
            has_current_plan=True,
            ends_at=scheduled.ends_at,
        )

    return CategoryButtonState(
        category=category,
        button_text=f"Subscribe to {plan_name}",
        button_action=ButtonAction.SUBSCRIBE,
        is_disabled=False,
    )


class PlanButtonState(str, Enum):
    CURRENT = "current"
    SCHEDULED_END = "scheduled_end"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    SUBSCRIBE = "subscribe"
    CONFLICT_ALL_IN_ONE = "conflict_all_in_one"
    KEEP_ONE_ACTIVE = "keep_one_active"


class PlanActionType(str, Enum):
    CURRENT = "current"
    SUBSCRIBE = "subscribe"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    CANCEL_FIRST = "cancel_first"
    DISABLED = "disabled"


CYCLE_NAMES = {3: "Quarterly", 6: "Semi-Annual", 12: "Annual"}


@dataclass
class PlanMatrixItem:
    """How one catalog plan is offered to a user."""

    plan: SubscriptionPlan
    button_state: PlanButtonState
    button_text: str
    action_type: PlanActionType
    disabled: bool = False
    variant: str = "default"
    subscription_id: UUID | None = None
    ends_at: datetime | None = None
    conflict_subscription_ids: list[UUID] = field(default_factory=list)


def _plan_change_item(plan: SubscriptionPlan, held: HeldSubscription) -> PlanMatrixItem:
    cycle_name = CYCLE_NAMES.get(plan.billing_cycle, f"{plan.billing_cycle} Months")
    if plan.billing_cycle > held.plan.billing_cycle:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.UPGRADE,
            button_text=f"Upgrade to {cycle_name}",
            action_type=PlanActionType.UPGRADE,
            subscription_id=held.subscription.id,
        )
    return PlanMatrixItem(
        plan=plan,
        button_state=PlanButtonState.DOWNGRADE,
        button_text=f"Downgrade to {cycle_name}",
        action_type=PlanActionType.DOWNGRADE,
        variant="outline",
        subscription_id=held.subscription.id,
    )


def plan_matrix_item(state: SubscriptionStateResult, plan: SubscriptionPlan) -> PlanMatrixItem:
    """Button for ``plan`` given the user's state. The first matching rule wins."""
    category = SubscriptionCategory(plan.category)
    active = state.active_subscriptions
    active_ids = [h.subscription.id for h in active]
    active_in_category = state.active_in(category)
    scheduled_in_category = state.scheduled_in(category)

    if active_in_category is not None and active_in_category.plan.id == plan.id:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.CURRENT,
            button_text="Current Plan",
            action_type=PlanActionType.CURRENT,
            disabled=True,
            variant="secondary",
        )

    if scheduled_in_category is not None and scheduled_in_category.plan.id == plan.id:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.SCHEDULED_END,
            button_text=f"Ends {format_end_date(scheduled_in_category.ends_at)}",
            action_type=PlanActionType.DISABLED,
            disabled=True,
            variant="destructive",
            ends_at=scheduled_in_category.ends_at,
        )

    if active_in_category is not None:
        return _plan_change_item(plan, active_in_category)

    if category == SubscriptionCategory.ALL_IN_ONE and len(active) > 1:
        # Left enabled so the client can offer to cancel the other plans
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.CONFLICT_ALL_IN_ONE,
            button_text="Cancel other plans first",
            action_type=PlanActionType.DISABLED,
            variant="destructive",
            conflict_subscription_ids=active_ids,
        )

    if category == SubscriptionCategory.ALL_IN_ONE and len(active) == 1:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.UPGRADE,
            button_text="Upgrade to All-in-One",
            action_type=PlanActionType.UPGRADE,
            subscription_id=active[0].subscription.id,
        )

    all_in_one = [
        h.subscription.id for h in active if h.category == SubscriptionCategory.ALL_IN_ONE
    ]
    if all_in_one:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.CONFLICT_ALL_IN_ONE,
            button_text="Keep one plan active",
            action_type=PlanActionType.CANCEL_FIRST,
            disabled=True,
            variant="destructive",
            conflict_subscription_ids=all_in_one,
        )

    if len(active) >= 2:
        return PlanMatrixItem(
            plan=plan,
            button_state=PlanButtonState.KEEP_ONE_ACTIVE,
            button_text="Manage existing plans first",
            action_type=PlanActionType.CANCEL_FIRST,
            disabled=True,
            variant="destructive",
            conflict_subscription_ids=active_ids,
        )

    return PlanMatrixItem(
        plan=plan,
        button_state=PlanButtonState.SUBSCRIBE,
        button_text="Subscribe",
        action_type=PlanActionType.SUBSCRIBE,
    )


def build_plan_matrix(
    state: SubscriptionStateResult, plans: list[SubscriptionPlan]
) -> list[PlanMatrixItem]:
    return [plan_matrix_item(state, plan) for plan in plans]


class SubscriptionStateService:
    """Read-only view of a user's subscriptions. Never writes."""

    def __init__(self, db: Session):
        self.db = db
        self.subscription_repo = UserSubscriptionRepository(db)

    def get_effective_state(self, user_id: UUID) -> SubscriptionStateResult:
        rows = self.subscription_repo.get_non_terminal_with_plans(user_id)
        return build_state([HeldSubscription(subscription=s, plan=p) for s, p in rows])

    def get_available_categories(self, user_id: UUID) -> list[SubscriptionCategory]:
        return self.get_effective_state(user_id).available_categories

    def get_button_state(
        self, user_id: UUID, category: SubscriptionCategory, plan_name: str
    ) -> CategoryButtonState:
        return button_state_for_category(self.get_effective_state(user_id), category, plan_name)

    def should_show_upgrade_options_only(self, user_id: UUID) -> bool:
        return self.get_effective_state(user_id).show_upgrade_options_only

    def get_plan_matrix(self, user_id: UUID) -> list[PlanMatrixItem]:
        """Every active catalog plan with the button the user should see for it."""
        state = self.get_effective_state(user_id)
        plans = SubscriptionPlanRepository(self.db).get_all()
        return build_plan_matrix(state, plans)

    def get_available_plan_changes(self, user_id: UUID) -> list[PlanChangeOptions]:
        """Same-category plans each active subscription can move to."""
        state = self.get_effective_state(user_id)
        plans = SubscriptionPlanRepository(self.db).get_all()
        options = []
        for held in state.active_subscriptions:
            if held.subscription.status != SubscriptionStatus.ACTIVE.value:
                continue
            siblings = [
                p for p in plans if p.category == held.plan.category and p.id != held.plan.id
            ]
            options.append(
                PlanChangeOptions(
                    subscription_id=held.subscription.id,
                    current_plan=held.plan,
                    upgrades=[p for p in siblings if p.billing_cycle > held.plan.billing_cycle],
                    downgrades=[p for p in siblings if p.billing_cycle < held.plan.billing_cycle],
                )
            )
        return options
