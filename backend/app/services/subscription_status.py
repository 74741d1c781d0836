"""Status precedence rules applied whenever a subscription status changes.

Gateway webhooks can arrive out of order, so a late ``subscription.authenticated``
must not pull an ACTIVE subscription back. Statuses are ranked and a change is
only applied when it moves forward, or when it is one of the known downgrades
and recoveries the gateway legitimately produces.
"""

import logging
from datetime import datetime
from typing import Any

from app.models.shared import as_utc
from app.models.user_subscription import SubscriptionStatus

logger = logging.getLogger(__name__)

STATUS_PRECEDENCE: dict[SubscriptionStatus, int] = {
    SubscriptionStatus.CREATED: 0,
    SubscriptionStatus.PENDING: 0,
    SubscriptionStatus.AUTHENTICATED: 1,
    SubscriptionStatus.ACTIVE: 2,
    SubscriptionStatus.PAUSED: 3,
    SubscriptionStatus.HALTED: 3,
    SubscriptionStatus.COMPLETED: 4,
    SubscriptionStatus.EXPIRED: 4,
    SubscriptionStatus.CANCELLED: 4,
}

# Lower-precedence moves the gateway makes during payment retries and pauses
ALLOWED_DOWNGRADES: frozenset[tuple[SubscriptionStatus, SubscriptionStatus]] = frozenset(
    {
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING),
        (SubscriptionStatus.PENDING, SubscriptionStatus.HALTED),
        (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED),
    }
)

RECOVERABLE_STATUSES: frozenset[SubscriptionStatus] = frozenset(
    {
        SubscriptionStatus.PENDING,
        SubscriptionStatus.HALTED,
        SubscriptionStatus.PAUSED,
    }
)


def is_status_transition_allowed(
    current: SubscriptionStatus | str, new: SubscriptionStatus | str
) -> bool:
    current = SubscriptionStatus(current)
    new = SubscriptionStatus(new)

    if STATUS_PRECEDENCE[new] > STATUS_PRECEDENCE[current]:
        return True
    if (current, new) in ALLOWED_DOWNGRADES:
        return True
    return new == SubscriptionStatus.ACTIVE and current in RECOVERABLE_STATUSES


def is_recovery(current: SubscriptionStatus | str, new: SubscriptionStatus | str) -> bool:
    """True when a failing or paused subscription comes back to ACTIVE."""
    return (
        SubscriptionStatus(new) == SubscriptionStatus.ACTIVE
        and SubscriptionStatus(current) in RECOVERABLE_STATUSES
    )


def resolve_status(
    current: SubscriptionStatus | str, new: SubscriptionStatus | str
) -> SubscriptionStatus:
    """Return the status to store: ``new`` when allowed, otherwise ``current``."""
    current = SubscriptionStatus(current)
    new = SubscriptionStatus(new)
    if current == new:
        return current
    if is_status_transition_allowed(current, new):
        return new
    logger.info("Keeping status %s, ignoring lower-precedence %s", current.value, new.value)
    return current


def safe_billing_cycle_update(
    current_start: datetime | None,
    current_end: datetime | None,
    new_start: datetime | None,
    new_end: datetime | None,
) -> dict[str, Any]:
    """Fields to write for an incoming billing cycle, or an empty dict.

    The stored cycle is only replaced when none is stored yet or the incoming
    cycle starts later than the stored one.
    """
    if new_start is None and new_end is None:
        return {}

    stored_start = as_utc(current_start)
    if stored_start is None and current_end is None:
        return {"current_start": new_start, "current_end": new_end}

    if new_start is not None and (stored_start is None or as_utc(new_start) > stored_start):
        return {"current_start": new_start, "current_end": new_end}

    return {}
