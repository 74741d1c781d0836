"""Cancels subscriptions abandoned at checkout.

A subscription is created at the gateway before the user pays. If the
checkout is closed or the payment never completes, the local row stays in
CREATED forever and would block the category. Rows older than the configured
timeout are cancelled through the regular immediate-cancel command.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.shared import utc_now
from app.repositories.user_subscription_repository import UserSubscriptionRepository
from app.schemas.subscription import SubscriptionActionInput
from app.services.payment_gateway import PaymentGatewayBase, get_payment_gateway
from app.services.subscription_commands import CancellationReason, SubscriptionCommandService

logger = logging.getLogger(__name__)


class OrphanCleanupService:
    def __init__(self, db: Session, gateway: PaymentGatewayBase | None = None):
        self.db = db
        self.gateway = gateway or get_payment_gateway()
        self.subscription_repo = UserSubscriptionRepository(db)

    def cutoff(self, now: datetime | None = None) -> datetime:
        now = now or utc_now()
        return now - timedelta(minutes=settings.ORPHAN_SUBSCRIPTION_TIMEOUT_MINUTES)

    def cleanup_orphaned_subscriptions(self, now: datetime | None = None) -> int:
        """Cancel CREATED subscriptions older than the timeout.

        Returns:
            Number of subscriptions cancelled. Failures are logged and skipped.
        """
        cutoff = self.cutoff(now)
        orphans = self.subscription_repo.get_created_before(cutoff)
        if not orphans:
            logger.debug("No orphaned subscriptions created before %s", cutoff.isoformat())
            return 0

        logger.info("Found %d orphaned subscriptions created before %s", len(orphans), cutoff)
        commands = SubscriptionCommandService(self.db, self.gateway)

        cleaned = 0
        for subscription in orphans:
            subscription_id = subscription.id
            result = commands.cancel_subscription_immediately(
                SubscriptionActionInput(
                    user_id=subscription.user_id, subscription_id=subscription_id
                ),
                reason=CancellationReason.PAYMENT_FAILED,
            )
            if result.ok:
                cleaned += 1
            else:
                logger.error(
                    "Failed to clean up orphaned subscription %s: %s", subscription_id, result.error
                )

        logger.info("Cleaned up %d of %d orphaned subscriptions", cleaned, len(orphans))
        return cleaned


def cleanup_orphaned_subscriptions(
    db: Session,
    gateway: PaymentGatewayBase | None = None,
    now: datetime | None = None,
) -> int:
    return OrphanCleanupService(db, gateway).cleanup_orphaned_subscriptions(now)
