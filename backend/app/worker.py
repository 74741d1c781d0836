import logging
from typing import Any

from arq import cron

from app.core.database import SessionLocal
from app.core.logging import configure_logging
from app.services.orphan_cleanup import OrphanCleanupService
from app.services.plan_catalog import PlanCatalog
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging()


async def cleanup_orphaned_subscriptions_task(ctx: dict[str, Any]) -> int:
    """Background task: cancel subscriptions left in CREATED past the checkout timeout.

    Runs hourly.
    """
    db = SessionLocal()
    try:
        count = OrphanCleanupService(db).cleanup_orphaned_subscriptions()
        if count > 0:
            logger.info("Cleaned up %d orphaned subscriptions", count)
        return count
    finally:
        db.close()


async def seed_default_plans_task(ctx: dict[str, Any]) -> int:
    """Background task: insert catalog plans missing from the database."""
    db = SessionLocal()
    try:
        return len(PlanCatalog(db).seed_default_plans())
    finally:
        db.close()


class WorkerSettings:
    functions = [
        cleanup_orphaned_subscriptions_task,
        seed_default_plans_task,
    ]
    cron_jobs = [
        cron(cleanup_orphaned_subscriptions_task, minute={0}),  # hourly
    ]
    on_startup = startup
    redis_settings = redis_settings
