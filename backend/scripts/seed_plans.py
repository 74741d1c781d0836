"""Create missing tables and insert the default coaching plan catalog.

Plans that already exist (matched by code) are left untouched, so the script
is safe to run on every deploy.
"""

import logging

from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging
from app.services.plan_catalog import PlanCatalog

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        created = PlanCatalog(db).seed_default_plans()
    finally:
        db.close()
    logger.info("Seeded %d plans", len(created))
    return len(created)


if __name__ == "__main__":
    main()
