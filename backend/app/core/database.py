import logging
from collections.abc import Callable, Generator
from typing import Any, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

engine = create_engine(
    settings.APP_DATABASE_DSN,
    connect_args=({"check_same_thread": False} if "sqlite" in settings.APP_DATABASE_DSN else {}),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()

OPTIMISTIC_RETRY_ATTEMPTS = 3


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def run_with_optimistic_retry(
    db: Session,
    operation: Callable[[], T],
    attempts: int = OPTIMISTIC_RETRY_ATTEMPTS,
) -> T:
    """Run ``operation`` and commit, retrying when a versioned row changed underneath.

    ``operation`` must re-read the rows it modifies; after a rollback the
    session's instances are expired and reload on access.
    """
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            if attempt == attempts:
                logger.error("Concurrent update conflict persisted after %d attempts", attempts)
                raise
            logger.warning(
                "Concurrent update detected, retrying (attempt %d/%d)", attempt, attempts
            )
    raise AssertionError("unreachable")  # pragma: no cover


def init_db() -> None:
    """Initialize database tables."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
