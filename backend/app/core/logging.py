import logging

from app.core.config import settings


def configure_logging() -> None:
    """Configure logging defaults for the API process and the worker."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
