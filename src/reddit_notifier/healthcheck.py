"""
Liveness probe for the Reddit Notifier.

Opens the database read-only and runs a trivial query. Exits 0 when the query
succeeds and 1 otherwise, so it can be used as a container health check.
"""

import sys

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .exceptions import ConfigurationError
from .storage.database import database_path

logger = structlog.get_logger(__name__)


def readonly_url(url: str) -> str:
    """SQLAlchemy URL that opens the database file read-only."""
    return f"sqlite:///file:{database_path(url)}?mode=ro&uri=true"


def check(url: str) -> bool:
    """
    Check that the database is reachable.

    Args:
        url: Database URL as configured for the daemon

    Returns:
        True if ``SELECT COUNT(*) FROM subscriptions`` succeeded
    """
    try:
        engine = create_engine(readonly_url(url))
    except ConfigurationError as e:
        logger.error("Healthcheck failed", error=str(e))
        return False

    try:
        with engine.connect() as conn:
            count = conn.execute(text("SELECT COUNT(*) FROM subscriptions")).scalar()
    except SQLAlchemyError as e:
        logger.error("Healthcheck failed", error=str(e))
        return False
    finally:
        engine.dispose()

    logger.debug("Healthcheck passed", subscriptions=count)
    return True


def main() -> None:
    """Console entry point."""
    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("Healthcheck failed", error=str(e))
        sys.exit(1)

    sys.exit(0 if check(settings.database_url) else 1)


if __name__ == "__main__":
    main()
