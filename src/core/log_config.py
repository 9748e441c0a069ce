"""Process-wide logging setup."""

import logging

from src.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at application start."""
    resolved = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # SQL echo is controlled by settings.debug on the engine, keep the logger quieter
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
