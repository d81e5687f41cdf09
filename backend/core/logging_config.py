"""Logging setup shared by scripts and workers that run the payroll pipeline."""

import logging

from .config import get_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = None):
    """Configure root logging once, using the settings' log level by default."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=LOG_FORMAT
    )

    # SQL echo is controlled by the engine; keep the engine logger quiet otherwise
    if not settings.log_sql_queries:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
