"""
Logging configuration
"""

import logging
import sys
from core.config import settings

# Third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    # exifread complains about every non-image file it is handed
    "exifread": logging.ERROR,
    # a tick skipped while the previous one runs is logged at WARNING
    "apscheduler": logging.ERROR,
}


def setup_logging(level: str = None):
    """Configure application logging on stdout"""
    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(quiet_level, log_level))
    
    logging.getLogger(__name__).info(
        f"Logging configured at {level_name} level (environment: {settings.ENVIRONMENT})"
    )
