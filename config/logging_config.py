"""
Logging Configuration

One setup call per process (API, worker, scripts). Loggers are named
under "ordino." so the service, route and worker logs share a format.
"""

import logging
import sys
from datetime import date
from typing import Optional

from config.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = (
    "httpx", "httpcore", "openai", "LiteLLM", "litellm", "asyncio", "arq.jobs", "multipart",
)


def setup_logging(log_level: Optional[str] = None, process: str = "api") -> logging.Logger:
    """
    Configure root logging.

    The console gets log_level (settings.log_level by default). When
    settings.log_to_file is on, everything at DEBUG also goes to
    data/logs/ordino_<process>_<YYYYMMDD>.log.
    """
    level = (log_level or settings.log_level).upper()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(getattr(logging, level, logging.INFO))
    handlers = [console]

    if settings.log_to_file:
        log_file = settings.logs_dir / f"ordino_{process}_{date.today():%Y%m%d}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("ordino")
