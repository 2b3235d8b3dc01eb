import logging
from typing import Optional

from storefront.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler once; later calls only adjust the level."""
    global _configured
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    if not _configured:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
        _configured = True
    logging.getLogger("storefront").setLevel(resolved)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
