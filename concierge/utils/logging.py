# =============================================
# File: concierge/utils/logging.py
# Purpose: loguru sink configuration (rotating file next to the default stderr sink)
# =============================================
import os

from loguru import logger

LOG_FILE = os.getenv("LOG_FILE", "logs/concierge.log")

_configured = False

def configure_logging(path: str = LOG_FILE) -> None:
    """Attach the rotating file sink once per process."""
    global _configured
    if _configured:
        return
    logger.add(path, rotation="10 MB", enqueue=True, level=os.getenv("LOG_LEVEL", "INFO").upper())
    _configured = True
