"""
Logging setup shared by the API process and the RQ workers.
"""

import logging

from espelho.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = None):
    """Configure root logging once (idempotent: basicConfig ignores repeats)."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    # Provider SDKs are chatty at INFO (every HTTP request)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


def mask_secret(value: str) -> str:
    """Show only the edges of a secret: 'AIzaSyAbcd...wxyz'."""
    if not value:
        return "<missing>"
    if len(value) <= 14:
        return "***"
    return f"{value[:10]}...{value[-4:]}"
