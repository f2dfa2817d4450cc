"""
Logging setup for the rag_chat package.

Every module logs through `logging.getLogger(__name__)`; this only attaches a
single handler to the package logger so records show up when the app runs.
"""

import logging

PACKAGE_LOGGER = "rag_chat"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Provider SDKs are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("langsmith").setLevel(logging.WARNING)
    return logger
