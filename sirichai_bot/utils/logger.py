"""
Logging setup for the chatbot service.

Modules log through logging.getLogger(__name__); this configures the
root handler once so every module shares the same format.
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a stdout handler.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...)
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent adding handlers multiple times
    if not root.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)

    # httpx logs every request URL at INFO, and Gemini URLs carry the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
