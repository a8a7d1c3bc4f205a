"""CORS configuration: the chat API is called from the shop website and widgets."""
import logging

from fastapi.middleware.cors import CORSMiddleware

logger = logging.getLogger(__name__)


def add_cors_middleware(app):
    """Add CORS middleware allowing every origin."""
    logger.info("CORS: allowing all origins")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
