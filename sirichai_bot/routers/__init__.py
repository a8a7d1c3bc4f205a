"""HTTP routers: JSON chat API and LINE webhook."""

from .chat import router as chat_router
from .line_webhook import router as line_webhook_router

__all__ = ["chat_router", "line_webhook_router"]
