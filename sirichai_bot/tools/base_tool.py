"""
Base tool helpers

ToolError carries a message meant for the model: the orchestrator returns
it as the function result instead of failing the turn.
"""

from typing import Any, Dict, Optional
import logging

from sirichai_bot.services.product_api import ProductAPIClient

logger = logging.getLogger(__name__)


class ToolError(Exception):
    """Base exception for tool errors"""
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def require_product_api(product_api: Optional[ProductAPIClient]) -> ProductAPIClient:
    """
    Ensure the product API is configured

    Raises:
        ToolError: If the product API is unavailable
    """
    if product_api is None:
        raise ToolError(code="SERVICE_UNAVAILABLE", message="Product API service not available.")
    return product_api


def log_tool_invocation(tool_name: str, args: Dict[str, Any]) -> None:
    logger.info(f"Calling: {tool_name}({args})")
