"""
Functions the model may call during a chat turn.

build_tool_registry() wires every product tool against one product API client.
"""

from typing import Optional

from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools.generate_quotation import register_generate_quotation_tool
from sirichai_bot.tools.product_detail import register_product_detail_tool
from sirichai_bot.tools.registry import ToolContext, ToolRegistry
from sirichai_bot.tools.search_products import register_search_products_tool


def build_tool_registry(product_api: Optional[ProductAPIClient]) -> ToolRegistry:
    registry = ToolRegistry()
    register_search_products_tool(registry, product_api)
    register_product_detail_tool(registry, product_api)
    register_generate_quotation_tool(registry, product_api)
    return registry


__all__ = ["ToolContext", "ToolRegistry", "build_tool_registry"]
