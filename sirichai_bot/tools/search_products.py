"""search_products: look up products by exact catalog category names."""

from typing import Any, Dict, Optional

from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools.base_tool import ToolError, log_tool_invocation, require_product_api
from sirichai_bot.tools.registry import Tool, ToolContext, ToolRegistry

TOOL_NAME = "search_products"
MAX_CATEGORIES = 3


class SearchProductsTool:
    """Searches the catalog by category names copied from the catalog file"""

    def __init__(self, product_api: Optional[ProductAPIClient]):
        self.product_api = product_api

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> str:
        log_tool_invocation(TOOL_NAME, args)
        product_api = require_product_api(self.product_api)

        criterias = args.get("criterias") or []
        if not criterias:
            raise ToolError(code="VALIDATION_ERROR", message="No search criteria provided.")

        result = await product_api.search_products(list(criterias))
        return result if result is not None else "No products found."


def register_search_products_tool(registry: ToolRegistry, product_api: Optional[ProductAPIClient]):
    """Register search_products with the registry"""
    tool = SearchProductsTool(product_api)

    registry.register_tool(Tool(
        name=TOOL_NAME,
        description=(
            "Search for products by exact category names from the catalog file. Returns product name, "
            "price, and unit grouped by category. CRITICAL: Copy complete category names including all "
            "text inside {}, [], () - these contain brand/model codes. "
            f"Never exceed {MAX_CATEGORIES} categories."
        ),
        parameters={
            "type": "object",
            "properties": {
                "criterias": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": (
                        'Array of EXACT category names from catalog (the part before " | "). Must include '
                        "ALL special characters: {}, [], () and their contents. "
                        f"Maximum {MAX_CATEGORIES} categories."
                    ),
                }
            },
            "required": ["criterias"],
        },
        handler=tool.execute,
    ))
