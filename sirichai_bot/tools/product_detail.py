"""search_product_detail: fetch specifications for one exact product name."""

from typing import Any, Dict, Optional

from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools.base_tool import ToolError, log_tool_invocation, require_product_api
from sirichai_bot.tools.registry import Tool, ToolContext, ToolRegistry

TOOL_NAME = "search_product_detail"


class ProductDetailTool:
    def __init__(self, product_api: Optional[ProductAPIClient]):
        self.product_api = product_api

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> str:
        log_tool_invocation(TOOL_NAME, args)
        product_api = require_product_api(self.product_api)

        product_name = args.get("productName") or ""
        if not product_name:
            raise ToolError(code="VALIDATION_ERROR", message="No product name provided.")

        result = await product_api.get_product_detail(product_name)
        return result if result is not None else "Product details not found."


def register_product_detail_tool(registry: ToolRegistry, product_api: Optional[ProductAPIClient]):
    """Register search_product_detail with the registry"""
    tool = ProductDetailTool(product_api)

    registry.register_tool(Tool(
        name=TOOL_NAME,
        description=(
            "Get detailed product specifications (weight, size, thickness, quantity per pack). "
            "CRITICAL: (1) MUST use EXACT product name from search_products() results - NEVER use "
            "customer's informal name directly, (2) If you don't have exact product name from previous "
            "search_products(), call search_products() FIRST to get it, (3) ALWAYS call this function "
            'for spec questions - NEVER say "information not available" without trying. Trigger keywords: '
            "น้ำหนัก/weight, หนา/thickness, ขนาด/size/dimensions, กี่ชิ้นต่อแพ็ค/quantity per pack."
        ),
        parameters={
            "type": "object",
            "properties": {
                "productName": {
                    "type": "string",
                    "description": (
                        "EXACT complete product name from search_products() results. Must include ALL "
                        "characters: brackets [], braces {}, parentheses (), numbers, Thai/English text. "
                        "NEVER use customer's informal product name."
                    ),
                }
            },
            "required": ["productName"],
        },
        handler=tool.execute,
    ))
