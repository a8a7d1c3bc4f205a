"""
generate_quotation: build a quotation PDF for products in the conversation.

Restricted to authorized users. The authorization check runs here, before
any request to the quotation endpoint, whatever the model decided.
"""

from typing import Any, Dict, Optional

from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools.base_tool import ToolError, log_tool_invocation, require_product_api
from sirichai_bot.tools.registry import Tool, ToolContext, ToolRegistry

TOOL_NAME = "generate_quotation"
PRICE_TYPES = ["ss", "s", "a", "b", "c", "vb", "vc", "d", "e", "f"]

UNAUTHORIZED_MESSAGE = "ไม่สามารถสร้างใบเสนอราคาได้ค่ะ คำสั่งนี้สำหรับผู้ใช้ที่ได้รับอนุญาตเท่านั้น"
INVALID_PRICE_TYPE_MESSAGE = "ไม่สามารถสร้างใบเสนอราคาได้ คำสั่งนี้สำหรับผู้ใช้ที่ได้รับอนุญาตเท่านั้น"


class GenerateQuotationTool:
    def __init__(self, product_api: Optional[ProductAPIClient]):
        self.product_api = product_api

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> str:
        log_tool_invocation(TOOL_NAME, args)
        product_api = require_product_api(self.product_api)

        if not context.authorized:
            raise ToolError(code="UNAUTHORIZED", message=UNAUTHORIZED_MESSAGE)

        quota_detail = args.get("quotaDetail") or []
        price_type = args.get("priceType") or ""
        if not quota_detail:
            raise ToolError(code="VALIDATION_ERROR", message="No products provided for quotation.")
        if price_type not in PRICE_TYPES:
            raise ToolError(
                code="VALIDATION_ERROR",
                message=INVALID_PRICE_TYPE_MESSAGE,
                details={"priceType": price_type},
            )

        result = await product_api.generate_quotation(list(quota_detail), price_type)
        return result if result is not None else "Failed to generate quotation."


def register_generate_quotation_tool(registry: ToolRegistry, product_api: Optional[ProductAPIClient]):
    """Register generate_quotation with the registry"""
    tool = GenerateQuotationTool(product_api)

    registry.register_tool(Tool(
        name=TOOL_NAME,
        description=(
            "Generate a fast quotation PDF from products discussed in the conversation. CRITICAL: ONLY "
            'call this function when the user message contains "ออกใบเสนอราคา" or "สร้างใบเสนอราคา" AND '
            f"includes a valid price type ({'|'.join(PRICE_TYPES)}). NEVER call this function for product "
            'selection messages like "เอา [product]" or any other messages that do not explicitly request '
            "a quotation."
        ),
        parameters={
            "type": "object",
            "properties": {
                "quotaDetail": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "productName": {
                                "type": "string",
                                "description": "EXACT product name from search_products() results discussed in the conversation",
                            },
                            "amount": {
                                "type": "number",
                                "description": "Quantity of the product. Use the amount discussed in conversation, or ask the user if not specified.",
                            },
                        },
                        "required": ["productName", "amount"],
                    },
                    "description": "Array of products with their names and quantities from the conversation history",
                },
                "priceType": {
                    "type": "string",
                    "enum": PRICE_TYPES,
                    "description": "Price type extracted from user message",
                },
            },
            "required": ["quotaDetail", "priceType"],
        },
        handler=tool.execute,
    ))
