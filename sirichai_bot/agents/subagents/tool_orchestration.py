"""
Tool Orchestration Subagent

Executes one round of model-issued function calls, turns the results into
functionResponse parts and records what each round searched for.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging

from sirichai_bot.agents.gemini_client import FunctionCall
from sirichai_bot.tools.base_tool import ToolError
from sirichai_bot.tools.registry import ToolContext, ToolNotFoundError, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class RoundOutcome:
    """Results of executing every call of one model reply"""
    response_parts: List[Dict[str, Any]] = field(default_factory=list)
    criteria: List[Any] = field(default_factory=list)


def extract_search_criteria(call: FunctionCall) -> Optional[Any]:
    """
    What a call searched for, for analytics

    Returns:
        A list of category names (search_products), a dict (detail/quotation) or None
    """
    args = call.args or {}
    if call.name == "search_products" and "criterias" in args:
        return list(args["criterias"] or [])
    if call.name == "search_product_detail" and "productName" in args:
        return {"productName": args["productName"]}
    if call.name == "generate_quotation":
        return {
            "quotaDetail": args.get("quotaDetail", []),
            "priceType": args.get("priceType", ""),
        }
    return None


class ToolOrchestrationSubagent:
    """
    Subagent for executing function calls

    Responsibilities:
    - Run every call against the tool registry
    - Convert tool errors into text the model can read
    - Collect per-round search criteria
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def execute_tool(self, call: FunctionCall, context: ToolContext) -> str:
        """
        Execute a single function call

        Args:
            call: Function call issued by the model
            context: Per-turn context (authorization)

        Returns:
            Result text for the model; failures are reported as text too
        """
        try:
            result = await self.registry.invoke_tool(call.name, call.args or {}, context)
            logger.info(f"Tool {call.name} returned {len(result)} chars")
            return result

        except ToolError as e:
            logger.warning(f"Tool {call.name} rejected call: {e.code} - {e.message}")
            return e.message

        except ToolNotFoundError:
            logger.error(f"Unknown function requested: {call.name}. Available: {self.registry.list_tools()}")
            return f"Unknown function: {call.name}"

    async def execute_round(self, calls: List[FunctionCall], context: ToolContext) -> RoundOutcome:
        """Execute all calls of one model reply in order"""
        outcome = RoundOutcome()
        for call in calls:
            logger.info(f"Calling: {call.name}({json.dumps(call.args, ensure_ascii=False)})")

            criteria = extract_search_criteria(call)
            if isinstance(criteria, list):
                outcome.criteria.extend(criteria)
            elif criteria is not None:
                outcome.criteria.append(criteria)

            result = await self.execute_tool(call, context)
            outcome.response_parts.append({
                "functionResponse": {
                    "name": call.name,
                    "response": {"content": result},
                }
            })
        return outcome


def create_tool_orchestration_subagent(registry: ToolRegistry) -> ToolOrchestrationSubagent:
    """Factory function to create tool orchestration subagent"""
    return ToolOrchestrationSubagent(registry)
