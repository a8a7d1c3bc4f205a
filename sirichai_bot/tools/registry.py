"""
Tool Registry

Holds the functions the model may call and renders them as Gemini
function declarations. Handlers are async callables returning the text
handed back to the model.
"""

from typing import Any, Awaitable, Callable, Dict, List
from dataclasses import dataclass
import logging

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Per-turn facts a tool may need; never stored on the agent"""
    authorized: bool = False


ToolHandler = Callable[[Dict[str, Any], ToolContext], Awaitable[str]]


@dataclass
class Tool:
    """Callable function definition"""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler


class ToolNotFoundError(ValueError):
    """Raised when the model asks for a function that is not registered"""


class ToolRegistry:
    """Registry of functions exposed to the model"""

    def __init__(self):
        self.tools: Dict[str, Tool] = {}

    def register_tool(self, tool: Tool):
        """Register a tool"""
        if tool.name in self.tools:
            logger.warning(f"Tool {tool.name} already registered, overwriting")

        self.tools[tool.name] = tool
        logger.info(f"Registered tool: {tool.name}")

    def get_tool(self, name: str) -> Tool:
        """Get a registered tool by name"""
        if name not in self.tools:
            raise ToolNotFoundError(f"Tool {name} not found. Available tools: {list(self.tools.keys())}")
        return self.tools[name]

    def list_tools(self) -> List[str]:
        """List all registered tool names"""
        return list(self.tools.keys())

    async def invoke_tool(self, tool_name: str, args: Dict[str, Any], context: ToolContext) -> str:
        """
        Invoke a tool

        Args:
            tool_name: Name of the tool to invoke
            args: Arguments supplied by the model
            context: Per-turn context (authorization)

        Returns:
            Text result for the model

        Raises:
            ToolNotFoundError: If the tool is not registered
        """
        tool = self.get_tool(tool_name)
        return await tool.handler(args, context)

    def get_function_declarations(self) -> List[Dict[str, Any]]:
        """Gemini functionDeclarations for all registered tools"""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            }
            for tool in self.tools.values()
        ]
