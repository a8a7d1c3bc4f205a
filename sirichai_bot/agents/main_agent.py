"""
Main Orchestrator Agent

Runs one chat turn against Gemini: builds the request from history and
the uploaded catalog, executes the functions the model asks for, and
feeds their results back until the model answers in text or the round
budget is spent.
"""

import base64
import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sirichai_bot.agents.gemini_client import (
    ErrorResult,
    FunctionCallResult,
    GeminiClient,
    GeminiResult,
    TextResult,
)
from sirichai_bot.agents.skills.error_recovery import TOO_MANY_CALLS_APOLOGY, error_recovery_skill
from sirichai_bot.agents.subagents.tool_orchestration import create_tool_orchestration_subagent
from sirichai_bot.services.gemini_files import GeminiFileError, GeminiFileManager
from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools.registry import ToolContext, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer service assistant for Sirichai Electric. Follow the instructions and "
    "use the product catalog information provided in the context. IMPORTANT: Always respond in the "
    "same language the customer uses. If they write in English, respond in English. If they write in "
    "Thai, respond in Thai."
)

DEFAULT_IMAGE_PROMPT = (
    "The customer sent this image. Analyze it. If it shows electrical products, identify the type and "
    "search the catalog. If not product-related, describe what you see and ask how you can help."
)

CATALOG_CACHE_KEY = "catalog"
CATALOG_DISPLAY_NAME = "Sirichai Electric Product Catalog"
MAX_ADDITIONAL_ROUNDS = 2

THAI_PATTERN = re.compile(r"[\u0E00-\u0E7F]")


@dataclass
class ChatResult:
    """Outcome of one chat turn"""
    success: bool
    response: str
    language: str
    tokens_used: int = 0
    search_criteria: Optional[str] = None  # JSON, one list per function-call round
    error: Optional[str] = None


def detect_language(message: str) -> str:
    return "th" if THAI_PATTERN.search(message or "") else "en"


def load_system_prompt(path: Optional[str]) -> str:
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            text = f.read().strip()
        if text:
            return text
    return DEFAULT_SYSTEM_PROMPT


class ChatbotAgent:
    """
    Main orchestrator agent for the product chatbot

    Responsibilities:
    - Keep the catalog file uploaded and attached to requests
    - Convert stored history into Gemini contents
    - Run the bounded function-calling loop
    - Sum token usage and search criteria over the turn

    Authorization is passed per call, so one instance can serve
    concurrent requests.
    """

    def __init__(
        self,
        gemini: GeminiClient,
        registry: ToolRegistry,
        product_api: Optional[ProductAPIClient] = None,
        file_manager: Optional[GeminiFileManager] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_additional_rounds: int = MAX_ADDITIONAL_ROUNDS,
    ):
        self.gemini = gemini
        self.registry = registry
        self.product_api = product_api
        self.file_manager = file_manager
        self.system_prompt = system_prompt
        self.max_additional_rounds = max_additional_rounds
        self.orchestrator = create_tool_orchestration_subagent(registry)
        self.catalog_file_uri: Optional[str] = None

        if not self.gemini.function_declarations:
            self.gemini.function_declarations = registry.get_function_declarations()

        logger.info(f"ChatbotAgent initialized with tools: {registry.list_tools()}")

    async def prepare_context(self) -> Optional[str]:
        """
        Make sure the catalog summary is uploaded to the File API.

        Returns:
            URI of the catalog file, or None when unavailable
        """
        if self.product_api is None or self.file_manager is None:
            return self.catalog_file_uri

        summary = await self.product_api.get_catalog_summary()
        if not summary:
            logger.warning("Product catalog: skipped (no data)")
            self.catalog_file_uri = None
            return None

        try:
            reference = await self.file_manager.get_or_upload(CATALOG_CACHE_KEY, summary, CATALOG_DISPLAY_NAME)
        except GeminiFileError as e:
            logger.error(f"Product catalog upload failed: {str(e)}")
            self.catalog_file_uri = None
            return None

        logger.info(f"Product catalog: {'cached' if reference.cached else 'uploaded'} - {reference.name}")
        self.catalog_file_uri = reference.uri
        return reference.uri

    async def refresh_context(self) -> Optional[str]:
        """Drop cached catalog and file references, then fetch and upload again"""
        logger.info("Force refreshing uploaded files...")
        if self.file_manager is not None:
            self.file_manager.clear_cache()
        if self.product_api is not None:
            self.product_api.clear_cache()
        return await self.prepare_context()

    @staticmethod
    def build_history(history: Sequence[Any]) -> List[Dict[str, Any]]:
        """Stored messages -> Gemini contents (everything not from the user is the model)"""
        return [
            {
                "role": "user" if message.role == "user" else "model",
                "parts": [{"text": message.content}],
            }
            for message in history
        ]

    async def chat(
        self,
        message: str,
        history: Sequence[Any] = (),
        authorized: bool = False,
    ) -> ChatResult:
        """
        Answer a text message.

        Args:
            message: User message
            history: Prior messages (objects with role and content), oldest first
            authorized: Whether the user may generate quotations

        Returns:
            ChatResult with the reply or the failure
        """
        language = detect_language(message)
        contents = self.build_history(history)
        contents.append({"role": "user", "parts": [{"text": message}]})
        return await self._run_turn(contents, ToolContext(authorized=authorized), language)

    async def chat_with_image(
        self,
        image_data: bytes,
        mime_type: str = "image/jpeg",
        history: Sequence[Any] = (),
        text: Optional[str] = None,
        authorized: bool = False,
    ) -> ChatResult:
        """Answer an image (with optional caption)"""
        contents = self.build_history(history)
        contents.append({
            "role": "user",
            "parts": [
                {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(image_data).decode("ascii")}},
                {"text": text or DEFAULT_IMAGE_PROMPT},
            ],
        })
        return await self._run_turn(contents, ToolContext(authorized=authorized), "th")

    async def _generate(self, contents: List[Dict[str, Any]], label: str) -> GeminiResult:
        return await self.gemini.generate(
            contents, self.system_prompt, file_uri=self.catalog_file_uri, label=label
        )

    async def _run_turn(self, contents: List[Dict[str, Any]], context: ToolContext, language: str) -> ChatResult:
        tokens_used = 0
        criteria: List[List[Any]] = []

        try:
            await self.prepare_context()

            result = await self._generate(contents, "Initial Call")
            tokens_used += result.tokens_used

            if isinstance(result, ErrorResult) and error_recovery_skill.is_empty_stop(result.error):
                logger.warning("Empty STOP persisted - refreshing catalog and retrying once")
                await self.refresh_context()
                result = await self._generate(contents, "Initial Call (after refresh)")
                tokens_used += result.tokens_used

            # First round plus a bounded number of chained rounds
            for round_number in range(1, self.max_additional_rounds + 2):
                if not isinstance(result, FunctionCallResult):
                    break
                logger.info(f"Function call round {round_number}: {[call.name for call in result.calls]}")

                outcome = await self.orchestrator.execute_round(result.calls, context)
                if outcome.criteria:
                    criteria.append(outcome.criteria)
                contents = contents + [
                    {"role": "model", "parts": result.parts},
                    {"role": "user", "parts": outcome.response_parts},
                ]

                result = await self._generate(contents, f"Follow-up Call {round_number}")
                tokens_used += result.tokens_used

        except Exception as e:
            logger.error(f"Chat turn failed: {str(e)}", exc_info=True)
            return ChatResult(
                success=False,
                response="",
                language=language,
                tokens_used=tokens_used,
                search_criteria=self._encode_criteria(criteria),
                error=str(e),
            )

        search_criteria = self._encode_criteria(criteria)

        if isinstance(result, TextResult):
            logger.info(f"Got final text response ({len(result.text)} chars, {tokens_used} tokens)")
            return ChatResult(
                success=True,
                response=result.text,
                language=language,
                tokens_used=tokens_used,
                search_criteria=search_criteria,
            )

        if isinstance(result, FunctionCallResult):
            logger.error("Too many chained function calls - stopping")
            return ChatResult(
                success=False,
                response=TOO_MANY_CALLS_APOLOGY,
                language=language,
                tokens_used=tokens_used,
                search_criteria=search_criteria,
                error="Too many function calls - possible infinite loop",
            )

        logger.error(f"Chatbot failed: {result.error}")
        return ChatResult(
            success=False,
            response="",
            language=language,
            tokens_used=tokens_used,
            search_criteria=search_criteria,
            error=result.error,
        )

    @staticmethod
    def _encode_criteria(criteria: List[List[Any]]) -> Optional[str]:
        return json.dumps(criteria, ensure_ascii=False) if criteria else None
