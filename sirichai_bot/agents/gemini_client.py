"""
Gemini generateContent client

Sends one request (contents + system instruction + function declarations)
and classifies the reply as TextResult, FunctionCallResult or ErrorResult.
An empty reply whose finish reason is STOP is transient and retried with
increasing delay; every other failure is returned immediately.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
REQUEST_TIMEOUT = 60.0
MAX_ATTEMPTS = 3

EMPTY_REASON_HINTS = {
    "MAX_TOKENS": ". The conversation is too long. Please start a new conversation.",
    "SAFETY": ". Content was blocked by safety filters.",
    "RECITATION": ". Content was blocked due to recitation concerns.",
}
RATE_LIMIT_HINT = ". Please wait a moment or upgrade to paid tier for higher limits."


@dataclass
class FunctionCall:
    """A model-issued request to run a local function"""
    name: str
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TextResult:
    text: str
    tokens_used: int = 0


@dataclass
class FunctionCallResult:
    calls: List[FunctionCall]
    # functionCall parts ready to echo back as the model turn
    parts: List[Dict[str, Any]]
    tokens_used: int = 0


@dataclass
class ErrorResult:
    error: str
    tokens_used: int = 0


GeminiResult = Union[TextResult, FunctionCallResult, ErrorResult]


class EmptyStopResponse(Exception):
    """The model returned no parts but reported a normal STOP"""

    def __init__(self, tokens_used: int):
        self.tokens_used = tokens_used
        super().__init__("AI returned empty response: STOP")


def log_token_usage(data: Dict[str, Any], label: str) -> int:
    usage = data.get("usageMetadata") or {}
    total = usage.get("totalTokenCount", 0)
    logger.info(
        f"[{label}] Token Usage - Prompt: {usage.get('promptTokenCount', 0)}, "
        f"Completion: {usage.get('candidatesTokenCount', 0)}, Total: {total}, "
        f"Cached: {usage.get('cachedContentTokenCount', 0)}"
    )
    return total


def clean_function_call_part(part: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only name and args of a functionCall part (drops thoughtSignature)"""
    call = part.get("functionCall", {})
    cleaned: Dict[str, Any] = {}
    if "name" in call:
        cleaned["name"] = call["name"]
    if "args" in call:
        cleaned["args"] = call["args"] or {}
    return {"functionCall": cleaned}


def parse_response(data: Dict[str, Any], tokens_used: int) -> GeminiResult:
    """
    Classify a decoded generateContent response.

    Raises:
        EmptyStopResponse: when the reply is empty with finish reason STOP
    """
    candidates = data.get("candidates") or []
    candidate = candidates[0] if candidates else {}
    parts = (candidate.get("content") or {}).get("parts") or []

    if not parts:
        logger.error(f"Empty model response: {json.dumps(data, ensure_ascii=False)}")
        finish_reason = candidate.get("finishReason", "")
        error = "AI returned empty response"
        if finish_reason:
            error += f": {finish_reason}"
        if finish_reason != "STOP":
            return ErrorResult(error=error + EMPTY_REASON_HINTS.get(finish_reason, ""), tokens_used=tokens_used)
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            return ErrorResult(error=f"{error}. Block reason: {block_reason}", tokens_used=tokens_used)
        raise EmptyStopResponse(tokens_used)

    call_parts = [part for part in parts if "functionCall" in part]
    if call_parts:
        calls = [
            FunctionCall(
                name=part["functionCall"].get("name", "unknown"),
                args=part["functionCall"].get("args") or {},
            )
            for part in call_parts
        ]
        return FunctionCallResult(
            calls=calls,
            parts=[clean_function_call_part(part) for part in call_parts],
            tokens_used=tokens_used,
        )

    texts = [part["text"] for part in parts if "text" in part]
    if texts:
        return TextResult(text="".join(texts), tokens_used=tokens_used)

    if "error" in data:
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else error
        return ErrorResult(error=str(message or "Unknown API error"), tokens_used=tokens_used)

    logger.error(f"Unexpected parts structure: {json.dumps(parts, ensure_ascii=False)}")
    return ErrorResult(error="Unexpected API response format", tokens_used=tokens_used)


def _error_message(response: httpx.Response) -> Optional[str]:
    """error.message from a Gemini error body, if the body has that shape"""
    try:
        data = response.json()
    except ValueError:
        return None
    error = data.get("error") if isinstance(data, dict) else None
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    return message if isinstance(message, str) else None


class GeminiClient:
    """Client for the Gemini generateContent REST endpoint"""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        max_output_tokens: int = 1024,
        function_declarations: Optional[List[Dict[str, Any]]] = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_wait_start: float = 2.0,
        retry_wait_increment: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.function_declarations = function_declarations or []
        self.max_attempts = max_attempts
        self.retry_wait_start = retry_wait_start
        self.retry_wait_increment = retry_wait_increment
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{GEMINI_API_URL}/{self.model}:generateContent"

    def build_request(
        self,
        contents: List[Dict[str, Any]],
        system_instruction: str,
        file_uri: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Assemble the request body; the file reference leads the first user turn"""
        contents = list(contents)
        if file_uri and contents and contents[0].get("role") == "user":
            first = contents[0]
            contents[0] = {
                **first,
                "parts": [{"file_data": {"file_uri": file_uri, "mime_type": "text/plain"}}] + list(first["parts"]),
            }

        body: Dict[str, Any] = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        if self.function_declarations:
            body["tools"] = [{"functionDeclarations": self.function_declarations}]
        return body

    async def generate(
        self,
        contents: List[Dict[str, Any]],
        system_instruction: str,
        file_uri: Optional[str] = None,
        label: str = "Gemini",
    ) -> GeminiResult:
        """
        Call generateContent, retrying empty STOP replies.

        Args:
            contents: Conversation turns in Gemini format
            system_instruction: System prompt text
            file_uri: Optional uploaded file to attach to the first user turn
            label: Call label used in token usage logs

        Returns:
            TextResult, FunctionCallResult or ErrorResult
        """
        body = self.build_request(contents, system_instruction, file_uri)

        def log_retry(retry_state):
            logger.warning(
                f"Empty STOP - retry {retry_state.attempt_number + 1}/{self.max_attempts} "
                f"(waiting {retry_state.next_action.sleep:.0f}s)"
            )

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(EmptyStopResponse),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_incrementing(start=self.retry_wait_start, increment=self.retry_wait_increment),
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt:
                    return await self._post(body, label)
        except EmptyStopResponse as e:
            logger.error(f"All {self.max_attempts} attempts failed - last error: {str(e)}")
            return ErrorResult(error=str(e), tokens_used=e.tokens_used)

    async def _post(self, body: Dict[str, Any], label: str) -> GeminiResult:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
                response = await client.post(self.url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {str(e)}")
            return ErrorResult(error=f"Network error: {str(e)}")

        if response.status_code != 200:
            logger.error(f"Gemini HTTP {response.status_code} - {response.text}")
            error = f"HTTP error: {response.status_code}"
            message = _error_message(response)
            if message:
                error += f" - {message}"
            if response.status_code == 429:
                error += RATE_LIMIT_HINT
            return ErrorResult(error=error)

        try:
            data = response.json()
        except ValueError as e:
            return ErrorResult(error=f"JSON decode error: {str(e)}")

        return parse_response(data, log_token_usage(data, label))
