"""Fake remote APIs for tests.

Every client takes an httpx transport, so tests swap in MockTransport
instances that answer from a script and remember what they were sent.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx


class ScriptedTransport(httpx.MockTransport):
    """Answers requests in order from a list; the last answer repeats."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


class RoutingTransport(httpx.MockTransport):
    """Dispatches on the URL path; unknown paths answer 404."""

    def __init__(self, routes: Dict[str, Callable[[httpx.Request], httpx.Response]]):
        self.routes = routes
        self.requests: List[httpx.Request] = []
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for path, handler in self.routes.items():
            if request.url.path.startswith(path):
                return handler(request)
        return httpx.Response(404, json={"error": "not found"})

    def calls_to(self, path: str) -> List[httpx.Request]:
        return [request for request in self.requests if request.url.path.startswith(path)]


def usage(tokens: int) -> Dict[str, Any]:
    return {"promptTokenCount": tokens - 1, "candidatesTokenCount": 1, "totalTokenCount": tokens}


def text_response(text: str, tokens: int = 10) -> Dict[str, Any]:
    return {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}],
        "usageMetadata": usage(tokens),
    }


def function_call_response(name: str, args: Optional[Dict[str, Any]] = None, tokens: int = 10) -> Dict[str, Any]:
    return {
        "candidates": [{
            "content": {
                "role": "model",
                "parts": [{"functionCall": {"name": name, "args": args or {}}, "thoughtSignature": "abc"}],
            },
            "finishReason": "STOP",
        }],
        "usageMetadata": usage(tokens),
    }


def empty_response(finish_reason: str = "STOP", tokens: int = 5) -> Dict[str, Any]:
    return {
        "candidates": [{"content": {"role": "model"}, "finishReason": finish_reason}],
        "usageMetadata": usage(tokens),
    }


def upload_response(name: str = "files/catalog1") -> Dict[str, Any]:
    return {"file": {"name": name, "uri": f"https://generativelanguage.googleapis.com/v1beta/{name}"}}


def function_responses(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    """functionResponse parts of the last user turn of a Gemini request body"""
    return [part["functionResponse"] for part in body["contents"][-1]["parts"] if "functionResponse" in part]
