"""Tests for the chatbot turn orchestration."""

import json
from types import SimpleNamespace

import httpx
import pytest

from sirichai_bot.agents.main_agent import detect_language, load_system_prompt, DEFAULT_SYSTEM_PROMPT
from sirichai_bot.agents.skills.error_recovery import TOO_MANY_CALLS_APOLOGY
from sirichai_bot.services.gemini_files import GeminiFileManager
from sirichai_bot.tools.generate_quotation import UNAUTHORIZED_MESSAGE

from tests.conftest import make_chatbot
from tests.helpers import (
    RoutingTransport,
    ScriptedTransport,
    empty_response,
    function_call_response,
    function_responses,
    text_response,
    upload_response,
)


class TestHelpers:
    def test_detect_language(self):
        assert detect_language("สายไฟ 2.5 มีไหม") == "th"
        assert detect_language("Do you sell cables?") == "en"
        assert detect_language("") == "en"

    def test_load_system_prompt(self, tmp_path):
        prompt = tmp_path / "system-prompt.txt"
        prompt.write_text("You are Sirichai's assistant.", encoding="utf-8")

        assert load_system_prompt(str(prompt)) == "You are Sirichai's assistant."
        assert load_system_prompt(str(tmp_path / "missing.txt")) == DEFAULT_SYSTEM_PROMPT


class TestChat:
    """Text turns through the function-calling loop."""

    @pytest.mark.asyncio
    async def test_plain_text_reply(self):
        gemini = ScriptedTransport([text_response("Hello!", tokens=15)])
        chatbot = make_chatbot(gemini)

        result = await chatbot.chat("Hi")

        assert result.success is True
        assert result.response == "Hello!"
        assert result.language == "en"
        assert result.tokens_used == 15
        assert result.search_criteria is None

    @pytest.mark.asyncio
    async def test_history_becomes_contents(self):
        gemini = ScriptedTransport([text_response("Sure")])
        chatbot = make_chatbot(gemini)
        history = [
            SimpleNamespace(role="user", content="สวัสดี"),
            SimpleNamespace(role="assistant", content="สวัสดีค่ะ"),
        ]

        result = await chatbot.chat("มีสายไฟไหม", history)

        contents = gemini.bodies()[0]["contents"]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[-1]["parts"] == [{"text": "มีสายไฟไหม"}]
        assert result.language == "th"

    @pytest.mark.asyncio
    async def test_search_round_then_answer(self, product_api, product_transport):
        gemini = ScriptedTransport([
            function_call_response("search_products", {"criterias": ["Cable {THW}"]}, tokens=10),
            text_response("We have THW cable.", tokens=20),
        ])
        chatbot = make_chatbot(gemini, product_api=product_api)

        result = await chatbot.chat("Do you have THW cable?")

        assert result.success is True
        assert result.response == "We have THW cable."
        assert result.tokens_used == 30
        assert json.loads(result.search_criteria) == [["Cable {THW}"]]

        searches = product_transport.calls_to("/services/search.php")
        assert json.loads(searches[0].content) == {"criterias": ["Cable {THW}"]}

        follow_up = gemini.bodies()[1]["contents"]
        assert follow_up[-2] == {
            "role": "model",
            "parts": [{"functionCall": {"name": "search_products", "args": {"criterias": ["Cable {THW}"]}}}],
        }
        assert function_responses(gemini.bodies()[1]) == [{
            "name": "search_products",
            "response": {"content": "Products:\n- Cable 2.5mm 1,200 THB"},
        }]

    @pytest.mark.asyncio
    async def test_function_call_loop_is_bounded(self, product_api):
        """A model that never stops calling functions gets four calls, then an apology."""
        gemini = ScriptedTransport([function_call_response("search_products", {"criterias": ["Cable"]}, tokens=5)])
        chatbot = make_chatbot(gemini, product_api=product_api)

        result = await chatbot.chat("cable")

        assert len(gemini.requests) == 4
        assert result.success is False
        assert result.response == TOO_MANY_CALLS_APOLOGY
        assert result.error == "Too many function calls - possible infinite loop"
        assert result.tokens_used == 20
        assert json.loads(result.search_criteria) == [["Cable"], ["Cable"], ["Cable"]]

    @pytest.mark.asyncio
    async def test_unauthorized_quotation_never_reaches_endpoint(self, product_api, product_transport):
        gemini = ScriptedTransport([
            function_call_response("generate_quotation", {
                "quotaDetail": [{"productName": "Cable", "amount": 2}], "priceType": "a",
            }),
            text_response("Sorry"),
        ])
        chatbot = make_chatbot(gemini, product_api=product_api)

        result = await chatbot.chat("ออกใบเสนอราคา a", authorized=False)

        assert result.success is True
        assert product_transport.calls_to("/services/quotation.php") == []
        response = function_responses(gemini.bodies()[1])[0]
        assert response["response"]["content"] == UNAUTHORIZED_MESSAGE
        assert json.loads(result.search_criteria) == [[{
            "quotaDetail": [{"productName": "Cable", "amount": 2}], "priceType": "a",
        }]]

    @pytest.mark.asyncio
    async def test_authorized_quotation(self, product_api, product_transport):
        gemini = ScriptedTransport([
            function_call_response("generate_quotation", {
                "quotaDetail": [{"productName": "Cable", "amount": 2}], "priceType": "b",
            }),
            text_response("Here is your quotation"),
        ])
        chatbot = make_chatbot(gemini, product_api=product_api)

        await chatbot.chat("ออกใบเสนอราคา b", authorized=True)

        quotations = product_transport.calls_to("/services/quotation.php")
        assert json.loads(quotations[0].content) == {
            "quotaDetail": [{"productName": "Cable", "amount": 2}], "priceType": "b",
        }

    @pytest.mark.asyncio
    async def test_unknown_function(self, product_api):
        gemini = ScriptedTransport([function_call_response("delete_everything"), text_response("ok")])
        chatbot = make_chatbot(gemini, product_api=product_api)

        result = await chatbot.chat("hi")

        assert result.success is True
        assert function_responses(gemini.bodies()[1])[0]["response"]["content"] == "Unknown function: delete_everything"

    @pytest.mark.asyncio
    async def test_missing_product_api_reported_to_model(self):
        gemini = ScriptedTransport([
            function_call_response("search_product_detail", {"productName": "Cable"}),
            text_response("ok"),
        ])
        chatbot = make_chatbot(gemini)

        await chatbot.chat("weight?")

        content = function_responses(gemini.bodies()[1])[0]["response"]["content"]
        assert content == "Product API service not available."

    @pytest.mark.asyncio
    async def test_model_error_is_failure(self):
        gemini = ScriptedTransport([httpx.Response(500, json={"error": {"message": "internal"}})])
        chatbot = make_chatbot(gemini)

        result = await chatbot.chat("hi")

        assert result.success is False
        assert result.response == ""
        assert result.error == "HTTP error: 500 - internal"


class TestCatalogContext:
    """Catalog upload and recovery from persistent empty replies."""

    @pytest.fixture
    def file_transport(self):
        return ScriptedTransport([upload_response("files/one"), upload_response("files/two")])

    @pytest.fixture
    def file_manager(self, tmp_path, file_transport):
        return GeminiFileManager("test-key", cache_file=str(tmp_path / "gemini-files.json"), transport=file_transport)

    @pytest.mark.asyncio
    async def test_catalog_attached_to_request(self, product_api, file_manager, file_transport):
        gemini = ScriptedTransport([text_response("Hi")])
        chatbot = make_chatbot(gemini, product_api=product_api, file_manager=file_manager)

        await chatbot.chat("hello")
        await chatbot.chat("hello again")

        assert len(file_transport.requests) == 1
        first_part = gemini.bodies()[1]["contents"][0]["parts"][0]
        assert first_part["file_data"]["file_uri"].endswith("files/one")

    @pytest.mark.asyncio
    async def test_persistent_empty_stop_refreshes_catalog_once(self, product_api, file_manager, file_transport):
        gemini = ScriptedTransport([empty_response(), empty_response(), empty_response(), text_response("Recovered")])
        chatbot = make_chatbot(gemini, product_api=product_api, file_manager=file_manager)

        result = await chatbot.chat("hello")

        assert result.success is True
        assert result.response == "Recovered"
        assert len(gemini.requests) == 4
        assert len(file_transport.requests) == 2
        assert chatbot.catalog_file_uri.endswith("files/two")

    @pytest.mark.asyncio
    async def test_image_turn(self, product_api, file_manager):
        gemini = ScriptedTransport([text_response("That is a breaker")])
        chatbot = make_chatbot(gemini, product_api=product_api, file_manager=file_manager)

        result = await chatbot.chat_with_image(b"\xff\xd8jpeg", "image/jpeg")

        assert result.success is True
        assert result.language == "th"
        parts = gemini.bodies()[0]["contents"][-1]["parts"]
        assert any("file_data" in part for part in parts)
        assert {"inline_data": {"mime_type": "image/jpeg", "data": "/9hqcGVn"}} in parts
