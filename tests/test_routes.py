"""Tests for the HTTP API and LINE webhook routes."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from sirichai_bot.agents.skills.error_recovery import SYSTEM_ISSUE_MESSAGE
from sirichai_bot.db.config import Database
from sirichai_bot.dependencies import ServiceContainer
from sirichai_bot.main import create_app
from sirichai_bot.middleware.line_signature import compute_signature
from sirichai_bot.routers.line_webhook import process_webhook
from sirichai_bot.services.conversation_service import ConversationManager

from tests.conftest import make_chatbot
from tests.helpers import ScriptedTransport, function_call_response, text_response


@pytest.fixture
def gemini_transport():
    return ScriptedTransport([text_response("Hello from Sirichai", tokens=12)])


@pytest.fixture
def services(settings, database: Database, gemini_transport, line_client, product_api) -> ServiceContainer:
    return ServiceContainer(
        settings=settings,
        database=database,
        chatbot=make_chatbot(gemini_transport, product_api=product_api),
        line_client=line_client,
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as c:
        yield c


def signed_post(client, payload, secret="line-secret", path="/line-webhook"):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        path,
        content=body,
        headers={"Content-Type": "application/json", "X-Line-Signature": compute_signature(body, secret)},
    )


def line_text_event(text, user_id="U1"):
    return {
        "type": "message",
        "replyToken": "rt",
        "source": {"type": "user", "userId": user_id},
        "message": {"type": "text", "id": "m1", "text": text},
    }


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["version"] == "1.0.0"

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"


class TestChatEndpoint:
    """POST /chat and the conversation endpoints."""

    def test_missing_message(self, client):
        response = client.post("/chat", json={"message": "   "})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Message is required"}

    def test_invalid_json(self, client):
        response = client.post("/chat", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Invalid JSON"}

    def test_chat_creates_conversation(self, client):
        response = client.post("/chat", json={"message": "Do you sell cable?"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["response"] == "Hello from Sirichai"
        assert data["language"] == "en"
        assert data["conversationId"].startswith("conv_")

        conversation = client.get(f"/conversation/{data['conversationId']}").json()["conversation"]
        assert conversation["platform"] == "api"
        assert [m["role"] for m in conversation["messages"]] == ["user", "assistant"]
        assert conversation["messages"][1]["tokensUsed"] == 12

    def test_search_turn_stores_two_rows_with_summed_tokens(self, client, gemini_transport, product_transport):
        gemini_transport.responses = [
            function_call_response("search_products", {"criterias": ["Cable {THW}"]}, tokens=40),
            text_response("THW cable is 1,200 THB", tokens=60),
        ]

        response = client.post("/chat", json={"message": "search THW cable", "conversationId": "conv_e2e"})

        assert response.json()["response"] == "THW cable is 1,200 THB"
        assert len(gemini_transport.requests) == 2
        assert len(product_transport.calls_to("/services/search.php")) == 1
        messages = client.get("/conversation/conv_e2e").json()["conversation"]["messages"]
        assert [(m["role"], m["tokensUsed"]) for m in messages] == [("user", 0), ("assistant", 100)]

    def test_chat_continues_conversation(self, client, gemini_transport):
        client.post("/chat", json={"message": "first", "conversationId": "conv_test"})
        response = client.post("/chat", json={"message": "second", "conversationId": "conv_test"})

        assert response.json()["conversationId"] == "conv_test"
        assert len(gemini_transport.bodies()[1]["contents"]) == 3

    def test_chat_failure(self, services, client):
        services.chatbot.gemini._transport = ScriptedTransport([httpx.Response(500, json={})])

        response = client.post("/chat", json={"message": "hello", "conversationId": "conv_fail"})

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["conversationId"] == "conv_fail"
        assert data["error"].startswith("HTTP error: 500")
        messages = client.get("/conversation/conv_fail").json()["conversation"]["messages"]
        assert [m["role"] for m in messages] == ["user"]

    def test_unknown_conversation(self, client):
        response = client.get("/conversation/conv_missing")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_delete_conversation(self, client):
        client.post("/chat", json={"message": "hi", "conversationId": "conv_del"})

        first = client.delete("/conversation/conv_del").json()
        second = client.delete("/conversation/conv_del").json()

        assert first == {"success": True, "message": "Conversation cleared"}
        assert second == {"success": False, "message": "Conversation not found"}


class TestLineWebhook:
    """POST /line-webhook (and POST /)."""

    def test_bad_signature_rejected(self, client, gemini_transport):
        response = signed_post(client, {"events": [line_text_event("hi")]}, secret="wrong")

        assert response.status_code == 403
        assert gemini_transport.requests == []

    def test_missing_signature_rejected(self, client):
        response = client.post("/line-webhook", json={"events": []})
        assert response.status_code == 403

    def test_invalid_json_with_valid_signature(self, client):
        body = b"{broken"
        response = client.post(
            "/line-webhook", content=body, headers={"X-Line-Signature": compute_signature(body, "line-secret")}
        )
        assert response.status_code == 400

    def test_text_event_answered(self, client, line_transport):
        response = signed_post(client, {"destination": "Ubot", "events": [line_text_event("hi")]})

        assert response.status_code == 200
        pushes = [json.loads(r.content) for r in line_transport.calls_to("/v2/bot/message/push")]
        assert pushes[0]["to"] == "U1"
        assert pushes[0]["messages"][0]["text"] == "Hello from Sirichai"

    def test_root_path_accepts_webhook(self, client, line_transport):
        response = signed_post(client, {"events": [line_text_event("hi")]}, path="/")

        assert response.status_code == 200
        assert len(line_transport.calls_to("/v2/bot/message/push")) == 1

    def test_paused_conversation_is_silent(self, client, database, gemini_transport, line_transport):
        with database.session() as db:
            ConversationManager(db, platform="line").pause("line_U1")

        response = signed_post(client, {"events": [line_text_event("anyone there?")]})

        assert response.status_code == 200
        assert gemini_transport.requests == []
        assert line_transport.calls_to("/v2/bot/message/push") == []

    @pytest.mark.parametrize("allowed_id,quotations", [("U1", 1), ("U2", 0)])
    def test_quotation_follows_allow_list(
        self, client, database, gemini_transport, product_transport, allowed_id, quotations
    ):
        with database.session() as db:
            ConversationManager(db).authorize_user(allowed_id)
        gemini_transport.responses = [
            function_call_response("generate_quotation", {
                "quotaDetail": [{"productName": "Cable", "amount": 1}], "priceType": "b",
            }),
            text_response("done"),
        ]

        signed_post(client, {"events": [line_text_event("ออกใบเสนอราคา b")]})

        assert len(product_transport.calls_to("/services/quotation.php")) == quotations

    def test_verification_can_be_disabled(self, services, client, line_transport):
        services.settings.verify_line_signature = False

        response = client.post("/line-webhook", json={"events": [line_text_event("hi")]})

        assert response.status_code == 200
        assert len(line_transport.calls_to("/v2/bot/message/push")) == 1


class TestWebhookBackgroundFailures:
    """Failures before any event is handled still reach the users."""

    @pytest.mark.asyncio
    async def test_unreachable_database_pushes_apology(self, settings, line_client, line_transport, tmp_path):
        database = Database(f"sqlite:///{tmp_path / 'missing' / 'bot.db'}", reconnect_attempts=1)
        gemini = ScriptedTransport([text_response("unused")])
        services = ServiceContainer(
            settings=settings,
            database=database,
            chatbot=make_chatbot(gemini),
            line_client=line_client,
        )
        follow = {"type": "follow", "replyToken": "rt", "source": {"type": "user", "userId": "U9"}}

        await process_webhook(services, {"events": [
            line_text_event("hi"), line_text_event("still there?"), follow,
        ]})

        pushes = [json.loads(r.content) for r in line_transport.calls_to("/v2/bot/message/push")]
        assert [(p["to"], p["messages"][0]["text"]) for p in pushes] == [("U1", SYSTEM_ISSUE_MESSAGE)]
        assert gemini.requests == []
        database.dispose()
