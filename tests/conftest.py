"""Shared pytest fixtures.

In-memory SQLite databases, scripted Gemini / product / LINE transports
and factories for the chatbot and the FastAPI app.
"""

from collections.abc import Generator

import httpx
import pytest
from sqlmodel import Session

from sirichai_bot.agents.gemini_client import GeminiClient
from sirichai_bot.agents.main_agent import ChatbotAgent
from sirichai_bot.config import Settings
from sirichai_bot.db.config import Database
from sirichai_bot.db.init import init_db
from sirichai_bot.services.conversation_service import ConversationManager
from sirichai_bot.services.line_messaging import LineMessagingClient
from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools import build_tool_registry

from tests.helpers import RoutingTransport, ScriptedTransport

SEARCH_URL = "https://shop.test/services/search.php"
DETAIL_URL = "https://shop.test/services/detail.php"
CATALOG_URL = "https://shop.test/services/catalog.php"
QUOTATION_URL = "https://shop.test/services/quotation.php"


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Fresh in-memory database with all tables."""
    db = Database("sqlite://")
    init_db(db)
    yield db
    db.dispose()


@pytest.fixture
def session(database: Database) -> Generator[Session, None, None]:
    with database.session() as s:
        yield s


@pytest.fixture
def conversations(session: Session) -> ConversationManager:
    return ConversationManager(session, max_messages=50, retention_days=3)


@pytest.fixture
def product_transport() -> RoutingTransport:
    """Shop API answering search, detail and quotation requests."""
    return RoutingTransport({
        "/services/search.php": lambda request: httpx.Response(200, text="Products:\n- Cable 2.5mm 1,200 THB"),
        "/services/detail.php": lambda request: httpx.Response(200, text="Weight: 1kg"),
        "/services/quotation.php": lambda request: httpx.Response(200, text="https://shop.test/q/123.pdf"),
        "/services/catalog.php": lambda request: httpx.Response(200, text="Cable | 2.5mm wires"),
    })


@pytest.fixture
def product_api(product_transport: RoutingTransport, tmp_path) -> ProductAPIClient:
    return ProductAPIClient(
        catalog_summary_url=CATALOG_URL,
        product_search_url=SEARCH_URL,
        product_detail_url=DETAIL_URL,
        quotation_url=QUOTATION_URL,
        cache_file=str(tmp_path / "catalog-summary.txt"),
        transport=product_transport,
    )


def make_gemini(transport: httpx.AsyncBaseTransport, **kwargs) -> GeminiClient:
    """Gemini client with retries that do not sleep."""
    kwargs.setdefault("retry_wait_start", 0)
    kwargs.setdefault("retry_wait_increment", 0)
    return GeminiClient(api_key="test-key", transport=transport, **kwargs)


def make_chatbot(gemini_transport: ScriptedTransport, product_api=None, file_manager=None) -> ChatbotAgent:
    registry = build_tool_registry(product_api)
    return ChatbotAgent(
        gemini=make_gemini(gemini_transport),
        registry=registry,
        product_api=product_api,
        file_manager=file_manager,
    )


@pytest.fixture
def line_transport() -> RoutingTransport:
    """LINE Messaging API accepting every call."""
    return RoutingTransport({
        "/v2/bot/message/push": lambda request: httpx.Response(200, json={}),
        "/v2/bot/chat/loading/start": lambda request: httpx.Response(202, json={}),
        "/v2/bot/profile/": lambda request: httpx.Response(200, json={"displayName": "Somchai"}),
        "/v2/bot/message/": lambda request: httpx.Response(200, content=b"\xff\xd8jpeg"),
    })


@pytest.fixture
def line_client(line_transport: RoutingTransport) -> LineMessagingClient:
    return LineMessagingClient("line-token", transport=line_transport)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        gemini_api_key="test-key",
        catalog_summary_url=CATALOG_URL,
        product_search_url=SEARCH_URL,
        product_detail_url=DETAIL_URL,
        database_url="sqlite://",
        line_channel_secret="line-secret",
        line_channel_access_token="line-token",
        verify_line_signature=True,
        cache_dir=str(tmp_path),
    )
