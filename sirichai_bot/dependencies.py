"""
Service wiring for the FastAPI app.

build_services() constructs every long-lived collaborator once at startup;
routes reach them through the dependency functions below, which read
request.app.state.services. Tests install their own ServiceContainer.
"""

import logging
import os
from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Depends, Request
from sqlmodel import Session

from sirichai_bot.agents.gemini_client import GeminiClient
from sirichai_bot.agents.main_agent import ChatbotAgent, load_system_prompt
from sirichai_bot.config import Settings
from sirichai_bot.db.config import Database
from sirichai_bot.models.conversation import Platform
from sirichai_bot.services.conversation_service import ConversationManager
from sirichai_bot.services.gemini_files import GeminiFileManager
from sirichai_bot.services.line_messaging import LineMessagingClient
from sirichai_bot.services.product_api import ProductAPIClient
from sirichai_bot.tools import build_tool_registry

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    chatbot: ChatbotAgent
    line_client: Optional[LineMessagingClient] = None

    def conversation_manager(self, db: Session, platform: str) -> ConversationManager:
        return ConversationManager(
            db,
            platform=platform,
            max_messages=self.settings.max_messages_per_conversation,
            retention_days=self.settings.message_retention_days,
        )


def build_product_api(settings: Settings) -> ProductAPIClient:
    return ProductAPIClient(
        catalog_summary_url=settings.catalog_summary_url,
        product_search_url=settings.product_search_url,
        product_detail_url=settings.product_detail_url,
        quotation_url=settings.quotation_url,
        cache_file=settings.catalog_cache_file,
    )


def build_file_manager(settings: Settings) -> GeminiFileManager:
    return GeminiFileManager(settings.gemini_api_key, cache_file=settings.file_cache_file)


def build_chatbot(settings: Settings) -> ChatbotAgent:
    product_api = build_product_api(settings)
    registry = build_tool_registry(product_api)
    gemini = GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
        function_declarations=registry.get_function_declarations(),
    )
    return ChatbotAgent(
        gemini=gemini,
        registry=registry,
        product_api=product_api,
        file_manager=build_file_manager(settings),
        system_prompt=load_system_prompt(settings.system_prompt_path),
    )


def build_services(settings: Settings) -> ServiceContainer:
    """Construct every collaborator from settings"""
    os.makedirs(settings.cache_dir, exist_ok=True)
    line_client = None
    if settings.line_enabled:
        line_client = LineMessagingClient(settings.line_channel_access_token)
    else:
        logger.warning("LINE_CHANNEL_ACCESS_TOKEN not set - LINE webhook replies disabled")

    return ServiceContainer(
        settings=settings,
        database=Database(settings.database_url),
        chatbot=build_chatbot(settings),
        line_client=line_client,
    )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with get_services(request).database.session() as session:
        yield session


def get_settings_dependency(request: Request) -> Settings:
    return get_services(request).settings


def get_api_conversation_manager(
    request: Request, db: Session = Depends(get_db)
) -> ConversationManager:
    return get_services(request).conversation_manager(db, Platform.API.value)
