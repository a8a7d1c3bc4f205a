"""
Conversation Model

Stores conversation metadata for chat sessions arriving from the HTTP API
or from LINE. Each conversation holds an ordered list of messages.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from sqlmodel import SQLModel, Field, Relationship

from sirichai_bot.utils.clock import utc_now

if TYPE_CHECKING:
    from .message import Message


class Platform(str, Enum):
    """Channel a conversation arrived from"""
    API = "api"
    LINE = "line"


class Conversation(SQLModel, table=True):
    """
    Conversation metadata for chat sessions.

    The id is opaque: generated for API clients (conv_...) or derived from
    LINE ids (line_{userId}, line_group_{groupId}_{userId}). Exactly one row
    exists per id; the first message creates it and later messages touch
    last_activity.

    Pausing hands the conversation over to a human agent: while
    is_chatbot_active is False the bot does not answer.
    """
    __tablename__ = "conversations"

    conversation_id: str = Field(primary_key=True, max_length=255)
    platform: str = Field(default=Platform.API.value, max_length=20, index=True)
    user_id: Optional[str] = Field(default=None, max_length=255, index=True)
    max_messages_limit: int = Field(default=50)
    is_chatbot_active: bool = Field(default=True, index=True)
    paused_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now, index=True)

    messages: List["Message"] = Relationship(
        back_populates="conversation",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "lazy": "select",
            "order_by": "Message.sequence_number",
        }
    )
