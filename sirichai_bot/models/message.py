"""
Message Model

Stores individual chat messages within conversations. Messages are ordered
by a per-conversation sequence number rather than by timestamp.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Column, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship

from sirichai_bot.utils.clock import utc_now

if TYPE_CHECKING:
    from .conversation import Conversation


class MessageRole(str, Enum):
    """Message sender role"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(SQLModel, table=True):
    """
    Individual chat message.

    - sequence_number increases strictly within a conversation (gaps allowed)
    - search_criteria is JSON text describing catalog lookups made this turn
    - is_active False means the message was reset out of the model's context
    """
    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence_number", name="uq_conversation_sequence"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: str = Field(
        sa_column=Column(
            String(255),
            ForeignKey("conversations.conversation_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    role: str = Field(max_length=20)
    content: str = Field(sa_column=Column(Text, nullable=False))
    tokens_used: int = Field(default=0)
    sequence_number: int = Field(index=True)
    search_criteria: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    is_active: bool = Field(default=True, index=True)
    timestamp: datetime = Field(default_factory=utc_now, index=True)

    conversation: Optional["Conversation"] = Relationship(back_populates="messages")
