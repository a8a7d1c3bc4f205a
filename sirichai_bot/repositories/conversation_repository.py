"""Conversation table queries. Callers own the transaction (no commits here)."""

from datetime import datetime
from typing import List, Optional

from sqlmodel import Session, select

from sirichai_bot.models.conversation import Conversation
from sirichai_bot.utils.clock import utc_now


class ConversationRepository:
    """Queries and mutations on the conversations table"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self.db.get(Conversation, conversation_id)

    def upsert(
        self,
        conversation_id: str,
        platform: str,
        user_id: Optional[str],
        max_messages_limit: int,
    ) -> Conversation:
        """Create the conversation or touch its last_activity"""
        conversation = self.get(conversation_id)
        now = utc_now()
        if conversation is None:
            conversation = Conversation(
                conversation_id=conversation_id,
                platform=platform,
                user_id=user_id,
                max_messages_limit=max_messages_limit,
                created_at=now,
                last_activity=now,
            )
        else:
            conversation.last_activity = now
        self.db.add(conversation)
        self.db.flush()
        return conversation

    def set_chatbot_active(self, conversation: Conversation, active: bool) -> None:
        conversation.is_chatbot_active = active
        conversation.paused_at = None if active else utc_now()
        self.db.add(conversation)

    def list_paused_before(self, cutoff: datetime) -> List[Conversation]:
        statement = select(Conversation).where(
            Conversation.is_chatbot_active == False,  # noqa: E712
            Conversation.paused_at != None,  # noqa: E711
            Conversation.paused_at < cutoff,
        )
        return list(self.db.exec(statement).all())

    def list_paused(self) -> List[Conversation]:
        statement = select(Conversation).where(
            Conversation.is_chatbot_active == False  # noqa: E712
        ).order_by(Conversation.paused_at.desc())
        return list(self.db.exec(statement).all())

    def list_idle_since(self, cutoff: datetime) -> List[Conversation]:
        statement = select(Conversation).where(Conversation.last_activity < cutoff)
        return list(self.db.exec(statement).all())

    def list_all(self) -> List[Conversation]:
        return list(self.db.exec(select(Conversation)).all())

    def list_by_platform(self, platform: str, limit: int = 100) -> List[Conversation]:
        statement = select(Conversation).where(
            Conversation.platform == platform
        ).order_by(Conversation.last_activity.desc()).limit(limit)
        return list(self.db.exec(statement).all())

    def list_by_user(self, user_id: str) -> List[Conversation]:
        statement = select(Conversation).where(
            Conversation.user_id == user_id
        ).order_by(Conversation.last_activity.desc())
        return list(self.db.exec(statement).all())

    def list_active_since(self, since: datetime, limit: int = 50) -> List[Conversation]:
        statement = select(Conversation).where(
            Conversation.last_activity >= since
        ).order_by(Conversation.last_activity.desc()).limit(limit)
        return list(self.db.exec(statement).all())

    def delete(self, conversation: Conversation) -> None:
        self.db.delete(conversation)
