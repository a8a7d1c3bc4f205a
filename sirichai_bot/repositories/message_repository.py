"""Message table queries. Callers own the transaction (no commits here)."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from sirichai_bot.models.message import Message


class MessageRepository:
    """Queries and mutations on the messages table"""

    def __init__(self, db: Session):
        self.db = db

    def next_sequence_number(self, conversation_id: str) -> int:
        statement = select(func.max(Message.sequence_number)).where(
            Message.conversation_id == conversation_id
        )
        current = self.db.exec(statement).one()
        return (current or 0) + 1

    def add(self, message: Message) -> Message:
        self.db.add(message)
        self.db.flush()
        return message

    def count(self, conversation_id: str) -> int:
        statement = select(func.count()).select_from(Message).where(
            Message.conversation_id == conversation_id
        )
        return self.db.exec(statement).one()

    def trim(self, conversation_id: str, keep: int, older_than: datetime) -> int:
        """
        Delete messages outside the newest `keep` or older than `older_than`.

        Returns:
            Number of deleted messages
        """
        recent_ids = list(self.db.exec(
            select(Message.id).where(
                Message.conversation_id == conversation_id
            ).order_by(Message.sequence_number.desc()).limit(keep)
        ).all())

        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            or_(Message.id.not_in(recent_ids), Message.timestamp < older_than),
        )
        doomed = list(self.db.exec(statement).all())
        for message in doomed:
            self.db.delete(message)
        return len(doomed)

    def recent_active(self, conversation_id: str, limit: int) -> List[Message]:
        """Newest `limit` active messages, oldest first"""
        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.is_active == True,  # noqa: E712
        ).order_by(Message.sequence_number.desc()).limit(limit)
        messages = list(self.db.exec(statement).all())
        messages.reverse()
        return messages

    def all_active(self, conversation_id: str) -> List[Message]:
        statement = select(Message).where(
            Message.conversation_id == conversation_id,
            Message.is_active == True,  # noqa: E712
        ).order_by(Message.sequence_number)
        return list(self.db.exec(statement).all())

    def deactivate(self, conversation_id: str) -> int:
        return self._deactivate(Message.conversation_id == conversation_id)

    def deactivate_with_prefix(self, prefix: str) -> int:
        return self._deactivate(Message.conversation_id.startswith(prefix, autoescape=True))

    def _deactivate(self, condition) -> int:
        statement = select(Message).where(condition, Message.is_active == True)  # noqa: E712
        messages = list(self.db.exec(statement).all())
        for message in messages:
            message.is_active = False
            self.db.add(message)
        return len(messages)

    def total_tokens(self, conversation_id: Optional[str] = None) -> int:
        statement = select(func.coalesce(func.sum(Message.tokens_used), 0))
        if conversation_id is not None:
            statement = statement.where(Message.conversation_id == conversation_id)
        return int(self.db.exec(statement).one())
