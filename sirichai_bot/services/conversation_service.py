"""
Conversation Service

Transaction boundary around the conversation, message and authorized-user
repositories. Writes either commit completely or roll back and raise
ConversationStoreError; read paths degrade to empty or default results.
"""

import logging
import secrets
import time
from datetime import timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from sirichai_bot.models.conversation import Conversation, Platform
from sirichai_bot.models.message import Message, MessageRole
from sirichai_bot.repositories.authorized_user_repository import AuthorizedUserRepository
from sirichai_bot.repositories.conversation_repository import ConversationRepository
from sirichai_bot.repositories.message_repository import MessageRepository
from sirichai_bot.utils.clock import utc_now

logger = logging.getLogger(__name__)

LINE_PREFIX = "line_"
LINE_GROUP_PREFIX = "line_group_"


class ConversationStoreError(Exception):
    """Raised when a conversation write fails and was rolled back"""


class ConversationManager:
    """Service for managing conversations, messages and chatbot pause state"""

    def __init__(
        self,
        db: Session,
        platform: str = Platform.API.value,
        max_messages: int = 50,
        retention_days: int = 3,
    ):
        self.db = db
        self.platform = platform
        self.max_messages = max_messages
        self.retention_days = retention_days
        self.conversations = ConversationRepository(db)
        self.messages = MessageRepository(db)
        self.authorized_users = AuthorizedUserRepository(db)

    @staticmethod
    def generate_conversation_id() -> str:
        """Generate an id for a new API conversation"""
        return f"conv_{int(time.time())}_{secrets.token_hex(5)[:9]}"

    @staticmethod
    def user_id_for(conversation_id: str) -> Optional[str]:
        """LINE user id encoded in the conversation id (last segment for group chats)"""
        if conversation_id.startswith(LINE_GROUP_PREFIX):
            return conversation_id.rsplit("_", 1)[-1]
        if conversation_id.startswith(LINE_PREFIX):
            return conversation_id[len(LINE_PREFIX):]
        return None

    def _upsert(self, conversation_id: str) -> Conversation:
        return self.conversations.upsert(
            conversation_id,
            platform=self.platform,
            user_id=self.user_id_for(conversation_id),
            max_messages_limit=self.max_messages,
        )

    def _commit_or_raise(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise ConversationStoreError(f"Failed to {action}") from e

    def record_turn(
        self,
        conversation_id: str,
        role: Union[MessageRole, str],
        content: str,
        tokens_used: int = 0,
        search_criteria: Optional[str] = None,
    ) -> Message:
        """
        Append a message to a conversation in one transaction.

        Upserts the conversation, assigns the next sequence number, inserts
        the message and trims the conversation to its cap and retention window.

        Raises:
            ConversationStoreError: on any database failure (nothing is written)
        """
        role_value = role.value if isinstance(role, MessageRole) else role
        try:
            conversation = self._upsert(conversation_id)
            message = self.messages.add(Message(
                conversation_id=conversation_id,
                role=role_value,
                content=content,
                tokens_used=tokens_used,
                sequence_number=self.messages.next_sequence_number(conversation_id),
                search_criteria=search_criteria,
            ))
            cutoff = utc_now() - timedelta(days=self.retention_days)
            trimmed = self.messages.trim(
                conversation_id, keep=conversation.max_messages_limit, older_than=cutoff
            )
            if trimmed:
                logger.info(f"Trimmed {trimmed} messages from {conversation_id}")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record message for {conversation_id}: {str(e)}")
            raise ConversationStoreError(f"Failed to record message for {conversation_id}") from e

        # Trimmed in the same transaction when it already falls outside the window
        if not inspect(message).detached:
            self.db.refresh(message)
        return message

    def get_history(self, conversation_id: str, limit: Optional[int] = None) -> List[Message]:
        """Active messages, newest `limit` (default the cap), oldest first"""
        try:
            return self.messages.recent_active(conversation_id, limit or self.max_messages)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load history for {conversation_id}: {str(e)}")
            self.db.rollback()
            return []

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        """Conversation metadata plus its active messages, or None"""
        try:
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                return None
            messages = self.messages.all_active(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load conversation {conversation_id}: {str(e)}")
            self.db.rollback()
            return None

        return {
            "conversationId": conversation.conversation_id,
            "platform": conversation.platform,
            "userId": conversation.user_id,
            "isChatbotActive": conversation.is_chatbot_active,
            "pausedAt": conversation.paused_at.isoformat() if conversation.paused_at else None,
            "createdAt": conversation.created_at.isoformat(),
            "lastActivity": conversation.last_activity.isoformat(),
            "messages": [
                {
                    "role": message.role,
                    "content": message.content,
                    "tokensUsed": message.tokens_used,
                    "searchCriteria": message.search_criteria,
                    "sequenceNumber": message.sequence_number,
                    "timestamp": message.timestamp.isoformat(),
                }
                for message in messages
            ],
        }

    def reset_history(self, conversation_id: str) -> int:
        """Deactivate every message so the model starts fresh"""
        count = self.messages.deactivate(conversation_id)
        self._commit_or_raise(f"reset history for {conversation_id}")
        logger.info(f"Reset {count} messages for {conversation_id}")
        return count

    def reset_group_history(self, group_id: str) -> int:
        """Deactivate messages of every member conversation in a LINE group"""
        count = self.messages.deactivate_with_prefix(f"{LINE_GROUP_PREFIX}{group_id}_")
        self._commit_or_raise(f"reset group history for {group_id}")
        logger.info(f"Reset {count} messages for group {group_id}")
        return count

    def clear_conversation(self, conversation_id: str) -> bool:
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            return False
        self.conversations.delete(conversation)
        self._commit_or_raise(f"delete conversation {conversation_id}")
        return True

    def clear_all(self) -> int:
        conversations = self.conversations.list_all()
        for conversation in conversations:
            self.conversations.delete(conversation)
        self._commit_or_raise("delete all conversations")
        return len(conversations)

    def cleanup_old_conversations(self, max_age_hours: int) -> int:
        """Delete conversations idle for longer than max_age_hours"""
        cutoff = utc_now() - timedelta(hours=max_age_hours)
        stale = self.conversations.list_idle_since(cutoff)
        for conversation in stale:
            self.conversations.delete(conversation)
        self._commit_or_raise("clean up old conversations")
        if stale:
            logger.info(f"Deleted {len(stale)} conversations idle since {cutoff.isoformat()}")
        return len(stale)

    def get_total_tokens(self, conversation_id: Optional[str] = None) -> int:
        try:
            return self.messages.total_tokens(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to sum tokens: {str(e)}")
            self.db.rollback()
            return 0

    def get_conversations_by_platform(self, platform: str, limit: int = 100) -> List[Conversation]:
        try:
            return self.conversations.list_by_platform(platform, limit)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list {platform} conversations: {str(e)}")
            self.db.rollback()
            return []

    def get_conversations_by_user(self, user_id: str) -> List[Conversation]:
        try:
            return self.conversations.list_by_user(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list conversations for {user_id}: {str(e)}")
            self.db.rollback()
            return []

    def get_recent_active_conversations(self, days: int = 7, limit: int = 50) -> List[Conversation]:
        try:
            since = utc_now() - timedelta(days=days)
            return self.conversations.list_active_since(since, limit)
        except SQLAlchemyError as e:
            logger.error(f"Failed to list recent conversations: {str(e)}")
            self.db.rollback()
            return []

    # Human handoff

    def pause(self, conversation_id: str) -> bool:
        """Hand the conversation to a human agent"""
        try:
            conversation = self._upsert(conversation_id)
            self.conversations.set_chatbot_active(conversation, False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to pause {conversation_id}: {str(e)}")
            return False
        logger.info(f"Chatbot paused for {conversation_id}")
        return True

    def resume(self, conversation_id: str) -> bool:
        try:
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                return False
            self.conversations.set_chatbot_active(conversation, True)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to resume {conversation_id}: {str(e)}")
            return False
        logger.info(f"Chatbot resumed for {conversation_id}")
        return True

    def is_active(self, conversation_id: str) -> bool:
        """Whether the bot should answer; unknown conversations count as active"""
        try:
            conversation = self.conversations.get(conversation_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read pause state for {conversation_id}: {str(e)}")
            self.db.rollback()
            return True
        return conversation is None or conversation.is_chatbot_active

    def get_paused_conversations(self) -> List[Conversation]:
        try:
            return self.conversations.list_paused()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list paused conversations: {str(e)}")
            self.db.rollback()
            return []

    def auto_resume(self, timeout_minutes: int = 30) -> int:
        """Resume every conversation paused for longer than timeout_minutes"""
        cutoff = utc_now() - timedelta(minutes=timeout_minutes)
        paused = self.conversations.list_paused_before(cutoff)
        for conversation in paused:
            self.conversations.set_chatbot_active(conversation, True)
        self._commit_or_raise("auto-resume conversations")
        if paused:
            logger.info(f"Auto-resumed {len(paused)} conversations paused over {timeout_minutes} minutes")
        return len(paused)

    # Authorization

    def is_user_authorized(self, user_id: Optional[str]) -> bool:
        if not user_id:
            return False
        try:
            return self.authorized_users.contains(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to check authorization for {user_id}: {str(e)}")
            self.db.rollback()
            return False

    def authorize_user(self, user_id: str, note: Optional[str] = None) -> None:
        self.authorized_users.add(user_id, note)
        self._commit_or_raise(f"authorize {user_id}")
