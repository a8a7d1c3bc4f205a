"""Table-level data access used by the conversation manager."""

from .authorized_user_repository import AuthorizedUserRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository

__all__ = ["AuthorizedUserRepository", "ConversationRepository", "MessageRepository"]
