"""SQLModel table definitions."""

from .authorized_user import AuthorizedUser
from .conversation import Conversation, Platform
from .message import Message, MessageRole

__all__ = ["AuthorizedUser", "Conversation", "Platform", "Message", "MessageRole"]
