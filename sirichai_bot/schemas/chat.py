"""Request/response schemas for the chat HTTP API."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Chat request schema"""
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class ChatResponse(BaseModel):
    """Successful chat response"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    response: str
    conversation_id: str = Field(alias="conversationId")
    language: str


class ErrorResponse(BaseModel):
    """Failure envelope shared by every API endpoint"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str
    response: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")

    def body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ConversationResponse(BaseModel):
    success: bool = True
    conversation: Dict[str, Any]


class DeleteConversationResponse(BaseModel):
    success: bool
    message: str
