"""
Chat API Router

JSON endpoints used by the shop website: send a message, read a
conversation, clear a conversation.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from sirichai_bot.dependencies import ServiceContainer, get_api_conversation_manager, get_services
from sirichai_bot.models.message import MessageRole
from sirichai_bot.schemas.chat import (
    ChatRequest,
    ChatResponse,
    ConversationResponse,
    DeleteConversationResponse,
    ErrorResponse,
)
from sirichai_bot.services.conversation_service import ConversationManager, ConversationStoreError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def error_response(status_code: int, **fields) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(**fields).body())


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    services: ServiceContainer = Depends(get_services),
    conversations: ConversationManager = Depends(get_api_conversation_manager),
):
    """
    Answer a chat message

    Request flow:
    1. Load the conversation's active history
    2. Run the chatbot (may call product functions)
    3. Store the user message with the turn's search criteria
    4. Store the assistant reply with the turn's token usage

    Args:
        request: Message and optional conversationId
        services: Application services
        conversations: Conversation manager bound to this request's session

    Returns:
        ChatResponse, or a 400/500 error envelope
    """
    message = (request.message or "").strip()
    if not message:
        return error_response(status.HTTP_400_BAD_REQUEST, error="Message is required")

    conversation_id = request.conversation_id or conversations.generate_conversation_id()
    logger.info(f"Chat request for {conversation_id}: {message[:50]}...")

    history = conversations.get_history(conversation_id)
    result = await services.chatbot.chat(message, history)

    try:
        conversations.record_turn(
            conversation_id, MessageRole.USER, message, 0, result.search_criteria
        )
        if result.success:
            conversations.record_turn(
                conversation_id, MessageRole.ASSISTANT, result.response, result.tokens_used
            )
    except ConversationStoreError as e:
        logger.error(f"Chat endpoint error: {str(e)}", exc_info=True)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            response="",
            conversation_id=conversation_id,
            error="Failed to save conversation",
        )

    if not result.success:
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            response=result.response,
            conversation_id=conversation_id,
            error=result.error or "Unknown error",
        )

    return ChatResponse(
        response=result.response,
        conversation_id=conversation_id,
        language=result.language,
    )


@router.get("/conversation/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    conversations: ConversationManager = Depends(get_api_conversation_manager),
):
    """Get a conversation with its active messages"""
    conversation = conversations.get_conversation(conversation_id)
    if conversation is None:
        return error_response(status.HTTP_404_NOT_FOUND, error="Conversation not found")
    return ConversationResponse(conversation=conversation)


@router.delete("/conversation/{conversation_id}", response_model=DeleteConversationResponse)
async def delete_conversation(
    conversation_id: str,
    conversations: ConversationManager = Depends(get_api_conversation_manager),
):
    """Delete a conversation and all of its messages"""
    try:
        deleted = conversations.clear_conversation(conversation_id)
    except ConversationStoreError as e:
        logger.error(f"Error deleting conversation: {str(e)}", exc_info=True)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, error="Failed to delete conversation")

    return DeleteConversationResponse(
        success=deleted,
        message="Conversation cleared" if deleted else "Conversation not found",
    )
