"""
LINE Messaging API client and webhook event helpers.

Replies are always sent with the push API: model calls can outlive the
reply token, and the loading animation already targets the chat id.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

LINE_API_URL = "https://api.line.me/v2/bot"
LINE_DATA_API_URL = "https://api-data.line.me/v2/bot"
REQUEST_TIMEOUT = 10.0
MAX_MESSAGE_LENGTH = 4900

ZX_PREFIX = re.compile(r"^\s*zx\s*", re.IGNORECASE)
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass
class EventTarget:
    """Where an event came from and where the reply goes"""
    user_id: str
    conversation_id: str
    source_type: str  # "user", "group" or "room"
    message_type: str  # "text" or "image"
    group_id: Optional[str] = None

    @property
    def reply_to(self) -> str:
        if self.source_type in ("group", "room") and self.group_id:
            return self.group_id
        return self.user_id

    @property
    def is_direct(self) -> bool:
        return self.source_type == "user"


def is_bot_mentioned(message: Dict[str, Any], bot_user_id: str = "") -> bool:
    mentionees = (message.get("mention") or {}).get("mentionees") or []
    for mentionee in mentionees:
        if mentionee.get("isSelf") is True:
            return True
        if bot_user_id and mentionee.get("userId") == bot_user_id:
            return True
    return False


def should_respond_to_event(event: Dict[str, Any], bot_user_id: str = "") -> Optional[EventTarget]:
    """
    Decide whether the bot answers an event.

    Direct chats are always answered (conversation line_{userId}). Group and
    room chats are answered only for text messages that mention the bot
    (conversation line_group_{groupId}_{userId}).

    Returns:
        EventTarget, or None to stay silent
    """
    if event.get("type") != "message":
        return None

    message = event.get("message") or {}
    message_type = message.get("type", "")
    if message_type not in ("text", "image"):
        return None

    source = event.get("source") or {}
    source_type = source.get("type", "")
    if not event.get("replyToken") or not source_type:
        return None

    user_id = source.get("userId", "")
    if source_type == "user":
        if not user_id:
            return None
        logger.info(f"Direct chat from user: {user_id}")
        return EventTarget(
            user_id=user_id,
            conversation_id=f"line_{user_id}",
            source_type="user",
            message_type=message_type,
        )

    if source_type in ("group", "room"):
        if message_type != "text":
            logger.info("Ignoring non-text message in group/room")
            return None
        if not is_bot_mentioned(message, bot_user_id):
            logger.info(f"Bot not mentioned in {source_type} - ignoring")
            return None

        source_id = source.get("groupId") or source.get("roomId") or ""
        if not user_id or not source_id:
            logger.warning("Missing userId or groupId/roomId in group mention")
            return None
        logger.info(f"Bot mentioned in {source_type}: {source_id} by user: {user_id}")
        return EventTarget(
            user_id=user_id,
            conversation_id=f"line_group_{source_id}_{user_id}",
            source_type=source_type,
            message_type=message_type,
            group_id=source_id,
        )

    logger.warning(f"Unknown source type: {source_type}")
    return None


def remove_zx_prefix(text: str) -> str:
    """Strip the "zx" marker LINE desktop users type to mention the bot"""
    cleaned = ZX_PREFIX.sub("", text, count=1)
    return cleaned or text


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """Split a reply into chunks LINE accepts: paragraphs, then sentences, then hard cuts"""
    if len(text) <= max_length:
        return [text]

    pieces: List[str] = []
    for paragraph in text.split("\n\n"):
        if len(paragraph) <= max_length:
            pieces.append(paragraph)
            continue
        for sentence in SENTENCE_BOUNDARY.split(paragraph):
            while len(sentence) > max_length:
                pieces.append(sentence[:max_length])
                sentence = sentence[max_length:]
            pieces.append(sentence)

    messages: List[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}\n\n{piece}" if current else piece
        if len(candidate) > max_length:
            messages.append(current.strip())
            current = piece
        else:
            current = candidate
    if current.strip():
        messages.append(current.strip())
    return [message for message in messages if message]


class LineMessagingClient:
    """Client for the LINE Messaging API"""

    def __init__(self, access_token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.access_token = access_token
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    async def push_message(self, to: str, text: str) -> bool:
        payload = {"to": to, "messages": [{"type": "text", "text": text}]}
        try:
            async with self._client() as client:
                response = await client.post(f"{LINE_API_URL}/message/push", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Push message to {to} failed: {str(e)}")
            return False
        if not response.is_success:
            logger.error(f"Push message to {to} returned HTTP {response.status_code}: {response.text}")
            return False
        return True

    async def push_messages(self, to: str, text: str) -> bool:
        """Split and push a long reply; True only if every chunk was delivered"""
        delivered = True
        for index, chunk in enumerate(split_message(text)):
            if not await self.push_message(to, chunk):
                logger.error(f"Push message {index} failed")
                delivered = False
        return delivered

    async def show_loading_animation(self, chat_id: str, seconds: int = 60) -> bool:
        """Show the typing indicator (1:1 chats only)"""
        seconds = max(5, min(60, seconds))
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{LINE_API_URL}/chat/loading/start",
                    json={"chatId": chat_id, "loadingSeconds": seconds},
                )
        except httpx.HTTPError as e:
            logger.warning(f"Loading animation failed: {str(e)}")
            return False
        return response.is_success

    async def download_content(self, message_id: str) -> Optional[bytes]:
        """Download an image (or other media) sent by the user"""
        try:
            async with self._client() as client:
                response = await client.get(f"{LINE_DATA_API_URL}/message/{message_id}/content")
        except httpx.HTTPError as e:
            logger.error(f"Content download for {message_id} failed: {str(e)}")
            return None
        if response.status_code != 200 or not response.content:
            logger.error(f"Content download for {message_id} returned HTTP {response.status_code}")
            return None
        return response.content

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Display name and picture of a user who has added the bot"""
        try:
            async with self._client() as client:
                response = await client.get(f"{LINE_API_URL}/profile/{user_id}")
        except httpx.HTTPError as e:
            logger.error(f"Profile fetch for {user_id} failed: {str(e)}")
            return None
        if response.status_code != 200:
            return None
        return response.json()
