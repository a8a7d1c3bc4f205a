"""
LINE event processing

Runs after the webhook has been acknowledged. Handles handoff commands,
skips paused conversations, runs the chatbot and pushes the reply (or a
localized apology) back to the chat.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from sirichai_bot.agents.main_agent import ChatbotAgent, ChatResult
from sirichai_bot.agents.skills.error_recovery import (
    IMAGE_UNAVAILABLE_MESSAGE,
    SYSTEM_ISSUE_MESSAGE,
    error_recovery_skill,
)
from sirichai_bot.models.message import MessageRole
from sirichai_bot.services.conversation_service import ConversationManager
from sirichai_bot.services.line_messaging import (
    EventTarget,
    LineMessagingClient,
    remove_zx_prefix,
    should_respond_to_event,
)

logger = logging.getLogger(__name__)

PAUSE_COMMANDS = ["ติดต่อพนักงาน", "คุยกับพนักงาน", "ขอคุยกับพนักงาน", "ต้องการคุยกับพนักงาน", "/human", "/agent"]
RESUME_COMMANDS = ["เปิดแชทบอท", "เปิดบอท", "/bot", "/resume", "/on", "/chatbot"]
RESET_COMMAND = "/reset"

PAUSE_MARKER = "[ผู้ใช้ขอติดต่อพนักงาน]"
RESUME_MARKER = "[แชทบอทกลับมาให้บริการ]"
IMAGE_MARKER = "[ผู้ใช้ส่งรูปภาพ]"

ALREADY_PAUSED_MESSAGE = (
    "ขณะนี้ท่านกำลังรอพนักงานอยู่แล้วค่ะ กรุณารอสักครู่นะคะ\n\n"
    "You are already waiting for a human agent. Please wait a moment."
)
PAUSED_MESSAGE = (
    "ได้รับคำขอแล้วค่ะ พนักงานจะติดต่อกลับโดยเร็วที่สุด\n"
    "ระหว่างนี้แชทบอทจะหยุดตอบชั่วคราวค่ะ\n\n"
    "Your request has been received. An agent will contact you soon.\n"
    "The chatbot will be paused in the meantime.\n\n"
    "💡 พิมพ์ \"/bot\" เพื่อกลับมาใช้แชทบอท"
)
ALREADY_ACTIVE_MESSAGE = (
    "แชทบอทพร้อมให้บริการอยู่แล้วค่ะ มีอะไรให้ช่วยไหมคะ?\n\n"
    "The chatbot is already active. How can I help you?"
)
RESUMED_MESSAGE = (
    "แชทบอทกลับมาให้บริการแล้วค่ะ 🤖\n"
    "มีอะไรให้ช่วยไหมคะ?\n\n"
    "The chatbot is now active again.\n"
    "How can I help you?"
)
RESET_MESSAGE = (
    "ล้างประวัติการสนทนาเรียบร้อยแล้วค่ะ\n"
    "เริ่มต้นบทสนทนาใหม่ได้เลยค่ะ\n\n"
    "Chat history has been cleared.\n"
    "You can start a fresh conversation now."
)


def first_sender_id(events: List[Dict[str, Any]]) -> Optional[str]:
    for event in events:
        user_id = (event.get("source") or {}).get("userId")
        if user_id:
            return user_id
    return None


async def notify_system_issue(
    line_client: LineMessagingClient,
    events: List[Dict[str, Any]],
    bot_user_id: str = "",
) -> None:
    """Apologise once to every sender the bot would have answered"""
    notified = set()
    for event in events:
        target = should_respond_to_event(event, bot_user_id)
        if target is None or target.user_id in notified:
            continue
        notified.add(target.user_id)
        await line_client.push_message(target.user_id, SYSTEM_ISSUE_MESSAGE)


class LineEventProcessor:
    """Handles the events of one webhook delivery"""

    def __init__(
        self,
        chatbot: ChatbotAgent,
        conversations: ConversationManager,
        line_client: LineMessagingClient,
        authorized: bool = False,
        bot_user_id: str = "",
    ):
        self.chatbot = chatbot
        self.conversations = conversations
        self.line = line_client
        self.authorized = authorized
        self.bot_user_id = bot_user_id

    async def process_events(self, events: List[Dict[str, Any]]) -> None:
        """Handle every event; a failing event gets a generic apology"""
        for event in events:
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error(f"LINE event failed: {str(e)}", exc_info=True)
                user_id = (event.get("source") or {}).get("userId")
                if user_id:
                    await self.line.push_message(user_id, SYSTEM_ISSUE_MESSAGE)

    async def handle_event(self, event: Dict[str, Any]) -> None:
        target = should_respond_to_event(event, self.bot_user_id)
        if target is None:
            return

        message = event.get("message") or {}
        if target.message_type == "text":
            text = (message.get("text") or "").strip()
            if await self.handle_command(text, target):
                return

        if not self.conversations.is_active(target.conversation_id):
            logger.info(f"Chatbot paused for {target.conversation_id} - skipping AI response")
            return

        history = self.conversations.get_history(target.conversation_id)

        # LINE does not support the loading animation in group/room chats
        if target.is_direct:
            await self.line.show_loading_animation(target.reply_to, 60)

        started = time.monotonic()
        if target.message_type == "image":
            result = await self._answer_image(message, target, history)
        else:
            result = await self._answer_text(message, target, history)
        if result is None:
            return

        duration = round(time.monotonic() - started, 2)
        if result.success:
            logger.info(f"Chatbot answered {target.conversation_id} in {duration}s ({result.tokens_used} tokens)")
            self.conversations.record_turn(
                target.conversation_id, MessageRole.ASSISTANT, result.response, result.tokens_used
            )
            await self.line.push_messages(target.reply_to, result.response)
        else:
            logger.error(f"Chatbot failed ({duration}s) - {result.error}")
            reply = result.response or error_recovery_skill.handle_chat_failure(result.error).message
            await self.line.push_message(target.reply_to, reply)

    async def _answer_image(self, message: Dict[str, Any], target: EventTarget, history) -> Optional[ChatResult]:
        message_id = message.get("id")
        if not message_id:
            return None

        image = await self.line.download_content(message_id)
        if image is None:
            await self.line.push_message(target.reply_to, IMAGE_UNAVAILABLE_MESSAGE)
            return None

        result = await self.chatbot.chat_with_image(
            image, "image/jpeg", history, authorized=self.authorized
        )
        self.conversations.record_turn(
            target.conversation_id, MessageRole.USER, IMAGE_MARKER, 0, result.search_criteria
        )
        return result

    async def _answer_text(self, message: Dict[str, Any], target: EventTarget, history) -> Optional[ChatResult]:
        text = message.get("text") or ""
        if not text:
            return None

        result = await self.chatbot.chat(remove_zx_prefix(text), history, authorized=self.authorized)
        self.conversations.record_turn(
            target.conversation_id, MessageRole.USER, text, 0, result.search_criteria
        )
        return result

    # Handoff commands

    async def handle_command(self, text: str, target: EventTarget) -> bool:
        """
        Run a pause/resume/reset command.

        Returns:
            True if the text was a command
        """
        command = text.strip().lower()
        if command in PAUSE_COMMANDS:
            await self._pause(target)
            return True
        if command in RESUME_COMMANDS:
            await self._resume(target)
            return True
        if command == RESET_COMMAND:
            self.conversations.reset_history(target.conversation_id)
            await self.line.push_message(target.user_id, RESET_MESSAGE)
            logger.info(f"Conversation history reset by user: {target.conversation_id}")
            return True
        return False

    async def _pause(self, target: EventTarget) -> None:
        if not self.conversations.is_active(target.conversation_id):
            await self.line.push_message(target.user_id, ALREADY_PAUSED_MESSAGE)
            return

        self.conversations.pause(target.conversation_id)
        self.conversations.record_turn(target.conversation_id, MessageRole.USER, PAUSE_MARKER)
        await self.line.push_message(target.user_id, PAUSED_MESSAGE)

        profile = await self.line.get_profile(target.user_id)
        display_name = (profile or {}).get("displayName", target.user_id)
        logger.info(f"Chatbot paused by user request: {target.conversation_id} ({display_name})")

    async def _resume(self, target: EventTarget) -> None:
        if self.conversations.is_active(target.conversation_id):
            await self.line.push_message(target.user_id, ALREADY_ACTIVE_MESSAGE)
            return

        self.conversations.resume(target.conversation_id)
        self.conversations.record_turn(target.conversation_id, MessageRole.ASSISTANT, RESUME_MARKER)
        await self.line.push_message(target.user_id, RESUMED_MESSAGE)
        logger.info(f"Chatbot resumed: {target.conversation_id}")
