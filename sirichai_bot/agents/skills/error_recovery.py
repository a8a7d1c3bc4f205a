"""
Error Recovery Skill

Maps chat failures to the bilingual (Thai / English) messages sent back
to LINE users.
"""

from dataclasses import dataclass
from typing import Optional
import logging

logger = logging.getLogger(__name__)

TOO_MANY_CALLS_APOLOGY = (
    "ขออภัยค่ะ ระบบประมวลผลข้อมูลไม่สำเร็จ "
    "กรุณาลองถามใหม่อีกครั้งหรือติดต่อพนักงานเพื่อขอความช่วยเหลือค่ะ"
)

RATE_LIMIT_MESSAGE = (
    "ขออภัยครับ ขณะนี้มีผู้ใช้งานเยอะมาก กรุณารอสักครู่แล้วลองใหม่อีกครั้งครับ\n\n"
    "Sorry, we're experiencing high traffic. Please wait a moment and try again."
)

SYSTEM_ISSUE_MESSAGE = (
    "ขออภัยครับ ขณะนี้ระบบมีปัญหา กรุณาลองใหม่อีกครั้งหรือติดต่อทีมงานโดยตรงครับ\n\n"
    "Sorry, the system is experiencing issues. Please try again or contact our team directly."
)

IMAGE_UNAVAILABLE_MESSAGE = (
    "ขออภัยครับ ไม่สามารถรับรูปภาพได้ กรุณาลองส่งใหม่อีกครั้งครับ\n\n"
    "Sorry, we couldn't receive the image. Please try sending it again."
)


@dataclass
class RecoveryStrategy:
    """Strategy for recovering from an error"""
    strategy_type: str  # "wait", "apologize"
    message: str  # Message for the user


class ErrorRecoverySkill:
    """
    Skill for turning failures into user-facing messages

    Handles:
    - Rate limiting -> ask the user to wait
    - Anything else -> generic apology
    """

    def is_rate_limited(self, error: Optional[str]) -> bool:
        return bool(error) and ("RATE_LIMIT_EXCEEDED" in error or "429" in error)

    def is_empty_stop(self, error: Optional[str]) -> bool:
        """Empty STOP replies persisting through retries usually mean a stale catalog file"""
        return bool(error) and "empty response: STOP" in error

    def handle_chat_failure(self, error: Optional[str]) -> RecoveryStrategy:
        """
        Choose the message for a failed chat turn

        Args:
            error: Error text from the chatbot

        Returns:
            Recovery strategy carrying the message to send
        """
        if self.is_rate_limited(error):
            logger.warning(f"Rate limit hit: {error}")
            return RecoveryStrategy(strategy_type="wait", message=RATE_LIMIT_MESSAGE)

        return RecoveryStrategy(strategy_type="apologize", message=SYSTEM_ISSUE_MESSAGE)


# Singleton instance
error_recovery_skill = ErrorRecoverySkill()
