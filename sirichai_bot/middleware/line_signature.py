"""LINE webhook signature verification for FastAPI."""
import base64
import hashlib
import hmac
import logging

from fastapi import Depends, HTTPException, Request, status

from sirichai_bot.config import Settings
from sirichai_bot.dependencies import get_settings_dependency

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-line-signature"


def compute_signature(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """
    Check an X-Line-Signature header against the raw request body.

    Args:
        body: Raw request body bytes
        signature: Header value (base64 HMAC-SHA256)
        secret: LINE channel secret

    Returns:
        True when the signature matches
    """
    if not signature or not secret:
        return False
    return hmac.compare_digest(signature, compute_signature(body, secret))


async def verified_line_body(
    request: Request,
    settings: Settings = Depends(get_settings_dependency),
) -> bytes:
    """
    Read the webhook body, rejecting it when the signature does not match.

    Returns:
        Raw request body

    Raises:
        HTTPException: 403 if the signature is missing or invalid
    """
    body = await request.body()

    if not settings.verify_line_signature:
        return body

    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not verify_signature(body, signature, settings.line_channel_secret):
        logger.warning("Rejected LINE webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature",
        )
    return body
