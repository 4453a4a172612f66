"""
Transactional email through Resend.
Docs: https://resend.com/docs
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import resend

from ..config import get_settings
from .email_validation import mask_email

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def _get_resend_api_key() -> Optional[str]:
    return get_settings().resend_api_key or None


def _get_default_reply_to() -> Optional[str]:
    return get_settings().resend_reply_to or None


def is_email_service_configured() -> bool:
    """True when a Resend API key is set."""
    if not _get_resend_api_key():
        logger.warning("RESEND_API_KEY is not set")
        return False
    return True


def get_email_config_info() -> dict:
    settings = get_settings()
    return {
        "provider": "resend",
        "api_key_configured": bool(settings.resend_api_key),
        "from_email": settings.resend_from_email,
        "reply_to": settings.resend_reply_to or None,
        "configured": bool(settings.resend_api_key),
    }


async def send_email(
    to: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    tags: Optional[List[dict]] = None,
) -> EmailResult:
    """
    Send one email.

    Never raises: provider failures are logged and returned as a failed
    EmailResult so callers decide whether a missing email matters.
    """
    if not is_email_service_configured():
        logger.warning("Email service not configured, skipping send")
        return EmailResult(success=False, error="email_service_not_configured")

    if not to:
        logger.warning("Empty recipient, skipping send")
        return EmailResult(success=False, error="missing_recipient")

    try:
        resend.api_key = _get_resend_api_key()

        params = {
            "from": get_settings().resend_from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            # Plain text part for better deliverability
            params["text"] = text
        if tags:
            params["tags"] = tags

        reply_to = _get_default_reply_to()
        if reply_to:
            params["reply_to"] = [reply_to]

        response = resend.Emails.send(params)
        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)

        logger.info(f"Email sent to {mask_email(to)}. ID: {message_id or 'N/A'}")
        return EmailResult(success=True, message_id=message_id)

    except Exception as e:
        logger.error(f"Error sending email to {mask_email(to)}: {e}", exc_info=True)
        return EmailResult(success=False, error=str(e))
