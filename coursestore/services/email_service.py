"""
Transactional email through the Brevo HTTP API.

Sending is best-effort: every failure is logged and reported as ``False``,
never raised, so order handling cannot be held up by mail delivery.
"""
import base64
import logging
import re
from typing import Iterable, List, Optional, Tuple, Union

import requests

from coursestore.config import settings

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"
BREVO_TIMEOUT_SECONDS = 10

EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")

# (filename, content, mime type)
Attachment = Tuple[str, bytes, str]


def is_valid_email(email) -> bool:
    if isinstance(email, list):
        return bool(email) and all(is_valid_email(e) for e in email)
    return bool(email) and EMAIL_RE.fullmatch(email) is not None


def _recipients(to: Union[str, Iterable[str]]) -> List[str]:
    candidates = [to] if isinstance(to, str) else list(to or [])
    return [e for e in candidates if is_valid_email(e)]


def _payload(recipients: List[str], subject: str, html: str, attachments: Optional[List[Attachment]]) -> dict:
    payload = {
        "sender": {"email": settings.MAIL_FROM, "name": settings.STORE_NAME},
        "to": [{"email": e} for e in recipients],
        "subject": subject,
        "htmlContent": html,
    }
    if attachments:
        payload["attachment"] = [
            {"name": filename, "content": base64.b64encode(content).decode("ascii")}
            for filename, content, _mime_type in attachments
        ]
    return payload


def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    attachments: Optional[List[Attachment]] = None,
) -> bool:
    recipients = _recipients(to)
    if not recipients:
        logger.warning("No valid emails found: %s", to)
        return False

    # local and test runs have no key
    if not settings.BREVO_API_KEY:
        logger.info("Email disabled, skipping '%s' to %s", subject, recipients)
        return False

    try:
        response = requests.post(
            BREVO_API_URL,
            json=_payload(recipients, subject, html, attachments),
            headers={"api-key": settings.BREVO_API_KEY, "Content-Type": "application/json"},
            timeout=BREVO_TIMEOUT_SECONDS,
        )
    except requests.RequestException:
        logger.exception("Brevo request for '%s' failed", subject)
        return False

    if response.status_code >= 400:
        logger.error("Brevo email failed (%s): %s", response.status_code, response.text)
        return False

    logger.info("Brevo email '%s' sent to %s", subject, recipients)
    return True
