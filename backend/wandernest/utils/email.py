import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib

from ..core.config import settings

logger = logging.getLogger(__name__)


async def _send_async(msg: EmailMessage) -> None:
    await aiosmtplib.send(
        msg,
        hostname=settings.SMTP_HOST,
        port=settings.SMTP_PORT,
        username=settings.SMTP_USERNAME or None,
        password=settings.SMTP_PASSWORD or None,
        start_tls=bool(settings.SMTP_USERNAME),
    )


def send_email(recipient: str, subject: str, body: str) -> None:
    """Send an email via SMTP.

    Raises ``aiosmtplib.SMTPException`` / ``OSError`` on delivery failure so
    callers decide whether a failure matters. In dev mode without SMTP
    credentials the message is only logged.
    """
    if settings.EMAIL_DEV_MODE and not settings.SMTP_USERNAME:
        logger.info("EMAIL_DEV_MODE: to=%s subject=%s\n%s", recipient, subject, body)
        return
    msg = EmailMessage()
    msg["From"] = settings.SMTP_FROM
    msg["To"] = recipient
    msg["Subject"] = subject
    msg.set_content(body)
    asyncio.run(_send_async(msg))
    logger.info("Sent email to %s", recipient)
