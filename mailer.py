"""Daily quote digest.

A handful of random quotes are mailed to the configured receivers on a fixed
interval. A failed send is logged and the loop keeps going.
"""

import asyncio
import logging
import random
import smtplib
from email.message import EmailMessage
from typing import List, Optional, Sequence

from config import Settings, settings as default_settings
from entities import Quote
from library import Library

logger = logging.getLogger(__name__)

SUBJECT = "Quote-reminder"


def select_quotes(library: Library, count: int, rng: Optional[random.Random] = None) -> List[Quote]:
    """Pick ``count`` quotes at random (with replacement). Empty when there are none."""
    quotes = library.get_quotes()
    if not quotes:
        return []
    rng = rng or random
    return [rng.choice(quotes) for _ in range(count)]


def format_quote(quote: Quote) -> str:
    return f"'{quote.quote}' from '{quote.book.title}' by {quote.book.author.name}"


def build_message(quotes: Sequence[Quote], sender: str, receivers: Sequence[str]) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = ", ".join(receivers)
    message["Subject"] = SUBJECT
    message.set_content("\n".join(format_quote(q) for q in quotes) + "\n")
    return message


def send_message(message: EmailMessage, settings: Settings) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as smtp:
        if settings.smtp_username and settings.smtp_password:
            smtp.starttls()
            smtp.login(settings.smtp_username, settings.smtp_password)
        smtp.send_message(message)


def send_digest(library: Library, settings: Settings = default_settings) -> int:
    """Send one digest now. Returns how many quotes went out."""
    if not settings.mail_receivers:
        logger.warning("No mail receivers configured, skipping quote digest")
        return 0
    quotes = select_quotes(library, settings.mail_quote_count)
    if not quotes:
        logger.warning("No quotes stored yet, skipping quote digest")
        return 0
    sender = settings.smtp_username or settings.smtp_from_email
    send_message(build_message(quotes, sender, settings.mail_receivers), settings)
    logger.info(f"Quote digest with {len(quotes)} quotes sent to {len(settings.mail_receivers)} receivers")
    return len(quotes)


async def digest_loop(library: Library, settings: Settings = default_settings) -> None:
    """Send a digest every ``settings.mail_interval_hours`` until cancelled."""
    interval = settings.mail_interval_hours * 3600
    logger.info(f"Quote digest scheduled every {settings.mail_interval_hours}h")
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(send_digest, library, settings)
        except Exception as e:
            logger.exception(f"Quote digest failed: {e}")
