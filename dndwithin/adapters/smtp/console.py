"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging queued emails for development and demos.
"""

import logging

from dndwithin.domain.models import EmailData

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For development purposes - the body carries the activation or reset
    link, so this is how a local developer retrieves it.
    """

    async def send(self, email: EmailData) -> None:
        """
        Log the email at INFO level (simulates delivery).

        In production, this would be replaced with an SMTP or API adapter
        that raises EmailDeliveryError on failure.
        """
        logger.info(
            "[EMAIL] From: %s To: %s Subject: %s Body: %s",
            email.sender_email,
            email.recipient_email,
            email.subject,
            email.body,
        )
