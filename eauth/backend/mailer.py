"""E-mail delivery channel for one-time codes, built on Flask-Mailman."""

import logging
import smtplib
from typing import Optional

from flask_mailman import EmailMessage

from eauth.core.errors import DeliveryFailed

logger = logging.getLogger(__name__)

SUBJECT = "Your One-Time Password"


class EmailCodeSender:
    """
    Sends OTP messages through the Flask-Mailman extension of the current app.

    Must be used inside an application context. Failures are reported as
    DeliveryFailed and never retried here.
    """

    def __init__(self, default_sender: Optional[str] = None, subject: str = SUBJECT):
        self.default_sender = default_sender
        self.subject = subject

    def send(self, destination: str, message: str) -> None:
        mail = EmailMessage(
            subject=self.subject,
            body=message,
            from_email=self.default_sender,
            to=[destination],
        )
        try:
            mail.send()
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send OTP e-mail to %s: %s", destination, e)
            raise DeliveryFailed() from e
