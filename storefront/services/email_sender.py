# storefront/services/email_sender.py
"""
Outgoing email.

The sender is swappable the same way the payment gateway is: SMTP when
SMTP_HOST is configured, otherwise a sender that only logs (development), and
anything with a `send` method in tests.
"""
import smtplib
from abc import ABC, abstractmethod
from collections import deque
from email.message import EmailMessage

from storefront.utils.logging import get_logger
from storefront.utils.settings import SMTP_FROM, SMTP_HOST, SMTP_PORT, HTTP_TIMEOUT_SECONDS

logger = get_logger(__name__)


class EmailSender(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> None:
        ...


class LoggingEmailSender(EmailSender):
    def __init__(self, keep: int = 100):
        # only the most recent messages are kept
        self.sent: deque[dict] = deque(maxlen=keep)

    def send(self, to: str, subject: str, body: str) -> None:
        self.sent.append({"to": to, "subject": subject, "body": body})
        logger.info("email (not sent, no SMTP configured)", to=to, subject=subject)


class SmtpEmailSender(EmailSender):
    def __init__(self, host: str = SMTP_HOST, port: int = SMTP_PORT, sender: str = SMTP_FROM):
        self.host = host
        self.port = port
        self.sender = sender

    def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=HTTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls()
            smtp.send_message(msg)
        logger.info("email sent", to=to, subject=subject)


_current_sender: EmailSender | None = None


def get_sender() -> EmailSender:
    global _current_sender
    if _current_sender is None:
        _current_sender = SmtpEmailSender() if SMTP_HOST else LoggingEmailSender()
    return _current_sender


def set_sender(sender: EmailSender) -> None:
    global _current_sender
    _current_sender = sender


def reset_sender() -> None:
    global _current_sender
    _current_sender = None
