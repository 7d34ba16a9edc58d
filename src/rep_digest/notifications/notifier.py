"""
Notification interface and its implementations.

Notifiers are fire-and-forget: send() returns once the message has been
handed off and surfaces no delivery receipt.
"""

import smtplib
import threading
from collections.abc import Mapping
from email.message import EmailMessage
from typing import Protocol

from rep_digest.config import SmtpSettings
from rep_digest.core.models import ArtifactHandle, NotificationRequest
from rep_digest.observability.logger import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    def send(self, request: NotificationRequest, attachments: list[ArtifactHandle]) -> None:
        ...


class UnknownRecipientError(LookupError):
    """Raised when a recipient identifier has no address in the address book."""


class SmtpNotifier:
    """
    Sends notifications as e-mail over SMTP.

    Recipient and sender identifiers are resolved through an address book;
    identifiers that already look like addresses are used as-is.
    """

    def __init__(self, settings: SmtpSettings, address_book: Mapping[str, str] | None = None):
        self.settings = settings
        self.address_book = dict(address_book or {})

    def resolve(self, identifier: str) -> str:
        if "@" in identifier:
            return identifier
        try:
            return self.address_book[identifier]
        except KeyError:
            raise UnknownRecipientError(f"No e-mail address configured for {identifier!r}") from None

    def build_message(self, request: NotificationRequest, attachments: list[ArtifactHandle]) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.resolve(request.sender)
        message["To"] = self.resolve(request.recipient)
        message["Subject"] = request.subject
        message.set_content(request.body)

        content = request.attachment.encoded()
        for handle in attachments:
            maintype, _, subtype = handle.mime_type.partition("/")
            message.add_attachment(
                content,
                maintype=maintype,
                subtype=subtype or "octet-stream",
                filename=handle.name,
            )
        return message

    def send(self, request: NotificationRequest, attachments: list[ArtifactHandle]) -> None:
        message = self.build_message(request, attachments)
        with smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.settings.timeout) as smtp:
            if self.settings.use_tls:
                smtp.starttls()
            if self.settings.username:
                smtp.login(self.settings.username, self.settings.password or "")
            smtp.send_message(message)

        logger.debug(
            "Notification handed to SMTP server",
            extra={"recipient": request.recipient, "attachment": request.attachment.filename},
        )


class LoggingNotifier:
    """Logs notifications instead of sending them; used for dry runs."""

    def __init__(self):
        self.sent: list[NotificationRequest] = []
        self._lock = threading.Lock()

    def send(self, request: NotificationRequest, attachments: list[ArtifactHandle]) -> None:
        with self._lock:
            self.sent.append(request)
        logger.info(
            f"DRY RUN: would send '{request.subject}' to {request.recipient}",
            extra={
                "recipient": request.recipient,
                "attachments": [handle.name for handle in attachments],
                "rows": request.attachment.row_count,
            },
        )
