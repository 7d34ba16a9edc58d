"""
Report notification delivery.
"""

from .notifier import LoggingNotifier, Notifier, SmtpNotifier, UnknownRecipientError

__all__ = [
    "Notifier",
    "SmtpNotifier",
    "LoggingNotifier",
    "UnknownRecipientError",
]
