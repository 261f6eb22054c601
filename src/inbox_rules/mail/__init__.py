"""Mail provider interface and email snapshots."""

from inbox_rules.mail.client import (
    INBOX_LABEL,
    SPAM_LABEL,
    MailClient,
    MailThread,
    OutgoingMessage,
    ReplyContext,
    RetryingMailClient,
)
from inbox_rules.mail.messages import EmailMessage, stringify_email

__all__ = [
    "INBOX_LABEL",
    "SPAM_LABEL",
    "EmailMessage",
    "MailClient",
    "MailThread",
    "OutgoingMessage",
    "ReplyContext",
    "RetryingMailClient",
    "stringify_email",
]
