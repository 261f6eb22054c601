"""Mail provider side effects for resolved action items.

Each action type maps to exactly one ``MailClient`` call, except SUMMARIZE
which only reports the generated summary.
"""

from inbox_rules.actions.catalog import missing_fields
from inbox_rules.actions.models import (
    ActionItem,
    ArchiveItem,
    DraftEmailItem,
    ForwardItem,
    LabelItem,
    MarkSpamItem,
    ReplyItem,
    SendEmailItem,
    SummarizeItem,
)
from inbox_rules.errors import ActionValidationError
from inbox_rules.mail.client import (
    INBOX_LABEL,
    SPAM_LABEL,
    MailClient,
    OutgoingMessage,
    ReplyContext,
)
from inbox_rules.mail.messages import EmailMessage

FORWARD_SEPARATOR = "---------- Forwarded message ----------"


def reply_subject(subject: str) -> str:
    """Prefix ``Re:`` unless the subject already has it."""
    if subject.lower().startswith("re:"):
        return subject
    return f"Re: {subject}"


def forward_body(email: EmailMessage, lead_in: str) -> str:
    """Lead-in text followed by the quoted original message."""
    return (
        f"{lead_in or ''}\n\n"
        f"{FORWARD_SEPARATOR}\n\n"
        f"From: {email.sender}\n\n"
        f"Date: {email.date}\n\n"
        f"Subject: {email.subject}\n\n"
        f"To: {email.to}\n\n"
        f"{email.content}"
    )


async def archive(mail: MailClient, email: EmailMessage, item: ArchiveItem) -> None:
    await mail.modify_labels(email.thread_id, remove=[INBOX_LABEL])


async def label(mail: MailClient, email: EmailMessage, item: LabelItem) -> None:
    await mail.modify_labels(email.thread_id, add=[item.label])


async def draft(mail: MailClient, email: EmailMessage, item: DraftEmailItem) -> str:
    threaded = bool(email.thread_id)
    return await mail.create_draft(
        OutgoingMessage(
            to=item.to or (email.reply_recipient if threaded else ""),
            subject=item.subject or (reply_subject(email.subject) if threaded else ""),
            body=item.content,
            reply=ReplyContext.for_email(email) if threaded else None,
        )
    )


async def reply(mail: MailClient, email: EmailMessage, item: ReplyItem) -> str:
    return await mail.send_message(
        OutgoingMessage(
            to=email.reply_recipient,
            cc=item.cc,
            bcc=item.bcc,
            subject=reply_subject(email.subject),
            body=item.content,
            reply=ReplyContext.for_email(email),
        )
    )


async def send_email(mail: MailClient, email: EmailMessage, item: SendEmailItem) -> str:
    return await mail.send_message(
        OutgoingMessage(
            to=item.to,
            cc=item.cc,
            bcc=item.bcc,
            subject=item.subject,
            body=item.content,
        )
    )


async def forward(mail: MailClient, email: EmailMessage, item: ForwardItem) -> str:
    return await mail.send_message(
        OutgoingMessage(
            to=item.to,
            cc=item.cc,
            bcc=item.bcc,
            subject=f"Fwd: {email.subject}",
            body=forward_body(email, item.content),
        )
    )


async def mark_spam(mail: MailClient, email: EmailMessage, item: MarkSpamItem) -> None:
    await mail.modify_labels(email.thread_id, add=[SPAM_LABEL], remove=[INBOX_LABEL])


async def run_action(mail: MailClient, email: EmailMessage, item: ActionItem) -> str | None:
    """
    Execute one resolved action item.

    Args:
        mail: Mail provider client.
        email: The email the plan was made for.
        item: The resolved action.

    Returns:
        Provider id of a created message/draft, the summary text, or None.

    Raises:
        ActionValidationError: A required field is empty (no provider call made).
    """
    missing = missing_fields(item)
    if missing:
        raise ActionValidationError(item.type.value, missing)

    match item:
        case ArchiveItem():
            await archive(mail, email, item)
            return None
        case LabelItem():
            await label(mail, email, item)
            return None
        case DraftEmailItem():
            return await draft(mail, email, item)
        case ReplyItem():
            return await reply(mail, email, item)
        case SendEmailItem():
            return await send_email(mail, email, item)
        case ForwardItem():
            return await forward(mail, email, item)
        case SummarizeItem():
            return item.content
        case MarkSpamItem():
            await mark_spam(mail, email, item)
            return None
        case _:
            raise ValueError(f"Unknown action: {item!r}")
