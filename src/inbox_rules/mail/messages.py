"""Email snapshots used for matching and execution."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parseaddr
from html import unescape

REPLY_SPLIT_PATTERN = re.compile(r"(On.*?wrote:)", re.DOTALL)


@dataclass(frozen=True)
class EmailMessage:
    """Immutable snapshot of one message as fetched from the mail provider."""

    id: str
    thread_id: str
    sender: str
    to: str
    subject: str
    date: str = ""
    cc: str = ""
    reply_to: str = ""
    references: str = ""
    header_message_id: str = ""
    text_plain: str = ""
    text_html: str = ""
    snippet: str = ""
    label_ids: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_text(cls, content: str) -> "EmailMessage":
        """Build a header-less message from free text (for testing rules)."""
        return cls(
            id="",
            thread_id="",
            sender="",
            to="",
            subject="",
            date=datetime.now().isoformat(),
            text_plain=content,
            snippet=content,
        )

    @property
    def sender_address(self) -> str:
        """Bare, lower-cased sender address."""
        return extract_address(self.sender)

    @property
    def sender_domain(self) -> str:
        """Domain part of the sender address, or empty string."""
        address = self.sender_address
        return address.rsplit("@", 1)[-1] if "@" in address else ""

    @property
    def reply_recipient(self) -> str:
        """Where a reply goes: the Reply-To header if present, else From."""
        return self.reply_to or self.sender

    @property
    def content(self) -> str:
        """Best-effort plain text body."""
        if self.text_plain:
            return self.text_plain
        if self.text_html:
            return html_to_text(self.text_html)
        return self.snippet

    @property
    def preview(self) -> str:
        """Get a short preview of the message content."""
        content = self.content[:200].replace("\n", " ").strip()
        return f"{content}..." if len(self.content) > 200 else content


def extract_address(value: str) -> str:
    """Extract the bare address from a header like ``Name <a@b.com>``."""
    _, address = parseaddr(value or "")
    return (address or value or "").strip().lower()


def html_to_text(html: str) -> str:
    """Convert HTML to plain text with tags stripped and entities decoded."""
    if not html:
        return ""

    text = re.sub(r"<(script|style)[^>]*>.*?</\1>", "", html, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</p>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</div>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</tr>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</li>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = unescape(text)

    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def remove_reply_from_text(text: str) -> str:
    """Drop quoted history from a plain-text body.

    ``Content. On Wed, Feb 21, 2024 at 10:10 AM A <a@b.com> wrote: XYZ.``
    becomes ``Content.``
    """
    return REPLY_SPLIT_PATTERN.split(text)[0]


def stringify_email(email: EmailMessage, max_length: int) -> str:
    """Render an email for an LLM prompt, truncating the body."""
    body = remove_reply_from_text(email.content).strip()
    if len(body) > max_length:
        body = body[:max_length] + "..."

    lines = [f"From: {email.sender}"]
    if email.reply_to:
        lines.append(f"Reply to: {email.reply_to}")
    lines.append(f"To: {email.to}")
    if email.cc:
        lines.append(f"CC: {email.cc}")
    if email.date:
        lines.append(f"Date: {email.date}")
    lines.append(f"Subject: {email.subject}")
    lines.append(f"Body:\n{body}")
    return "\n".join(lines)
