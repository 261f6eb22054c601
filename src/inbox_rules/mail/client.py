"""Mail provider interface consumed by the rule pipeline."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field

from inbox_rules.mail.messages import EmailMessage
from inbox_rules.retry import RetryPolicy

INBOX_LABEL = "INBOX"
SPAM_LABEL = "SPAM"


@dataclass(frozen=True)
class MailThread:
    """A conversation as returned by the provider."""

    id: str
    messages: list[EmailMessage] = field(default_factory=list)

    @property
    def is_thread(self) -> bool:
        """True when the conversation has more than one message."""
        return len(self.messages) > 1


@dataclass(frozen=True)
class ReplyContext:
    """Threading headers for a reply or threaded draft."""

    thread_id: str
    references: str = ""
    in_reply_to: str = ""

    @classmethod
    def for_email(cls, email: EmailMessage) -> "ReplyContext":
        references = " ".join(
            part for part in (email.references, email.header_message_id) if part
        )
        return cls(
            thread_id=email.thread_id,
            references=references,
            in_reply_to=email.header_message_id,
        )


@dataclass(frozen=True)
class OutgoingMessage:
    """Parameters for a message to send or save as a draft."""

    to: str
    subject: str
    body: str
    cc: str = ""
    bcc: str = ""
    reply: ReplyContext | None = None


class MailClient(ABC):
    """Abstract mail provider.

    Implementations raise ``MailNotFoundError``, ``TransientProviderError`` or
    ``PermissionDeniedError`` from ``inbox_rules.errors``.
    """

    @abstractmethod
    async def get_message(self, message_id: str) -> EmailMessage:
        """Fetch one message."""
        ...

    @abstractmethod
    async def get_thread(self, thread_id: str) -> MailThread:
        """Fetch a thread with its messages."""
        ...

    @abstractmethod
    async def modify_labels(
        self,
        thread_id: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
    ) -> None:
        """Add and remove labels on every message of a thread."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> str:
        """Send a message and return its provider id."""
        ...

    @abstractmethod
    async def create_draft(self, message: OutgoingMessage) -> str:
        """Save a draft and return its provider id."""
        ...


class RetryingMailClient(MailClient):
    """Wrap a ``MailClient`` with a retry policy.

    Reads and label changes are idempotent and retried. Sends and drafts are
    passed through once so that a provider-visible side effect is never
    repeated.
    """

    def __init__(self, inner: MailClient, policy: RetryPolicy) -> None:
        self.inner = inner
        self.policy = policy

    async def get_message(self, message_id: str) -> EmailMessage:
        return await self.policy.call(
            lambda: self.inner.get_message(message_id),
            description=f"get_message({message_id})",
        )

    async def get_thread(self, thread_id: str) -> MailThread:
        return await self.policy.call(
            lambda: self.inner.get_thread(thread_id),
            description=f"get_thread({thread_id})",
        )

    async def modify_labels(
        self,
        thread_id: str,
        *,
        add: Sequence[str] = (),
        remove: Sequence[str] = (),
    ) -> None:
        await self.policy.call(
            lambda: self.inner.modify_labels(thread_id, add=add, remove=remove),
            description=f"modify_labels({thread_id})",
        )

    async def send_message(self, message: OutgoingMessage) -> str:
        return await self.inner.send_message(message)

    async def create_draft(self, message: OutgoingMessage) -> str:
        return await self.inner.create_draft(message)
