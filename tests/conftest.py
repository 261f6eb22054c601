"""Pytest fixtures for inbox-rules tests."""

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from inbox_rules.actions.catalog import Action
from inbox_rules.actions.models import ActionType
from inbox_rules.ai.base import LLMClient
from inbox_rules.errors import MailNotFoundError
from inbox_rules.logging import reset_logging, setup_logging
from inbox_rules.mail.client import MailClient, MailThread, OutgoingMessage
from inbox_rules.mail.messages import EmailMessage
from inbox_rules.models import Session, User
from inbox_rules.rules.models import Rule, RuleType
from inbox_rules.storage import Database, PlanStore, RuleStore


class FakeLLMClient(LLMClient):
    """LLM double that replays queued responses.

    Each queued response is a dict (sent as JSON), a raw string, or an
    exception to raise.
    """

    name = "fake"

    def __init__(self, responses: Sequence[Any] = ()) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def _complete(
        self, system_prompt: str, user_prompt: str, json_schema: dict[str, Any]
    ) -> str:
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "schema": json_schema}
        )
        if not self.responses:
            raise AssertionError("Unexpected LLM call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return response
        return json.dumps(response)

    async def is_available(self) -> bool:
        return True


class FakeMailClient(MailClient):
    """In-memory mail provider that records every call."""

    def __init__(self) -> None:
        self.messages: dict[str, EmailMessage] = {}
        self.known_labels: set[str] | None = None
        self.errors: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, Any]] = []
        self._sent = 0

    def add(self, *emails: EmailMessage) -> None:
        for email in emails:
            self.messages[email.id] = email

    def fail(self, method: str, *errors: Exception) -> None:
        """Raise ``errors`` (one per call) from ``method`` before succeeding."""
        self.errors.setdefault(method, []).extend(errors)

    def _maybe_fail(self, method: str) -> None:
        pending = self.errors.get(method)
        if pending:
            raise pending.pop(0)

    @property
    def side_effects(self) -> list[tuple[str, Any]]:
        return [c for c in self.calls if c[0] in ("modify_labels", "send_message", "create_draft")]

    async def get_message(self, message_id: str) -> EmailMessage:
        self.calls.append(("get_message", message_id))
        await asyncio.sleep(0)
        self._maybe_fail("get_message")
        if message_id not in self.messages:
            raise MailNotFoundError("Message", message_id)
        return self.messages[message_id]

    async def get_thread(self, thread_id: str) -> MailThread:
        self.calls.append(("get_thread", thread_id))
        await asyncio.sleep(0)
        self._maybe_fail("get_thread")
        messages = [m for m in self.messages.values() if m.thread_id == thread_id]
        if not messages:
            raise MailNotFoundError("Thread", thread_id)
        return MailThread(id=thread_id, messages=messages)

    async def modify_labels(
        self, thread_id: str, *, add: Sequence[str] = (), remove: Sequence[str] = ()
    ) -> None:
        self.calls.append(("modify_labels", {"thread_id": thread_id, "add": list(add), "remove": list(remove)}))
        self._maybe_fail("modify_labels")
        if self.known_labels is not None:
            for label in add:
                if label not in self.known_labels:
                    raise MailNotFoundError("Label", label)

    async def send_message(self, message: OutgoingMessage) -> str:
        self.calls.append(("send_message", message))
        self._maybe_fail("send_message")
        self._sent += 1
        return f"sent-{self._sent}"

    async def create_draft(self, message: OutgoingMessage) -> str:
        self.calls.append(("create_draft", message))
        self._maybe_fail("create_draft")
        self._sent += 1
        return f"draft-{self._sent}"


@pytest.fixture(autouse=True)
def log_dir(tmp_path: Path):
    """Send log files to a temporary directory."""
    path = tmp_path / "logs"
    setup_logging(path, "DEBUG")
    yield path
    reset_logging()


@pytest.fixture
def database(tmp_path: Path) -> Database:
    return Database(tmp_path / "inbox-rules.db")


@pytest.fixture
def rule_store(database: Database) -> RuleStore:
    return RuleStore(database)


@pytest.fixture
def plan_store(database: Database) -> PlanStore:
    return PlanStore(database)


@pytest.fixture
def user(rule_store: RuleStore) -> User:
    """A stored user."""
    return rule_store.add_user(
        User(id="user-1", email="me@example.com", about="I run a small design studio.")
    )


@pytest.fixture
def session(user: User) -> Session:
    return Session(user_id=user.id, email=user.email)


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    return FakeLLMClient()


@pytest.fixture
def fake_mail() -> FakeMailClient:
    return FakeMailClient()


@pytest.fixture
def sample_email() -> EmailMessage:
    """Create a sample email for testing."""
    return EmailMessage(
        id="msg-1",
        thread_id="thread-1",
        sender="Jane Doe <jane@example.com>",
        to="me@example.com",
        subject="Project kickoff",
        date="Mon, 2 Dec 2024 10:00:00 +0000",
        header_message_id="<kickoff@example.com>",
        text_plain="Can we meet on Thursday to go over the plan?",
    )


@pytest.fixture
def stripe_email() -> EmailMessage:
    """Create a receipt email from Stripe."""
    return EmailMessage(
        id="msg-stripe",
        thread_id="thread-stripe",
        sender="Stripe <billing@stripe.com>",
        to="me@example.com",
        subject="Your receipt from Acme Inc",
        date="Tue, 3 Dec 2024 08:30:00 +0000",
        header_message_id="<receipt-123@stripe.com>",
        text_plain="Amount paid: $20.00",
    )


@pytest.fixture
def newsletter_email() -> EmailMessage:
    """Create a newsletter-like email for testing."""
    return EmailMessage(
        id="msg-news",
        thread_id="thread-news",
        sender="Weekly Digest <news@digest.example.org>",
        to="me@example.com",
        subject="Weekly Newsletter - December Edition",
        text_html="<p>Top stories</p><p>View this email in your browser</p>",
    )


def make_rule(name: str = "Rule", **kwargs: Any) -> Rule:
    """Build an unsaved rule with sensible defaults."""
    kwargs.setdefault("id", f"rule-{name.lower().replace(' ', '-')}")
    kwargs.setdefault("user_id", "user-1")
    return Rule(name=name, **kwargs)


def stripe_rule(automate: bool) -> Rule:
    return make_rule(
        "Stripe receipts",
        type=RuleType.STATIC,
        from_address="stripe.com",
        actions=[Action.create(ActionType.LABEL, label="Receipts")],
        automate=automate,
    )
