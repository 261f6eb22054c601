"""Sender categorization queue.

The queue is owned by the caller (a CLI run, a request handler) rather than
living in module state, so independent runs never share progress.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from inbox_rules.errors import InboxRulesError
from inbox_rules.models import Session, require_session

if TYPE_CHECKING:
    from inbox_rules.ai.base import LLMClient
    from inbox_rules.storage.rules import RuleStore

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "Unknown"


CATEGORIZE_SENDER_SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails.
Categorize the sender below into exactly one of the user's categories.

<categories>
{categories}
</categories>

If none of the categories fit, answer "{unknown}"."""


CATEGORIZE_SENDER_USER_PROMPT = """<sender>{sender}</sender>
{samples}"""


class CategorizeSenderResponse(BaseModel):
    """LLM answer for one sender."""

    rationale: str = Field(description="Why this category fits. Keep it short.")
    category: str = Field(description="One of the listed category names")


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueueItem:
    """Progress of one sender through the queue."""

    status: QueueStatus = QueueStatus.PENDING
    category: str | None = None
    error: str | None = None
    samples: list[str] = field(default_factory=list)


class CategorizationQueue:
    """Categorize senders with bounded concurrency and persist the result."""

    def __init__(
        self,
        rules: "RuleStore",
        llm: "LLMClient",
        *,
        concurrency: int = 3,
    ) -> None:
        """
        Initialize the queue.

        Args:
            rules: Store used to read categories and save sender categories.
            llm: Client used to pick a category. Retries are the client's
                concern (see ``get_provider``).
            concurrency: Maximum senders categorized at once.
        """
        self.rules = rules
        self.llm = llm
        self._semaphore = asyncio.Semaphore(concurrency)
        self.items: dict[str, QueueItem] = {}

    def push(self, senders: Iterable[str], samples: dict[str, list[str]] | None = None) -> list[str]:
        """
        Queue senders that are not already queued.

        Args:
            senders: Sender addresses.
            samples: Optional recent subjects per sender, shown to the model.

        Returns:
            The senders that were added.
        """
        samples = samples or {}
        added = []
        for sender in senders:
            key = sender.strip().lower()
            if not key or key in self.items:
                continue
            self.items[key] = QueueItem(samples=list(samples.get(sender, [])))
            added.append(key)
        return added

    def get(self, sender: str) -> QueueItem | None:
        return self.items.get(sender.strip().lower())

    def pending(self) -> list[str]:
        return [s for s, item in self.items.items() if item.status == QueueStatus.PENDING]

    async def process(self, session: Session | None) -> dict[str, QueueItem]:
        """
        Categorize every pending sender for the session's user.

        Failures are recorded on the sender's item; the rest of the queue
        keeps going.

        Raises:
            NotLoggedInError: No session.
        """
        session = require_session(session)
        categories = self.rules.list_categories(session.user_id)

        await asyncio.gather(
            *(self._process_one(session.user_id, sender, categories) for sender in self.pending())
        )
        return self.items

    async def _process_one(
        self, user_id: str, sender: str, categories: dict[str, str | None]
    ) -> None:
        item = self.items[sender]
        async with self._semaphore:
            item.status = QueueStatus.PROCESSING
            try:
                category = await self.categorize(sender, categories, item.samples)
                self.rules.set_sender_category(user_id, sender, category)
            except InboxRulesError as e:
                logger.warning("Could not categorize %s: %s", sender, e)
                item.status = QueueStatus.FAILED
                item.error = str(e)
                return
            except Exception as e:
                logger.exception("Unexpected error categorizing %s", sender)
                item.status = QueueStatus.FAILED
                item.error = f"{type(e).__name__}: {e}"
                return

            item.category = category
            item.status = QueueStatus.COMPLETED
            logger.info("Categorized %s as %s", sender, category)

    async def categorize(
        self,
        sender: str,
        categories: dict[str, str | None],
        samples: list[str] | None = None,
    ) -> str:
        """Ask the model for one of ``categories``; unknown answers map to "Unknown"."""
        system = CATEGORIZE_SENDER_SYSTEM_PROMPT.format(
            categories="\n".join(
                f"- {name}: {description}" if description else f"- {name}"
                for name, description in categories.items()
            ),
            unknown=UNKNOWN_CATEGORY,
        )
        prompt = CATEGORIZE_SENDER_USER_PROMPT.format(
            sender=sender,
            samples=(
                "<recent_subjects>\n" + "\n".join(samples) + "\n</recent_subjects>"
                if samples
                else ""
            ),
        )
        response = await self.llm.complete_structured(system, prompt, CategorizeSenderResponse)

        by_lower = {name.lower(): name for name in categories}
        return by_lower.get(response.category.strip().lower(), UNKNOWN_CATEGORY)
