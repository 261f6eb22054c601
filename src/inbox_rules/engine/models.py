"""Data models for plans, outcomes and pipeline results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from inbox_rules.actions.models import ActionItem, ActionType
from inbox_rules.rules.matcher import MatchResult


class PlanStatus(str, Enum):
    """Lifecycle of an executed rule."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


class OutcomeStatus(str, Enum):
    """Result of attempting one action item."""

    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ActionOutcome(BaseModel):
    """What happened when one action item ran."""

    action_type: ActionType
    status: OutcomeStatus
    detail: str | None = Field(default=None, description="Provider id or summary text")
    error: str | None = None
    error_kind: str | None = Field(default=None, description="Exception class name on failure")

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


class PlannedAction(BaseModel):
    """An action item stored as part of a plan."""

    id: int | None = None
    position: int
    item: ActionItem
    outcome: ActionOutcome | None = None


class ExecutedRule(BaseModel):
    """The persisted decision for one (user, thread, message)."""

    id: int
    user_id: str
    thread_id: str
    message_id: str
    rule_id: str | None = None
    status: PlanStatus
    reason: str | None = None
    automated: bool = False
    action_items: list[PlannedAction] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    executed_at: datetime | None = None

    @property
    def executed(self) -> bool:
        return self.executed_at is not None

    @property
    def items(self) -> list[ActionItem]:
        return [a.item for a in self.action_items]


class PipelineResult(BaseModel):
    """Summary of running rules on one message."""

    message_id: str
    thread_id: str
    plan: ExecutedRule | None = Field(default=None, description="Plan stored for the message")
    match: MatchResult | None = None
    outcomes: list[ActionOutcome] = Field(default_factory=list)
    skipped: bool = Field(default=False, description="Nothing was done for this message")
    reason: str | None = None

    @property
    def executed(self) -> bool:
        return bool(self.outcomes)


class TestResult(BaseModel):
    """What the rules would do for an email, without side effects."""

    __test__ = False  # not a pytest class

    match: MatchResult
    action_items: list[ActionItem] = Field(default_factory=list)
    automated: bool = False


def outcome_summary(outcomes: list[ActionOutcome]) -> str:
    """Short text like ``"2 succeeded, 1 failed"``."""
    counts: dict[str, int] = {}
    for outcome in outcomes:
        key = outcome.status.value.lower()
        counts[key] = counts.get(key, 0) + 1
    return ", ".join(f"{n} {status}" for status, n in counts.items()) or "no actions"
