"""Create rules from a natural-language prompt."""

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

from inbox_rules.actions.catalog import ACTION_DEFINITIONS, Action, get_definition
from inbox_rules.actions.models import ActionType, GenerateAtRuntime, LiteralValue
from inbox_rules.errors import DuplicateError, GroupInUseError
from inbox_rules.models import Session, require_session
from inbox_rules.rules.models import Group, GroupItem, GroupItemType, Rule, RuleType
from inbox_rules.storage.rules import new_id

if TYPE_CHECKING:
    from inbox_rules.ai.base import LLMClient
    from inbox_rules.storage.rules import RuleStore

logger = logging.getLogger(__name__)

BuiltinGroup = Literal["Newsletters", "Receipts"]

# Name fragment used to find an existing group, and the items a new one starts with
BUILTIN_GROUPS: dict[str, tuple[str, list[GroupItem]]] = {
    "Newsletters": (
        "newsletter",
        [
            GroupItem(type=GroupItemType.SUBJECT, value="newsletter"),
            GroupItem(type=GroupItemType.BODY, value="view this email in your browser"),
            GroupItem(type=GroupItemType.BODY, value="unsubscribe from this list"),
        ],
    ),
    "Receipts": (
        "receipt",
        [
            GroupItem(type=GroupItemType.SUBJECT, value="receipt"),
            GroupItem(type=GroupItemType.SUBJECT, value="invoice"),
            GroupItem(type=GroupItemType.SUBJECT, value="order confirmation"),
        ],
    ),
}


CREATE_RULE_SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails.
You turn a plain-language description of an email automation into a rule.

Available actions:
{actions}

Guidelines:
- Only use static conditions when the prompt names a specific sender, recipient or subject.
- Use the "Newsletters" or "Receipts" group when the prompt is about newsletters or receipts in general.
- Leave an action field empty if it should be written for each email when the rule runs.
- Give the rule a short descriptive name."""


CREATE_RULE_USER_PROMPT = """Create a rule for this request:

<prompt>
{prompt}
</prompt>"""


class StaticConditions(BaseModel):
    """Header conditions the rule should match on."""

    from_address: str | None = Field(default=None, description="Sender address or part of it")
    to_address: str | None = Field(default=None, description="Recipient address or part of it")
    subject: str | None = Field(default=None, description="Text the subject contains")


class RuleActionSpec(BaseModel):
    """One action of a rule proposed by the LLM."""

    type: ActionType
    label: str | None = None
    to: str | None = None
    cc: str | None = None
    bcc: str | None = None
    subject: str | None = None
    content: str | None = None


class CreateRuleResponse(BaseModel):
    """LLM answer describing a new rule."""

    name: str = Field(description="Short name for the rule")
    static_conditions: StaticConditions | None = None
    group: BuiltinGroup | None = Field(
        default=None, description="Built-in group the rule applies to, if any"
    )
    actions: list[RuleActionSpec] = Field(default_factory=list)


def action_from_spec(spec: RuleActionSpec) -> Action:
    """
    Convert a proposed action into a stored action.

    Given values become literal fields. Required fields left empty are
    generated when the rule runs; other empty fields are dropped.
    """
    definition = get_definition(spec.type)
    fields: dict = {}
    for name in definition.fields:
        value = getattr(spec, name.value)
        if value:
            fields[name] = LiteralValue(value=value)
        elif name in definition.required:
            fields[name] = GenerateAtRuntime()
    return Action(type=spec.type, fields=fields)


def rule_type_for(response: CreateRuleResponse) -> RuleType:
    """Group rules first, then static conditions, otherwise AI."""
    if response.group:
        return RuleType.GROUP
    conditions = response.static_conditions
    if conditions and (conditions.from_address or conditions.to_address or conditions.subject):
        return RuleType.STATIC
    return RuleType.AI


class RuleBuilder:
    """Turn a prompt into a stored, non-automated rule."""

    def __init__(
        self,
        rules: "RuleStore",
        llm: "LLMClient",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.rules = rules
        self.llm = llm
        self.clock = clock

    def _resolve_group(self, user_id: str, group: str) -> Group:
        fragment, items = BUILTIN_GROUPS[group]
        existing = self.rules.find_group(user_id, fragment)
        if existing is None:
            logger.info("Creating %s group for %s", group, user_id)
            return self.rules.create_group(user_id, group, items)

        rule_id = self.rules.rule_for_group(existing.id)
        if rule_id is not None:
            raise GroupInUseError(existing.name, rule_id)
        return existing

    async def create_rule_from_prompt(self, session: Session | None, prompt: str) -> Rule:
        """
        Ask the LLM for a rule matching ``prompt`` and store it.

        The rule is created with ``automate`` and ``run_on_threads`` off, and
        the prompt as its instructions. If the name is taken the rule is
        stored once more under ``"<name> - <timestamp>"``.

        Raises:
            NotLoggedInError: No session.
            GroupInUseError: The chosen group already has a rule.
            LLMSchemaError: The model's answer was not a valid rule.
        """
        session = require_session(session)
        user = self.rules.get_user(session.user_id)

        system = CREATE_RULE_SYSTEM_PROMPT.format(
            actions="\n".join(
                f"- {d.type.value}: {d.description}" for d in ACTION_DEFINITIONS.values()
            )
        )
        response = await self.llm.complete_structured(
            system, CREATE_RULE_USER_PROMPT.format(prompt=prompt), CreateRuleResponse
        )

        group_id = self._resolve_group(user.id, response.group).id if response.group else None
        conditions = response.static_conditions or StaticConditions()

        rule = Rule(
            id=new_id(),
            user_id=user.id,
            name=response.name,
            type=rule_type_for(response),
            instructions=prompt,
            from_address=conditions.from_address or None,
            to_address=conditions.to_address or None,
            subject=conditions.subject or None,
            group_id=group_id,
            actions=[action_from_spec(a) for a in response.actions],
            automate=False,
            run_on_threads=False,
        )

        try:
            return self.rules.create_rule(rule)
        except DuplicateError as e:
            if not e.field or "name" not in e.field:
                raise
            name = f"{rule.name} - {int(self.clock() * 1000)}"
            logger.info("Rule name '%s' taken, using '%s'", rule.name, name)
            return self.rules.create_rule(rule.model_copy(update={"name": name, "id": new_id()}))
