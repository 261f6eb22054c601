"""Tests for creating rules from prompts."""

import pytest
from conftest import FakeLLMClient, make_rule

from inbox_rules.actions.models import ActionField, ActionType, GenerateAtRuntime, LiteralValue
from inbox_rules.errors import GroupInUseError, LLMSchemaError, NotLoggedInError
from inbox_rules.models import Session
from inbox_rules.rules.builder import RuleActionSpec, RuleBuilder, action_from_spec
from inbox_rules.rules.models import RuleType
from inbox_rules.storage import RuleStore


def response(name: str = "Label receipts", **kwargs) -> dict:
    return {"name": name, "actions": [{"type": "LABEL", "label": "Receipts"}], **kwargs}


class TestCreateRuleFromPrompt:
    """Tests for RuleBuilder.create_rule_from_prompt."""

    @pytest.mark.asyncio
    async def test_static_rule(self, rule_store: RuleStore, session: Session) -> None:
        llm = FakeLLMClient([response(static_conditions={"from_address": "stripe.com"})])
        rule = await RuleBuilder(rule_store, llm).create_rule_from_prompt(
            session, "Label emails from Stripe as Receipts"
        )

        assert rule.type == RuleType.STATIC
        assert rule.from_address == "stripe.com"
        assert rule.instructions == "Label emails from Stripe as Receipts"
        assert rule.automate is False
        assert rule.run_on_threads is False
        assert rule_store.get_rule(rule.id, session.user_id).actions[0].literal_values() == {"label": "Receipts"}

    @pytest.mark.asyncio
    async def test_ai_rule_without_conditions(self, rule_store: RuleStore, session: Session) -> None:
        llm = FakeLLMClient([response(static_conditions={"from_address": None})])
        rule = await RuleBuilder(rule_store, llm).create_rule_from_prompt(session, "Label receipts")
        assert rule.type == RuleType.AI
        assert rule.from_address is None

    @pytest.mark.asyncio
    async def test_group_created_when_missing(self, rule_store: RuleStore, session: Session) -> None:
        llm = FakeLLMClient([response(group="Receipts", static_conditions={"subject": "receipt"})])
        rule = await RuleBuilder(rule_store, llm).create_rule_from_prompt(session, "Label receipts")

        assert rule.type == RuleType.GROUP
        group = rule_store.get_group(rule.group_id, session.user_id)
        assert group.name == "Receipts"
        assert group.items

    @pytest.mark.asyncio
    async def test_existing_group_reused(self, rule_store: RuleStore, session: Session) -> None:
        existing = rule_store.create_group(session.user_id, "My newsletters")
        llm = FakeLLMClient([response("Archive newsletters", group="Newsletters")])

        rule = await RuleBuilder(rule_store, llm).create_rule_from_prompt(session, "Archive newsletters")

        assert rule.group_id == existing.id

    @pytest.mark.asyncio
    async def test_group_with_rule_is_error(self, rule_store: RuleStore, session: Session) -> None:
        group = rule_store.create_group(session.user_id, "Newsletters")
        rule_store.create_rule(make_rule("Existing", type=RuleType.GROUP, group_id=group.id))
        llm = FakeLLMClient([response("Another", group="Newsletters")])

        with pytest.raises(GroupInUseError) as exc_info:
            await RuleBuilder(rule_store, llm).create_rule_from_prompt(session, "Archive newsletters")
        assert exc_info.value.existing_rule_id == "rule-existing"

    @pytest.mark.asyncio
    async def test_duplicate_name_gets_timestamp(self, rule_store: RuleStore, session: Session) -> None:
        rule_store.create_rule(make_rule("Label receipts"))
        llm = FakeLLMClient([response()])

        rule = await RuleBuilder(rule_store, llm, clock=lambda: 1700000000.5).create_rule_from_prompt(
            session, "Label receipts"
        )

        assert rule.name == "Label receipts - 1700000000500"
        assert len(rule_store.list_rules(session.user_id)) == 2

    @pytest.mark.asyncio
    async def test_invalid_group_is_schema_error(self, rule_store: RuleStore, session: Session) -> None:
        llm = FakeLLMClient([response(group="Travel")])
        with pytest.raises(LLMSchemaError):
            await RuleBuilder(rule_store, llm).create_rule_from_prompt(session, "Travel emails")

    @pytest.mark.asyncio
    async def test_requires_session(self, rule_store: RuleStore) -> None:
        with pytest.raises(NotLoggedInError):
            await RuleBuilder(rule_store, FakeLLMClient()).create_rule_from_prompt(None, "anything")


class TestActionFromSpec:
    """Tests for converting proposed actions."""

    def test_empty_required_fields_generated(self) -> None:
        action = action_from_spec(RuleActionSpec(type=ActionType.REPLY, cc="boss@example.com"))
        assert action.fields == {
            ActionField.CC: LiteralValue(value="boss@example.com"),
            ActionField.CONTENT: GenerateAtRuntime(),
        }

    def test_irrelevant_fields_dropped(self) -> None:
        action = action_from_spec(RuleActionSpec(type=ActionType.ARCHIVE, label="ignored"))
        assert action.fields == {}
