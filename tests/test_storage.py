"""Tests for the SQLite rule and plan stores."""

import pytest
from conftest import make_rule, stripe_rule

from inbox_rules.actions.catalog import Action
from inbox_rules.actions.models import ActionField, ActionType, GenerateAtRuntime, LabelItem, ReplyItem
from inbox_rules.engine.models import ActionOutcome, OutcomeStatus, PlanStatus
from inbox_rules.errors import DuplicateError, NotFoundError, PlanStateError
from inbox_rules.models import User
from inbox_rules.rules.models import GroupItem, GroupItemType, RuleType
from inbox_rules.storage import Database, PlanStore, RuleStore


class TestRuleStore:
    """Tests for rules, groups and categories."""

    def test_rule_round_trip(self, rule_store: RuleStore, user: User) -> None:
        """Test that a rule with tagged field values survives storage."""
        rule = make_rule(
            "Meetings",
            type=RuleType.AI,
            instructions="Meeting requests",
            actions=[
                Action.create(ActionType.LABEL, label="Meetings"),
                Action.create(ActionType.REPLY, cc="", content=GenerateAtRuntime()),
            ],
            category_filters=["Personal"],
        )
        rule_store.create_rule(rule)

        loaded = rule_store.get_rule(rule.id, user.id)
        assert loaded.name == "Meetings"
        assert loaded.category_filters == ["Personal"]
        assert [a.type for a in loaded.actions] == [ActionType.LABEL, ActionType.REPLY]
        assert loaded.actions[1].generated_fields() == [ActionField.CONTENT]
        assert isinstance(loaded.actions[1].fields[ActionField.CONTENT], GenerateAtRuntime)
        assert loaded.actions[1].literal_values() == {"cc": ""}

    def test_rules_listed_in_creation_order(self, rule_store: RuleStore, user: User) -> None:
        for name in ("B", "A", "C"):
            rule_store.create_rule(make_rule(name))
        assert [r.name for r in rule_store.list_rules(user.id)] == ["B", "A", "C"]

    def test_enabled_only(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_rule(make_rule("On"))
        rule_store.create_rule(make_rule("Off", enabled=False))
        assert [r.name for r in rule_store.list_rules(user.id, enabled_only=True)] == ["On"]

    def test_toggle_automate_and_threads(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_rule(make_rule("Receipts"))

        updated = rule_store.set_automate("rule-receipts", user.id, True)
        assert updated.automate is True
        assert updated.run_on_threads is False

        rule_store.set_run_on_threads("rule-receipts", user.id, True)
        rule_store.set_enabled("rule-receipts", user.id, False)

        loaded = rule_store.get_rule("rule-receipts", user.id)
        assert (loaded.automate, loaded.run_on_threads, loaded.enabled) == (True, True, False)

    def test_toggle_other_users_rule_not_found(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_rule(make_rule("Receipts"))
        with pytest.raises(NotFoundError):
            rule_store.set_automate("rule-receipts", "someone-else", True)
        assert rule_store.get_rule("rule-receipts", user.id).automate is False

    def test_duplicate_name_raises(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_rule(make_rule("Same", id="r1"))
        with pytest.raises(DuplicateError) as exc_info:
            rule_store.create_rule(make_rule("Same", id="r2"))
        assert "name" in (exc_info.value.field or "")

    def test_other_users_rules_not_found(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_rule(make_rule("Mine"))
        with pytest.raises(NotFoundError):
            rule_store.get_rule("rule-mine", "someone-else")

    def test_group_has_at_most_one_rule(self, rule_store: RuleStore, user: User) -> None:
        group = rule_store.create_group(user.id, "Receipts", [GroupItem(type=GroupItemType.FROM, value="@stripe.com")])
        rule_store.create_rule(make_rule("First", type=RuleType.GROUP, group_id=group.id))

        assert rule_store.rule_for_group(group.id) == "rule-first"
        with pytest.raises(DuplicateError):
            rule_store.create_rule(make_rule("Second", type=RuleType.GROUP, group_id=group.id))

    def test_find_group_by_name_fragment(self, rule_store: RuleStore, user: User) -> None:
        rule_store.create_group(user.id, "My Newsletters")
        assert rule_store.find_group(user.id, "newsletter").name == "My Newsletters"
        assert rule_store.find_group(user.id, "receipt") is None

    def test_group_items_deduplicated(self, rule_store: RuleStore, user: User) -> None:
        item = GroupItem(type=GroupItemType.SUBJECT, value="invoice")
        group = rule_store.create_group(user.id, "Receipts", [item])
        group = rule_store.add_group_items(group.id, user.id, [item, GroupItem(type=GroupItemType.SUBJECT, value="receipt")])
        assert [i.value for i in group.items] == ["invoice", "receipt"]

    def test_sender_category_case_insensitive(self, rule_store: RuleStore, user: User) -> None:
        rule_store.set_sender_category(user.id, "Billing@Stripe.com", "Receipts")
        rule_store.set_sender_category(user.id, "billing@stripe.com", "Banking")
        assert rule_store.get_sender_category(user.id, "BILLING@stripe.com") == "Banking"
        assert rule_store.get_sender_category(user.id, "other@stripe.com") is None

    def test_missing_user(self, rule_store: RuleStore) -> None:
        with pytest.raises(NotFoundError, match="User not found"):
            rule_store.get_user("ghost")


class TestPlanStore:
    """Tests for plan persistence and lifecycle."""

    @pytest.fixture
    def pending(self, plan_store: PlanStore, rule_store: RuleStore, user: User):
        rule_store.create_rule(stripe_rule(automate=False))
        return plan_store.create_plan(
            user.id,
            "thread-1",
            "msg-1",
            status=PlanStatus.PENDING,
            rule_id="rule-stripe-receipts",
            reason="Matched static conditions",
            items=[LabelItem(label="Receipts"), ReplyItem(content="Thanks!")],
        )

    def test_create_and_load(self, pending, plan_store: PlanStore, user: User) -> None:
        plan = plan_store.get_plan(pending.id, user.id)
        assert plan.status == PlanStatus.PENDING
        assert plan.items == [LabelItem(label="Receipts"), ReplyItem(content="Thanks!")]
        assert plan.executed is False

    def test_unique_per_message(self, pending, plan_store: PlanStore, user: User) -> None:
        """Test that a second plan for the same message is rejected."""
        with pytest.raises(DuplicateError):
            plan_store.create_plan(user.id, "thread-1", "msg-1", status=PlanStatus.SKIPPED)
        assert len(plan_store.list_plans(user.id)) == 1

    def test_same_message_for_other_user_allowed(self, pending, plan_store: PlanStore) -> None:
        other = plan_store.create_plan("user-2", "thread-1", "msg-1", status=PlanStatus.SKIPPED)
        assert other.id != pending.id

    def test_other_users_plan_not_found(self, pending, plan_store: PlanStore) -> None:
        with pytest.raises(NotFoundError):
            plan_store.get_plan(pending.id, "user-2")

    def test_approve_only_from_pending(self, pending, plan_store: PlanStore, user: User) -> None:
        approved = plan_store.transition(pending.id, user.id, PlanStatus.APPROVED)
        assert approved.status == PlanStatus.APPROVED

        with pytest.raises(PlanStateError) as exc_info:
            plan_store.transition(pending.id, user.id, PlanStatus.APPROVED)
        assert exc_info.value.status == "APPROVED"

    def test_reject_is_terminal(self, pending, plan_store: PlanStore, user: User) -> None:
        plan_store.transition(pending.id, user.id, PlanStatus.REJECTED)
        with pytest.raises(PlanStateError):
            plan_store.transition(pending.id, user.id, PlanStatus.APPROVED)

    def test_transition_unknown_plan(self, plan_store: PlanStore, user: User) -> None:
        with pytest.raises(NotFoundError):
            plan_store.transition(999, user.id, PlanStatus.APPROVED)

    def test_record_outcomes(self, pending, plan_store: PlanStore, user: User) -> None:
        outcomes = [
            ActionOutcome(action_type=ActionType.LABEL, status=OutcomeStatus.SUCCEEDED),
            ActionOutcome(
                action_type=ActionType.REPLY,
                status=OutcomeStatus.FAILED,
                error="quota",
                error_kind="TransientProviderError",
            ),
        ]
        plan = plan_store.record_outcomes(pending, outcomes)

        assert plan.executed is True
        assert [a.outcome for a in plan.action_items] == outcomes

        history = plan_store.history(user.id)
        assert [(h["type"], h["outcome"]) for h in history] == [
            ("LABEL", "SUCCEEDED"),
            ("REPLY", "FAILED"),
        ]
        assert history[0]["rule_name"] == "Stripe receipts"

    def test_audit_log(self, pending, plan_store: PlanStore, database: Database, user: User) -> None:
        plan_store.transition(pending.id, user.id, PlanStatus.REJECTED, source="cli")
        entries = database.get_audit_log(user.id, executed_rule_id=pending.id)
        assert [(e["action"], e["source"]) for e in entries] == [
            ("rejected", "cli"),
            ("created", "automation"),
        ]

    def test_list_by_status(self, pending, plan_store: PlanStore, user: User) -> None:
        plan_store.create_plan(user.id, "thread-2", "msg-2", status=PlanStatus.SKIPPED, reason="No rules")
        assert [p.message_id for p in plan_store.list_plans(user.id, status=PlanStatus.SKIPPED)] == ["msg-2"]
        assert plan_store.get_pending_count(user.id) == 1
