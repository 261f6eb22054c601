"""Tests for the rule matcher."""

import pytest
from conftest import FakeLLMClient, make_rule

from inbox_rules.actions.catalog import Action
from inbox_rules.actions.models import ActionType
from inbox_rules.errors import LLMSchemaError
from inbox_rules.mail.messages import EmailMessage
from inbox_rules.models import User
from inbox_rules.rules.matcher import NO_MATCH_REASON, NO_RULES_REASON, RuleMatcher
from inbox_rules.rules.models import Group, GroupItem, GroupItemType, RuleType

USER = User(id="user-1", email="me@example.com", about="Freelance designer")


def ai_rule(name: str, instructions: str):
    return make_rule(
        name,
        type=RuleType.AI,
        instructions=instructions,
        actions=[Action.create(ActionType.ARCHIVE)],
    )


class TestCandidates:
    """Tests for candidate filtering."""

    def test_disabled_rules_ignored(self) -> None:
        rules = [make_rule("On"), make_rule("Off", enabled=False)]
        assert [r.name for r in RuleMatcher.candidate_rules(rules)] == ["On"]

    def test_thread_excludes_rules_not_run_on_threads(self) -> None:
        rules = [make_rule("Threads", run_on_threads=True), make_rule("First only")]
        names = [r.name for r in RuleMatcher.candidate_rules(rules, is_thread=True)]
        assert names == ["Threads"]


class TestMatch:
    """Tests for tier ordering and the AI tier."""

    @pytest.mark.asyncio
    async def test_no_rules_makes_no_llm_call(self, stripe_email: EmailMessage) -> None:
        """Test that an empty rule set short-circuits."""
        llm = FakeLLMClient()
        result = await RuleMatcher(llm).match(stripe_email, [], USER)

        assert result.matched is False
        assert result.reason == NO_RULES_REASON
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_only_disabled_rules_is_no_rules(self, stripe_email: EmailMessage) -> None:
        llm = FakeLLMClient()
        rules = [ai_rule("Off", "anything")]
        rules[0] = rules[0].model_copy(update={"enabled": False})

        result = await RuleMatcher(llm).match(stripe_email, rules, USER)
        assert result.reason == NO_RULES_REASON
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_static_match_wins_over_ai(self, stripe_email: EmailMessage) -> None:
        """Test that deterministic tiers run before the AI tier."""
        llm = FakeLLMClient()
        rules = [
            ai_rule("Receipts AI", "Receipts and invoices"),
            make_rule("Stripe", type=RuleType.STATIC, from_address="stripe.com"),
        ]
        result = await RuleMatcher(llm).match(stripe_email, rules, USER)

        assert result.rule is not None
        assert result.rule.name == "Stripe"
        assert result.tier == RuleType.STATIC
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_static_before_group_before_category(self, stripe_email: EmailMessage) -> None:
        """Test strict tier order regardless of list order."""
        group = Group(
            id="g-receipts",
            user_id="user-1",
            name="Receipts",
            items=[GroupItem(type=GroupItemType.FROM, value="@stripe.com")],
        )
        category_rule = make_rule("By category", type=RuleType.CATEGORY, category_filters=["Receipts"])
        group_rule = make_rule("By group", type=RuleType.GROUP, group_id=group.id)
        static_rule = make_rule("By sender", type=RuleType.STATIC, from_address="stripe.com")
        matcher = RuleMatcher(FakeLLMClient())
        groups = {group.id: group}

        result = await matcher.match(
            stripe_email,
            [category_rule, group_rule, static_rule],
            USER,
            groups=groups,
            sender_category="Receipts",
        )
        assert result.rule is not None and result.rule.name == "By sender"

        result = await matcher.match(
            stripe_email, [category_rule, group_rule], USER, groups=groups, sender_category="Receipts"
        )
        assert result.rule is not None and result.rule.name == "By group"
        assert result.tier == RuleType.GROUP
        assert result.group_item is not None and result.group_item.value == "@stripe.com"

        result = await matcher.match(
            stripe_email, [category_rule], USER, groups=groups, sender_category="Receipts"
        )
        assert result.rule is not None and result.rule.name == "By category"
        assert result.tier == RuleType.CATEGORY

    @pytest.mark.asyncio
    async def test_first_rule_in_tier_wins(self, stripe_email: EmailMessage) -> None:
        rules = [
            make_rule("First", type=RuleType.STATIC, from_address="stripe"),
            make_rule("Second", type=RuleType.STATIC, subject="receipt"),
        ]
        result = await RuleMatcher(FakeLLMClient()).match(stripe_email, rules, USER)
        assert result.rule is not None and result.rule.name == "First"

    @pytest.mark.asyncio
    async def test_rule_only_evaluated_at_its_own_tier(
        self, stripe_email: EmailMessage, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that an AI rule with static conditions is not matched statically."""
        llm = FakeLLMClient([{"reason": "Nothing fits", "rule": 2}])
        rule = ai_rule("Mixed", "Receipts").model_copy(update={"from_address": "stripe.com"})

        result = await RuleMatcher(llm).match(stripe_email, [rule], USER)

        assert result.matched is False
        assert len(llm.calls) == 1
        assert "also configured for STATIC" in caplog.text

    @pytest.mark.asyncio
    async def test_ai_chooses_rule(self, sample_email: EmailMessage) -> None:
        """Test that the 1-indexed AI answer selects the rule."""
        llm = FakeLLMClient([{"reason": "Asks to meet", "rule": 2}])
        rules = [
            ai_rule("Newsletters", "Newsletters and digests"),
            ai_rule("Meetings", "Requests to schedule a meeting"),
        ]
        result = await RuleMatcher(llm).match(sample_email, rules, USER)

        assert result.rule is not None and result.rule.name == "Meetings"
        assert result.tier == RuleType.AI
        assert result.reason == "Asks to meet"

        system = llm.calls[0]["system"]
        assert "1. Newsletters and digests" in system
        assert "2. Requests to schedule a meeting" in system
        assert "3. None of the other rules match" in system
        assert "Freelance designer" in system
        assert "Subject: Project kickoff" in llm.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_ai_fallback_is_no_match(self, sample_email: EmailMessage) -> None:
        """Test that the fallback index yields no match with the model's reason."""
        llm = FakeLLMClient([{"reason": "Just a question", "rule": 2}])
        result = await RuleMatcher(llm).match(sample_email, [ai_rule("News", "Newsletters")], USER)

        assert result.matched is False
        assert result.reason == "Just a question"

    @pytest.mark.asyncio
    async def test_ai_out_of_range_is_no_match(self, sample_email: EmailMessage) -> None:
        llm = FakeLLMClient([{"reason": "Confused", "rule": 7}])
        result = await RuleMatcher(llm).match(sample_email, [ai_rule("News", "Newsletters")], USER)
        assert result.matched is False
        assert result.reason == "Confused"

    @pytest.mark.asyncio
    async def test_ai_rules_without_instructions_skip_llm(self, sample_email: EmailMessage) -> None:
        llm = FakeLLMClient()
        result = await RuleMatcher(llm).match(sample_email, [ai_rule("Blank", "  ")], USER)
        assert result.reason == NO_MATCH_REASON
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_email_body_truncated(self) -> None:
        """Test that the rendered email respects the length limit."""
        email = EmailMessage(
            id="long", thread_id="t", sender="a@b.com", to="me@example.com",
            subject="Long", text_plain="x" * 2000,
        )
        llm = FakeLLMClient([{"reason": "none", "rule": 2}])
        await RuleMatcher(llm, email_max_length=500).match(email, [ai_rule("R", "Anything")], USER)

        assert "x" * 500 + "..." in llm.calls[0]["user"]
        assert "x" * 501 not in llm.calls[0]["user"]

    @pytest.mark.asyncio
    async def test_malformed_ai_answer_raises(self, sample_email: EmailMessage) -> None:
        llm = FakeLLMClient(["not json at all"])
        with pytest.raises(LLMSchemaError):
            await RuleMatcher(llm).match(sample_email, [ai_rule("R", "Anything")], USER)
