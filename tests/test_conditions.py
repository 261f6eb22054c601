"""Tests for deterministic rule conditions."""

from conftest import make_rule

from inbox_rules.mail.messages import EmailMessage
from inbox_rules.rules.conditions import (
    find_group_item,
    matches_category,
    matches_group_item,
    matches_static,
)
from inbox_rules.rules.models import Group, GroupItem, GroupItemType, RuleType


def _item(type: GroupItemType, value: str) -> GroupItem:
    return GroupItem(type=type, value=value)


class TestStaticConditions:
    """Tests for STATIC tier matching."""

    def test_from_substring_match(self, stripe_email: EmailMessage) -> None:
        """Test that the from condition matches within the header."""
        rule = make_rule(type=RuleType.STATIC, from_address="stripe.com")
        assert matches_static(rule, stripe_email) is True

    def test_match_is_case_insensitive(self, stripe_email: EmailMessage) -> None:
        """Test that header comparison ignores case."""
        rule = make_rule(type=RuleType.STATIC, from_address="STRIPE.COM", subject="RECEIPT")
        assert matches_static(rule, stripe_email) is True

    def test_all_present_conditions_must_match(self, stripe_email: EmailMessage) -> None:
        """Test that one failing condition fails the rule."""
        rule = make_rule(type=RuleType.STATIC, from_address="stripe.com", subject="invoice")
        assert matches_static(rule, stripe_email) is False

    def test_to_condition(self, stripe_email: EmailMessage) -> None:
        """Test the recipient condition."""
        assert matches_static(make_rule(to_address="me@example.com"), stripe_email) is True
        assert matches_static(make_rule(to_address="other@example.com"), stripe_email) is False

    def test_rule_without_conditions_never_matches(self, stripe_email: EmailMessage) -> None:
        """Test that an empty static rule is not a catch-all."""
        rule = make_rule(type=RuleType.STATIC)
        assert matches_static(rule, stripe_email) is False

    def test_blank_conditions_are_absent(self, stripe_email: EmailMessage) -> None:
        """Test that whitespace-only conditions do not match every email."""
        rule = make_rule(type=RuleType.STATIC, from_address="  ", subject="\t")

        assert rule.from_address is None
        assert rule.subject is None
        assert rule.has_static_conditions is False
        assert matches_static(rule, stripe_email) is False

    def test_conditions_are_trimmed(self, stripe_email: EmailMessage) -> None:
        rule = make_rule(type=RuleType.STATIC, from_address="  stripe.com ")
        assert rule.from_address == "stripe.com"
        assert matches_static(rule, stripe_email) is True


class TestGroupItems:
    """Tests for GROUP tier item matching."""

    def test_from_exact_address(self, stripe_email: EmailMessage) -> None:
        """Test exact sender address match, ignoring display name."""
        assert matches_group_item(_item(GroupItemType.FROM, "billing@stripe.com"), stripe_email)
        assert not matches_group_item(_item(GroupItemType.FROM, "support@stripe.com"), stripe_email)

    def test_from_at_domain(self, stripe_email: EmailMessage) -> None:
        """Test that '@domain' matches the sender's domain."""
        assert matches_group_item(_item(GroupItemType.FROM, "@stripe.com"), stripe_email)
        assert not matches_group_item(_item(GroupItemType.FROM, "@paypal.com"), stripe_email)

    def test_from_bare_domain_matches_subdomains(self, newsletter_email: EmailMessage) -> None:
        """Test that a bare domain also matches subdomains."""
        assert matches_group_item(_item(GroupItemType.FROM, "example.org"), newsletter_email)
        assert matches_group_item(_item(GroupItemType.FROM, "digest.example.org"), newsletter_email)
        assert not matches_group_item(_item(GroupItemType.FROM, "ample.org"), newsletter_email)

    def test_from_pattern(self, stripe_email: EmailMessage) -> None:
        """Test shell-style sender patterns."""
        assert matches_group_item(_item(GroupItemType.FROM, "*@stripe.*"), stripe_email)

    def test_subject_substring(self, newsletter_email: EmailMessage) -> None:
        """Test subject substring matching."""
        assert matches_group_item(_item(GroupItemType.SUBJECT, "newsletter"), newsletter_email)

    def test_subject_pattern(self, newsletter_email: EmailMessage) -> None:
        """Test subject wildcard matching."""
        assert matches_group_item(_item(GroupItemType.SUBJECT, "weekly * edition"), newsletter_email)
        assert not matches_group_item(_item(GroupItemType.SUBJECT, "daily *"), newsletter_email)

    def test_body_uses_html_when_no_plain_text(self, newsletter_email: EmailMessage) -> None:
        """Test that BODY items see text extracted from HTML."""
        item = _item(GroupItemType.BODY, "view this email in your browser")
        assert matches_group_item(item, newsletter_email)

    def test_blank_value_never_matches(self, stripe_email: EmailMessage) -> None:
        """Test that blank items are ignored."""
        assert not matches_group_item(_item(GroupItemType.SUBJECT, "  "), stripe_email)

    def test_find_group_item_returns_first_match(self, stripe_email: EmailMessage) -> None:
        """Test that the first matching item is reported."""
        group = Group(
            id="g1",
            user_id="user-1",
            name="Receipts",
            items=[
                _item(GroupItemType.FROM, "@paypal.com"),
                _item(GroupItemType.SUBJECT, "receipt"),
                _item(GroupItemType.FROM, "@stripe.com"),
            ],
        )
        found = find_group_item(group, stripe_email)
        assert found is not None
        assert found.value == "receipt"


class TestCategories:
    """Tests for CATEGORY tier matching."""

    def test_category_in_filters(self) -> None:
        rule = make_rule(type=RuleType.CATEGORY, category_filters=["Receipts", "Banking"])
        assert matches_category(rule, "receipts") is True
        assert matches_category(rule, "Social") is False

    def test_unknown_sender_category(self) -> None:
        rule = make_rule(type=RuleType.CATEGORY, category_filters=["Receipts"])
        assert matches_category(rule, None) is False
