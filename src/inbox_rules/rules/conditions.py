"""Deterministic condition checks for the STATIC, GROUP and CATEGORY tiers.

Everything here is a pure function of the email and the rule configuration.
"""

from fnmatch import fnmatchcase
from typing import TYPE_CHECKING

from inbox_rules.mail.messages import extract_address
from inbox_rules.rules.models import Group, GroupItem, GroupItemType, Rule

if TYPE_CHECKING:
    from inbox_rules.mail.messages import EmailMessage


def _contains(haystack: str, needle: str) -> bool:
    return needle.strip().lower() in (haystack or "").lower()


def _is_pattern(value: str) -> bool:
    return "*" in value or "?" in value


def _matches_text(text: str, value: str) -> bool:
    """Substring match, or a shell-style pattern when ``value`` has wildcards."""
    if _is_pattern(value):
        return fnmatchcase((text or "").lower(), value.strip().lower())
    return _contains(text, value)


def matches_static(rule: Rule, email: "EmailMessage") -> bool:
    """
    Check a rule's static conditions against an email.

    Every condition present must match; a rule without static conditions
    never matches.
    """
    if not rule.has_static_conditions:
        return False

    if rule.from_address and not _contains(email.sender, rule.from_address):
        return False
    if rule.to_address and not _contains(email.to, rule.to_address):
        return False
    if rule.subject and not _contains(email.subject, rule.subject):
        return False
    return True


def matches_group_item(item: GroupItem, email: "EmailMessage") -> bool:
    """Check one group item against an email."""
    value = item.value.strip()
    if not value:
        return False

    match item.type:
        case GroupItemType.FROM:
            sender = email.sender_address
            if _is_pattern(value):
                return fnmatchcase(sender, value.lower())
            if value.startswith("@"):
                return email.sender_domain == value[1:].lower()
            if "@" not in value:
                # Bare domain: match it or any subdomain
                domain = email.sender_domain
                return domain == value.lower() or domain.endswith("." + value.lower())
            return sender == extract_address(value)

        case GroupItemType.SUBJECT:
            return _matches_text(email.subject, value)

        case GroupItemType.BODY:
            return _matches_text(email.content, value)

        case _:
            return False


def find_group_item(group: Group, email: "EmailMessage") -> GroupItem | None:
    """First item of ``group`` that matches, if any."""
    for item in group.items:
        if matches_group_item(item, email):
            return item
    return None


def matches_category(rule: Rule, sender_category: str | None) -> bool:
    """Check whether the sender's category is one the rule applies to."""
    if not sender_category or not rule.category_filters:
        return False
    wanted = {c.lower() for c in rule.category_filters}
    return sender_category.lower() in wanted
