"""Rule definitions, matching and action resolution."""

from inbox_rules.rules.matcher import MatchResult, RuleMatcher
from inbox_rules.rules.models import Group, GroupItem, GroupItemType, Rule, RuleType
from inbox_rules.rules.resolver import ActionResolver

__all__ = [
    "ActionResolver",
    "Group",
    "GroupItem",
    "GroupItemType",
    "MatchResult",
    "Rule",
    "RuleMatcher",
    "RuleType",
]
