"""Choose the single rule that applies to an email."""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from inbox_rules.mail.messages import stringify_email
from inbox_rules.rules.conditions import find_group_item, matches_category, matches_static
from inbox_rules.rules.models import Group, GroupItem, Rule, RuleType

if TYPE_CHECKING:
    from inbox_rules.ai.base import LLMClient
    from inbox_rules.mail.messages import EmailMessage
    from inbox_rules.models import User

logger = logging.getLogger(__name__)

NO_RULES_REASON = "No rules"
NO_MATCH_REASON = "No matching rule"


CHOOSE_RULE_SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails.

<instructions>
IMPORTANT: Follow these instructions carefully when selecting a rule:

<priority>
1. Match the email to a SPECIFIC user-defined rule that addresses the email's exact content or purpose.
2. If the email doesn't match any specific rule but the user has a catch-all rule (like "emails that don't match other criteria"), use that catch-all rule.
3. Only use rule #{fallback} (system fallback) if no user-defined rule can reasonably apply.
</priority>

<guidelines>
- If a rule says to exclude certain types of emails, DO NOT select that rule for those excluded emails.
- When multiple rules match, choose the more specific one that best matches the email's content.
- Rules about requiring replies should be prioritized when the email clearly needs a response.
- Rule #{fallback} should ONLY be selected when there is absolutely no user-defined rule that could apply.
</guidelines>
</instructions>

<user_rules>
{rules}
</user_rules>

<system_fallback>
{fallback}. None of the other rules match or not enough information to make a decision.
</system_fallback>

{user_info}

<outputFormat>
Respond with a JSON object with the following fields:
"reason" - the reason you chose that rule. Keep it concise.
"rule" - the number of the rule you want to apply
</outputFormat>"""


CHOOSE_RULE_USER_PROMPT = """Select a rule to apply to this email that was sent to me:

<email>
{email}
</email>"""


class ChooseRuleResponse(BaseModel):
    """LLM answer when choosing among AI rules."""

    reason: str = Field(description="The reason you chose that rule. Keep it concise.")
    rule: int = Field(description="The number of the rule you want to apply")


class MatchResult(BaseModel):
    """Outcome of matching one email against a rule set."""

    rule: Rule | None = None
    reason: str
    tier: RuleType | None = None
    group_item: GroupItem | None = None

    @property
    def matched(self) -> bool:
        return self.rule is not None


def _user_info(user: "User") -> str:
    if user.about:
        return (
            "<user_info>\n"
            f"<about>{user.about}</about>\n"
            f"<email>{user.email}</email>\n"
            "</user_info>"
        )
    return f"<user_info>\n<email>{user.email}</email>\n</user_info>"


class RuleMatcher:
    """Match emails to rules: STATIC, then GROUP, then CATEGORY, then AI."""

    def __init__(self, llm: "LLMClient", email_max_length: int = 500) -> None:
        """
        Initialize the matcher.

        Args:
            llm: Client used for the AI tier.
            email_max_length: Body characters shown to the model.
        """
        self.llm = llm
        self.email_max_length = email_max_length

    @staticmethod
    def candidate_rules(rules: list[Rule], *, is_thread: bool = False) -> list[Rule]:
        """Enabled rules that may apply, dropping thread-only exclusions."""
        candidates = []
        for rule in rules:
            if not rule.enabled:
                continue
            if is_thread and not rule.run_on_threads:
                continue
            candidates.append(rule)
        return candidates

    def match_deterministic(
        self,
        email: "EmailMessage",
        rules: list[Rule],
        *,
        groups: dict[str, Group] | None = None,
        sender_category: str | None = None,
    ) -> MatchResult | None:
        """
        Evaluate the STATIC, GROUP and CATEGORY tiers in order.

        Pure: no network calls. Returns None when no tier matched.
        """
        groups = groups or {}

        for rule in rules:
            if rule.type == RuleType.STATIC and matches_static(rule, email):
                return MatchResult(
                    rule=rule,
                    reason="Matched static conditions",
                    tier=RuleType.STATIC,
                )

        for rule in rules:
            if rule.type != RuleType.GROUP or not rule.group_id:
                continue
            group = groups.get(rule.group_id)
            if group is None:
                logger.warning("Rule '%s' references missing group %s", rule.name, rule.group_id)
                continue
            item = find_group_item(group, email)
            if item is not None:
                return MatchResult(
                    rule=rule,
                    reason=f"Matched group '{group.name}' ({item.type.value}: {item.value})",
                    tier=RuleType.GROUP,
                    group_item=item,
                )

        for rule in rules:
            if rule.type == RuleType.CATEGORY and matches_category(rule, sender_category):
                return MatchResult(
                    rule=rule,
                    reason=f"Sender category '{sender_category}'",
                    tier=RuleType.CATEGORY,
                )

        return None

    async def match(
        self,
        email: "EmailMessage",
        rules: list[Rule],
        user: "User",
        *,
        groups: dict[str, Group] | None = None,
        sender_category: str | None = None,
        is_thread: bool = False,
    ) -> MatchResult:
        """
        Find the rule that applies to an email.

        Args:
            email: The email to match.
            rules: The user's rules, in priority order.
            user: Owner of the rules (profile is shown to the AI tier).
            groups: Groups referenced by GROUP rules, keyed by id.
            sender_category: Persisted category of the sender, if any.
            is_thread: Whether the email belongs to a multi-message thread.

        Returns:
            MatchResult with the chosen rule, or with ``rule=None`` and a reason.
        """
        candidates = self.candidate_rules(rules, is_thread=is_thread)
        if not candidates:
            return MatchResult(reason=NO_RULES_REASON)

        for rule in candidates:
            for warning in rule.configuration_warnings():
                logger.warning(warning)

        result = self.match_deterministic(
            email, candidates, groups=groups, sender_category=sender_category
        )
        if result is not None:
            return result

        ai_rules = [
            r for r in candidates if r.type == RuleType.AI and r.instructions.strip()
        ]
        if not ai_rules:
            return MatchResult(reason=NO_MATCH_REASON)

        return await self.ai_choose_rule(email, ai_rules, user)

    async def ai_choose_rule(
        self,
        email: "EmailMessage",
        rules: list[Rule],
        user: "User",
    ) -> MatchResult:
        """Ask the LLM to pick one of ``rules`` or the fallback option."""
        if not rules:
            return MatchResult(reason=NO_RULES_REASON)

        fallback = len(rules) + 1
        system = CHOOSE_RULE_SYSTEM_PROMPT.format(
            fallback=fallback,
            rules="\n".join(f"{i + 1}. {rule.instructions}" for i, rule in enumerate(rules)),
            user_info=_user_info(user),
        )
        prompt = CHOOSE_RULE_USER_PROMPT.format(
            email=stringify_email(email, self.email_max_length)
        )

        logger.debug("Choosing rule among %d AI rules for message %s", len(rules), email.id)
        response = await self.llm.complete_structured(system, prompt, ChooseRuleResponse)

        index = response.rule - 1
        if index < 0 or index >= len(rules):
            if response.rule != fallback:
                logger.warning("AI selected out-of-range rule %d", response.rule)
            return MatchResult(reason=response.reason)

        return MatchResult(rule=rules[index], reason=response.reason, tier=RuleType.AI)
