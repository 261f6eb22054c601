"""Run a user's rules on one message, end to end."""

import asyncio
from typing import TYPE_CHECKING

from inbox_rules.engine.executor import ExecutionEngine
from inbox_rules.engine.models import (
    ActionOutcome,
    ExecutedRule,
    OutcomeStatus,
    PipelineResult,
    PlanStatus,
    TestResult,
    outcome_summary,
)
from inbox_rules.errors import DuplicateError, MailNotFoundError
from inbox_rules.logging import get_user_logger
from inbox_rules.models import Session, User, require_session
from inbox_rules.rules.matcher import MatchResult, RuleMatcher
from inbox_rules.rules.resolver import ActionResolver

if TYPE_CHECKING:
    from inbox_rules.ai.base import LLMClient
    from inbox_rules.mail.client import MailClient
    from inbox_rules.mail.messages import EmailMessage
    from inbox_rules.storage.plans import PlanStore
    from inbox_rules.storage.rules import RuleStore

ALREADY_PROCESSED = "Already processed"


class RulePipeline:
    """Match, resolve, persist and (when automated) execute.

    Each message gets exactly one stored plan. Whoever inserts it first owns
    the message; a run that loses the insert returns without touching the
    mail provider.
    """

    def __init__(
        self,
        rules: "RuleStore",
        plans: "PlanStore",
        mail: "MailClient",
        llm: "LLMClient",
        *,
        matcher: RuleMatcher | None = None,
        resolver: ActionResolver | None = None,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            rules: Store for users, rules, groups and sender categories.
            plans: Store for executed rules.
            mail: Mail provider client (usually a ``RetryingMailClient``).
            llm: LLM client for the AI tier and generated fields.
            matcher: Rule matcher; built from ``llm`` if omitted.
            resolver: Action resolver; built from ``llm`` if omitted.
        """
        self.rules = rules
        self.plans = plans
        self.mail = mail
        self.llm = llm
        self.matcher = matcher or RuleMatcher(llm)
        self.resolver = resolver or ActionResolver(llm)

    async def _match(
        self, user: User, email: "EmailMessage", *, is_thread: bool
    ) -> MatchResult:
        return await self.matcher.match(
            email,
            self.rules.list_rules(user.id, enabled_only=True),
            user,
            groups=self.rules.list_groups(user.id),
            sender_category=self.rules.get_sender_category(user.id, email.sender_address),
            is_thread=is_thread,
        )

    async def run_rules(
        self,
        session: Session | None,
        message_id: str,
        thread_id: str,
    ) -> PipelineResult:
        """
        Process one message for the session's user.

        Args:
            session: Caller's session.
            message_id: Provider id of the message.
            thread_id: Provider id of its thread.

        Returns:
            PipelineResult with the stored plan and any execution outcomes.

        Raises:
            NotLoggedInError: No session.
        """
        session = require_session(session)
        user = self.rules.get_user(session.user_id)
        log = get_user_logger(user.id)

        existing = self.plans.find_plan(user.id, thread_id, message_id)
        if existing is not None:
            log.info("Message %s already has plan %d, skipping", message_id, existing.id)
            return PipelineResult(
                message_id=message_id,
                thread_id=thread_id,
                plan=existing,
                skipped=True,
                reason=ALREADY_PROCESSED,
            )

        try:
            email, thread = await asyncio.gather(
                self.mail.get_message(message_id),
                self.mail.get_thread(thread_id),
            )
        except MailNotFoundError as e:
            log.info("Skipping %s: %s", message_id, e)
            return PipelineResult(
                message_id=message_id, thread_id=thread_id, skipped=True, reason=str(e)
            )

        match = await self._match(user, email, is_thread=thread.is_thread)
        rule = match.rule

        if rule is None:
            log.info("No rule for %s: %s", message_id, match.reason)
            plan = self._create_plan(
                user, email, thread_id, status=PlanStatus.SKIPPED, match=match
            )
            return PipelineResult(
                message_id=message_id,
                thread_id=thread_id,
                plan=plan,
                match=match,
                skipped=True,
                reason=match.reason if plan else ALREADY_PROCESSED,
            )

        log.info("Matched rule '%s' (%s) for %s", rule.name, match.tier.value if match.tier else "-", message_id)

        items = await self.resolver.resolve(
            rule.actions, email, user, instructions=rule.instructions
        )

        status = PlanStatus.APPROVED if rule.automate else PlanStatus.PENDING
        plan = self._create_plan(
            user, email, thread_id, status=status, match=match, items=items
        )
        if plan is None:
            return PipelineResult(
                message_id=message_id,
                thread_id=thread_id,
                match=match,
                skipped=True,
                reason=ALREADY_PROCESSED,
            )

        if not rule.automate:
            log.info("Plan %d awaiting approval (%d actions)", plan.id, len(items))
            return PipelineResult(
                message_id=message_id, thread_id=thread_id, plan=plan, match=match
            )

        plan, outcomes = await self._execute(plan, email, source="automation")
        return PipelineResult(
            message_id=message_id,
            thread_id=thread_id,
            plan=plan,
            match=match,
            outcomes=outcomes,
        )

    def _create_plan(
        self,
        user: User,
        email: "EmailMessage",
        thread_id: str,
        *,
        status: PlanStatus,
        match: MatchResult,
        items: list | None = None,
    ) -> ExecutedRule | None:
        """Insert the plan, or return None if another run already did."""
        try:
            return self.plans.create_plan(
                user.id,
                thread_id,
                email.id,
                status=status,
                rule_id=match.rule.id if match.rule else None,
                reason=match.reason,
                automated=status == PlanStatus.APPROVED,
                items=items,
            )
        except DuplicateError:
            get_user_logger(user.id).info(
                "Message %s was claimed by a concurrent run", email.id
            )
            return None

    async def _execute(
        self, plan: ExecutedRule, email: "EmailMessage", *, source: str
    ) -> tuple[ExecutedRule, list[ActionOutcome]]:
        log = get_user_logger(plan.user_id)
        outcomes = await ExecutionEngine(log).execute(plan.items, email, self.mail)
        plan = self.plans.record_outcomes(plan, outcomes, source=source)
        log.info("Plan %d executed: %s", plan.id, outcome_summary(outcomes))
        return plan, outcomes

    async def test_rules(
        self,
        session: Session | None,
        email: "EmailMessage",
        *,
        is_thread: bool = False,
    ) -> TestResult:
        """
        Show what the rules would do for an email, without storing or executing.

        Free text can be tested with ``EmailMessage.from_text(content)``.
        """
        session = require_session(session)
        user = self.rules.get_user(session.user_id)

        match = await self._match(user, email, is_thread=is_thread)
        rule = match.rule
        if rule is None:
            return TestResult(match=match)

        items = await self.resolver.resolve(
            rule.actions, email, user, instructions=rule.instructions
        )
        return TestResult(match=match, action_items=items, automated=rule.automate)

    async def approve_plan(self, session: Session | None, plan_id: int) -> PipelineResult:
        """
        Approve a pending plan and execute it.

        If the message cannot be fetched for any reason other than being
        gone, the plan goes back to PENDING and the error propagates, so the
        approval can be retried.

        Raises:
            NotLoggedInError: No session.
            NotFoundError: No such plan for this user.
            PlanStateError: The plan is not pending; nothing is executed.
        """
        session = require_session(session)
        plan = self.plans.transition(plan_id, session.user_id, PlanStatus.APPROVED)
        log = get_user_logger(plan.user_id)
        log.info("Plan %d approved", plan.id)

        try:
            email = await self.mail.get_message(plan.message_id)
        except MailNotFoundError as e:
            log.info("Plan %d: %s", plan.id, e)
            outcomes = [
                ActionOutcome(
                    action_type=item.type,
                    status=OutcomeStatus.SKIPPED,
                    error=str(e),
                    error_kind=type(e).__name__,
                )
                for item in plan.items
            ]
            plan = self.plans.record_outcomes(plan, outcomes, source="user")
            return PipelineResult(
                message_id=plan.message_id,
                thread_id=plan.thread_id,
                plan=plan,
                outcomes=outcomes,
                skipped=True,
                reason=str(e),
            )
        except Exception:
            log.warning("Plan %d: could not fetch %s, back to pending", plan.id, plan.message_id)
            self.plans.transition(
                plan.id,
                plan.user_id,
                PlanStatus.PENDING,
                from_status=PlanStatus.APPROVED,
                source="system",
            )
            raise

        plan, outcomes = await self._execute(plan, email, source="user")
        return PipelineResult(
            message_id=plan.message_id,
            thread_id=plan.thread_id,
            plan=plan,
            outcomes=outcomes,
        )

    def reject_plan(self, session: Session | None, plan_id: int) -> ExecutedRule:
        """
        Reject a pending plan. Terminal; nothing is executed.

        Raises:
            NotLoggedInError: No session.
            NotFoundError: No such plan for this user.
            PlanStateError: The plan is not pending.
        """
        session = require_session(session)
        plan = self.plans.transition(plan_id, session.user_id, PlanStatus.REJECTED)
        get_user_logger(plan.user_id).info("Plan %d rejected", plan.id)
        return plan
