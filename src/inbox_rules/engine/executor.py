"""Sequential execution of a plan's action items."""

import logging

from inbox_rules.actions.executors import run_action
from inbox_rules.actions.models import ActionItem
from inbox_rules.engine.models import ActionOutcome, OutcomeStatus
from inbox_rules.errors import ActionValidationError, MailNotFoundError, ProviderError
from inbox_rules.mail.client import MailClient
from inbox_rules.mail.messages import EmailMessage

module_logger = logging.getLogger(__name__)

# Not-found for these means the email is gone, so the action is moot
_GONE_RESOURCES = {"message", "thread"}


class ExecutionEngine:
    """Run action items one at a time, in stored order.

    A failing action is recorded on its outcome and does not stop the
    actions after it.
    """

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self.logger = logger or module_logger

    async def execute(
        self,
        items: list[ActionItem],
        email: EmailMessage,
        mail: MailClient,
    ) -> list[ActionOutcome]:
        """
        Execute every item against the mail provider.

        Args:
            items: Resolved action items, in order.
            email: The email the plan was made for.
            mail: Mail provider client.

        Returns:
            One outcome per item, in the same order.
        """
        outcomes = []
        for item in items:
            outcome = await self.execute_one(item, email, mail)
            outcomes.append(outcome)
        return outcomes

    async def execute_one(
        self, item: ActionItem, email: EmailMessage, mail: MailClient
    ) -> ActionOutcome:
        action = item.type.value
        try:
            detail = await run_action(mail, email, item)
        except ActionValidationError as e:
            self.logger.warning("%s skipped for %s: %s", action, email.id, e)
            return _failed(item, e)
        except MailNotFoundError as e:
            if e.resource.lower() in _GONE_RESOURCES:
                self.logger.info("%s skipped, %s no longer exists", action, e.resource.lower())
                return ActionOutcome(
                    action_type=item.type,
                    status=OutcomeStatus.SKIPPED,
                    error=str(e),
                    error_kind=type(e).__name__,
                )
            self.logger.error("%s failed for %s: %s", action, email.id, e)
            return _failed(item, e)
        except ProviderError as e:
            self.logger.error("%s failed for %s: %s", action, email.id, e)
            return _failed(item, e)
        except Exception as e:
            self.logger.exception("%s raised unexpectedly for %s", action, email.id)
            return _failed(item, e)

        self.logger.info("%s succeeded for %s", action, email.id)
        return ActionOutcome(action_type=item.type, status=OutcomeStatus.SUCCEEDED, detail=detail)


def _failed(item: ActionItem, error: Exception) -> ActionOutcome:
    return ActionOutcome(
        action_type=item.type,
        status=OutcomeStatus.FAILED,
        error=str(error),
        error_kind=type(error).__name__,
    )
