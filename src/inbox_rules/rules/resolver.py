"""Resolve stored action configs into concrete action items."""

import asyncio
import logging
from typing import TYPE_CHECKING

from inbox_rules.actions.catalog import (
    Action,
    build_item,
    generation_model,
    get_definition,
    missing_fields,
)
from inbox_rules.actions.models import ActionItem
from inbox_rules.mail.messages import stringify_email

if TYPE_CHECKING:
    from inbox_rules.ai.base import LLMClient
    from inbox_rules.mail.messages import EmailMessage
    from inbox_rules.models import User

logger = logging.getLogger(__name__)


GENERATE_ARGS_SYSTEM_PROMPT = """You are an AI assistant that helps people manage their emails.
Never put placeholders in your email responses.
Do not mention you are an AI assistant when responding to people.

You are filling in the parameters of the "{action_name}" action ({action_description}) for the email below.
{instructions}{about}"""


GENERATE_ARGS_USER_PROMPT = """Fill in these fields: {fields}

<email>
{email}
</email>"""


class ActionResolver:
    """Turn a rule's actions into fully concrete action items."""

    def __init__(self, llm: "LLMClient", email_max_length: int = 3000) -> None:
        self.llm = llm
        self.email_max_length = email_max_length

    async def resolve(
        self,
        actions: list[Action],
        email: "EmailMessage",
        user: "User",
        *,
        instructions: str = "",
    ) -> list[ActionItem]:
        """
        Resolve every action, preserving order.

        Literal fields pass through unchanged. Generated fields of one action
        are produced by a single LLM call. LLM failures propagate.

        Args:
            actions: The rule's configured actions.
            email: The email being processed.
            user: Owner of the rule.
            instructions: The rule's instructions, given to the model as context.

        Returns:
            One action item per action, in the same order.
        """
        return list(
            await asyncio.gather(
                *(self.resolve_action(a, email, user, instructions=instructions) for a in actions)
            )
        )

    async def resolve_action(
        self,
        action: Action,
        email: "EmailMessage",
        user: "User",
        *,
        instructions: str = "",
    ) -> ActionItem:
        """Resolve one action; calls the LLM only if a field is generated."""
        values = action.literal_values()

        to_generate = action.generated_fields()
        if to_generate:
            definition = get_definition(action.type)
            schema = generation_model(action.type, to_generate)
            system = GENERATE_ARGS_SYSTEM_PROMPT.format(
                action_name=definition.name,
                action_description=definition.description,
                instructions=f"\nThe user's rule for this email: {instructions}\n" if instructions else "",
                about=f"\nSome information about the user: {user.about}\n" if user.about else "",
            )
            prompt = GENERATE_ARGS_USER_PROMPT.format(
                fields=", ".join(f.value for f in to_generate),
                email=stringify_email(email, self.email_max_length),
            )
            generated = await self.llm.complete_structured(system, prompt, schema)
            values.update(generated.model_dump())

        item = build_item(action.type, values)

        missing = missing_fields(item)
        if missing:
            logger.warning(
                "%s action resolved with empty required fields: %s",
                action.type.value,
                ", ".join(missing),
            )
        return item
