"""Base LLM client interface and structured-output parsing."""

import json
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from inbox_rules.errors import LLMSchemaError
from inbox_rules.retry import RetryPolicy

M = TypeVar("M", bound=BaseModel)

SCHEMA_INSTRUCTIONS = """

Respond with ONLY a valid JSON object (no markdown, no explanation) that conforms to this JSON schema:
{schema}"""


def parse_json_response(response_text: str) -> Any:
    """Parse JSON from an LLM response, handling markdown code blocks."""
    if "```json" in response_text:
        json_str = response_text.split("```json")[1].split("```")[0]
    elif "```" in response_text:
        json_str = response_text.split("```")[1].split("```")[0]
    else:
        json_str = response_text

    return json.loads(json_str.strip())


def parse_structured_response(response_text: str, schema: type[M]) -> M:
    """Parse and validate an LLM response against a pydantic model.

    Raises:
        LLMSchemaError: If the text is not JSON or does not fit the schema.
    """
    try:
        data = parse_json_response(response_text)
    except (json.JSONDecodeError, IndexError) as e:
        raise LLMSchemaError(f"Failed to parse AI response: {e}", raw=response_text) from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise LLMSchemaError(
            f"AI response does not match {schema.__name__}: {e}", raw=response_text
        ) from e


class LLMClient(ABC):
    """Abstract structured-completion client."""

    name: str = "llm"

    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[M],
    ) -> M:
        """
        Ask the model for a JSON object and validate it.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The request, usually including a rendered email.
            schema: Pydantic model the response must conform to.

        Returns:
            An instance of ``schema``.

        Raises:
            LLMSchemaError: The response did not conform.
            TransientProviderError: Network or rate-limit failure.
            PermissionDeniedError: The provider rejected the credentials.
        """
        json_schema = schema.model_json_schema()
        system = system_prompt + SCHEMA_INSTRUCTIONS.format(
            schema=json.dumps(json_schema, indent=2)
        )
        response_text = await self._complete(system, user_prompt, json_schema)
        return parse_structured_response(response_text, schema)

    @abstractmethod
    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> str:
        """Return the raw text of a single completion."""
        ...

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if the provider is available and properly configured."""
        ...


class RetryingLLMClient(LLMClient):
    """Wrap an ``LLMClient`` so transient failures are retried.

    Schema violations are not retried; they point at a prompt/schema mismatch.
    """

    def __init__(self, inner: LLMClient, policy: RetryPolicy) -> None:
        self.inner = inner
        self.policy = policy
        self.name = inner.name

    async def complete_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        schema: type[M],
    ) -> M:
        return await self.policy.call(
            lambda: self.inner.complete_structured(system_prompt, user_prompt, schema),
            description=f"{self.name} completion ({schema.__name__})",
        )

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> str:
        return await self.policy.call(
            lambda: self.inner._complete(system_prompt, user_prompt, json_schema),
            description=f"{self.name} completion",
        )

    async def is_available(self) -> bool:
        return await self.inner.is_available()
