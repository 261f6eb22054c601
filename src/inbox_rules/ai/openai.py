"""OpenAI GPT provider implementation."""

import os
from typing import TYPE_CHECKING, Any

from inbox_rules.ai.base import LLMClient
from inbox_rules.errors import PermissionDeniedError, ProviderError, TransientProviderError

if TYPE_CHECKING:
    import openai


class OpenAIProvider(LLMClient):
    """OpenAI GPT provider."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
    ) -> None:
        """
        Initialize the OpenAI provider.

        Args:
            api_key: OpenAI API key. Falls back to OPENAI_API_KEY env var.
            model: Model to use for completions.
        """
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model
        self._client: "openai.AsyncOpenAI | None" = None

    @property
    def client(self) -> "openai.AsyncOpenAI":
        """Lazy-load the OpenAI client."""
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> str:
        import openai

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
            )
        except (
            openai.APIConnectionError,
            openai.RateLimitError,
            openai.InternalServerError,
        ) as e:
            raise TransientProviderError(str(e), provider=self.name) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise PermissionDeniedError(str(e), provider=self.name) from e
        except openai.APIStatusError as e:
            raise ProviderError(str(e), provider=self.name) from e

        return response.choices[0].message.content or ""

    async def is_available(self) -> bool:
        """Check if OpenAI API is available."""
        if not self.api_key:
            return False

        try:
            await self.client.models.retrieve(self.model)
            return True
        except Exception:
            return False
