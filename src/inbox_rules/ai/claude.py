"""Anthropic Claude provider implementation."""

import os
from typing import TYPE_CHECKING, Any

from inbox_rules.ai.base import LLMClient
from inbox_rules.errors import PermissionDeniedError, ProviderError, TransientProviderError

if TYPE_CHECKING:
    import anthropic


class ClaudeProvider(LLMClient):
    """Anthropic Claude provider."""

    name = "claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 2048,
    ) -> None:
        """
        Initialize the Claude provider.

        Args:
            api_key: Anthropic API key. Falls back to ANTHROPIC_API_KEY env var.
            model: Model to use for completions.
            max_tokens: Response token limit.
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self._client: "anthropic.AsyncAnthropic | None" = None

    @property
    def client(self) -> "anthropic.AsyncAnthropic":
        """Lazy-load the Anthropic client."""
        if self._client is None:
            import anthropic

            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> str:
        import anthropic

        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except (
            anthropic.APIConnectionError,
            anthropic.RateLimitError,
            anthropic.InternalServerError,
        ) as e:
            raise TransientProviderError(str(e), provider=self.name) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise PermissionDeniedError(str(e), provider=self.name) from e
        except anthropic.APIStatusError as e:
            raise ProviderError(str(e), provider=self.name) from e

        return message.content[0].text

    async def is_available(self) -> bool:
        """Check if Claude API is available."""
        if not self.api_key:
            return False

        try:
            await self.client.messages.create(
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "test"}],
            )
            return True
        except Exception:
            return False
