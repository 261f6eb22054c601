"""LLM provider integrations for rule matching and field generation."""

from typing import TYPE_CHECKING

from inbox_rules.ai.base import LLMClient, RetryingLLMClient, parse_structured_response
from inbox_rules.ai.claude import ClaudeProvider
from inbox_rules.ai.ollama import OllamaProvider
from inbox_rules.ai.openai import OpenAIProvider
from inbox_rules.retry import RetryPolicy

if TYPE_CHECKING:
    from inbox_rules.config import Settings


def get_provider(settings: "Settings") -> LLMClient:
    """Build the configured provider, wrapped with the retry policy."""
    match settings.ai_provider:
        case "claude":
            provider: LLMClient = ClaudeProvider(
                api_key=settings.anthropic_api_key, model=settings.claude_model
            )
        case "openai":
            provider = OpenAIProvider(
                api_key=settings.openai_api_key, model=settings.openai_model
            )
        case "ollama":
            provider = OllamaProvider(
                model=settings.ollama_model, host=settings.ollama_host
            )
        case _:
            raise ValueError(f"Unknown AI provider: {settings.ai_provider}")

    return RetryingLLMClient(provider, RetryPolicy.from_settings(settings))


__all__ = [
    "LLMClient",
    "RetryingLLMClient",
    "ClaudeProvider",
    "OpenAIProvider",
    "OllamaProvider",
    "get_provider",
    "parse_structured_response",
]
