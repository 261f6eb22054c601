"""Ollama local LLM provider implementation."""

from typing import TYPE_CHECKING, Any

from inbox_rules.ai.base import LLMClient
from inbox_rules.errors import ProviderError, TransientProviderError

if TYPE_CHECKING:
    import ollama


class OllamaProvider(LLMClient):
    """Ollama local LLM provider."""

    name = "ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        host: str = "http://localhost:11434",
    ) -> None:
        """
        Initialize the Ollama provider.

        Args:
            model: Model name to use (e.g., llama3.2, mistral, phi3).
            host: Ollama server URL.
        """
        self.model = model
        self.host = host
        self._client: "ollama.AsyncClient | None" = None

    @property
    def client(self) -> "ollama.AsyncClient":
        """Lazy-load the Ollama client."""
        if self._client is None:
            import ollama

            self._client = ollama.AsyncClient(host=self.host)
        return self._client

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> str:
        import ollama

        try:
            # Ollama constrains output to the schema itself
            response = await self.client.generate(
                model=self.model,
                system=system_prompt,
                prompt=user_prompt,
                format=json_schema,
                options={"temperature": 0.3},
            )
        except ConnectionError as e:
            raise TransientProviderError(str(e), provider=self.name) from e
        except ollama.ResponseError as e:
            if e.status_code == 429 or e.status_code >= 500:
                raise TransientProviderError(str(e), provider=self.name) from e
            raise ProviderError(str(e), provider=self.name) from e

        return response["response"] or "{}"

    async def is_available(self) -> bool:
        """Check if Ollama is available and the model is pulled."""
        try:
            models = await self.client.list()
            model_names = [m.model.split(":")[0] for m in models.models if m.model]
            return self.model.split(":")[0] in model_names
        except Exception:
            return False
