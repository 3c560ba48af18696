"""Abstract base for all generation providers."""

from abc import ABC, abstractmethod

from src.models import GenerationRequest, GenerationResponse


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all generation providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Generate text for a single agent call.

        Args:
            request: Prompt, model and call options for one agent invocation.
                ``request.search_enabled`` asks for web search grounding;
                providers without a search tool ignore it.

        Returns:
            GenerationResponse with the text and any usage/search metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
