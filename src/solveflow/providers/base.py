"""
Abstract base class for all LLM providers.

Defines the single generation capability every backend implements, so the
stage executors never branch on the provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from solveflow.core.types import ImagePayload
from solveflow.utils.errors import ProviderAuthenticationError


class BaseProvider(ABC):
    """
    Abstract base class for LLM providers.

    All provider implementations (OpenAI, Gemini, Anthropic) must inherit
    from this class and implement the abstract methods.

    Example implementation:
        class MyProvider(BaseProvider):
            @property
            def name(self) -> str:
                return "my_provider"

            async def generate(self, prompt, images=None, **kwargs) -> str:
                # Implementation here
                pass
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
    ):
        """
        Initialize the provider.

        Args:
            model: Default model identifier (e.g., "gpt-4o")
            api_key: API key for authentication
            base_url: Optional custom base URL for API
            timeout: Request timeout in seconds, per network call
            max_retries: Maximum number of internal retry attempts
        """
        self.model = model
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Provider identifier.

        Returns:
            Unique provider name ("openai", "gemini" or "anthropic")
        """
        pass

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        images: list[ImagePayload] | None = None,
        *,
        system: str | None = None,
        model: str | None = None,
        max_tokens: int = 4000,
        temperature: float = 0.2,
    ) -> str:
        """
        Execute one generation request.

        Args:
            prompt: User prompt text
            images: Optional screenshots sent with the prompt
            system: Optional system prompt
            model: Optional model override
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            The raw response text

        Raises:
            ProviderAuthenticationError: On auth failures
            ProviderRateLimitError: On rate limit exceeded
            ProviderError: On any other API error
        """
        pass

    def count_tokens(self, text: str, model: str | None = None) -> int:
        """
        Estimate the token count of ``text``.

        Default is roughly 4 characters per token; adapters with a real
        tokenizer override this.
        """
        if not text:
            return 0
        return max(1, len(text) // 4)

    async def validate_credentials(self) -> bool:
        """
        Validate API credentials with a minimal request.

        Returns:
            False if the provider rejected the credential, True otherwise
        """
        try:
            await self.generate("Hi", max_tokens=5)
            return True
        except ProviderAuthenticationError:
            return False

    async def close(self) -> None:
        """Release the underlying HTTP client."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r})"
