"""
OpenAI GPT provider implementation.

Sends chat completions with a system message and ``image_url`` data-URL
parts for screenshots. Timeouts and retries are left to the OpenAI SDK.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
import tiktoken
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)

from solveflow.core.types import ImagePayload
from solveflow.providers.base import BaseProvider
from solveflow.utils.errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderPayloadTooLargeError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
    ProviderTransportError,
)
from solveflow.utils.logging import ProviderLogger


class OpenAIProvider(BaseProvider):
    """
    OpenAI GPT provider.

    Supports:
    - GPT-4o, GPT-4o-mini (vision)
    - System prompts
    - Token counting via tiktoken

    Example:
        provider = OpenAIProvider(model="gpt-4o", api_key="sk-...")
        text = await provider.generate(
            "Extract the problem.",
            images=[ImagePayload.from_bytes(png)],
            system="You are a coding challenge interpreter.",
        )
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            model: OpenAI model to use
            api_key: OpenAI API key
            base_url: Optional custom API base URL
            timeout: Request timeout in seconds
            max_retries: Retry attempts performed by the SDK
            http_client: Optional preconfigured httpx client
        """
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=http_client,
        )
        self.logger = ProviderLogger("openai")
        self._tokenizer: Any = None

    @property
    def name(self) -> str:
        return "openai"

    def _build_messages(
        self,
        prompt: str,
        images: list[ImagePayload] | None,
        system: str | None,
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})

        if images:
            content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
            content.extend(
                {"type": "image_url", "image_url": {"url": image.data_url}} for image in images
            )
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})
        return messages

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
        """Execute OpenAI chat completion."""
        model = model or self.model
        messages = self._build_messages(prompt, images, system)

        input_tokens = self.count_tokens(f"{system or ''}\n{prompt}", model)
        self.logger.log_request(model, input_tokens, image_count=len(images or []))

        start_time = time.time()

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            self.logger.log_error(e)
            raise ProviderAuthenticationError("openai") from e

        except RateLimitError as e:
            self.logger.log_error(e)
            raise ProviderRateLimitError("openai") from e

        except InternalServerError as e:
            self.logger.log_error(e)
            raise ProviderServerError("openai", e.status_code) from e

        except APIStatusError as e:
            self.logger.log_error(e)
            if e.status_code == 413 or "token" in str(e).lower():
                raise ProviderPayloadTooLargeError("openai") from e
            raise ProviderError("openai", str(e), status_code=e.status_code) from e

        # APITimeoutError is a subclass of APIConnectionError
        except APITimeoutError as e:
            self.logger.log_error(e)
            raise ProviderTimeoutError("openai", self.timeout) from e

        except APIConnectionError as e:
            self.logger.log_error(e)
            raise ProviderTransportError("openai") from e

        except APIError as e:
            self.logger.log_error(e)
            raise ProviderError("openai", str(e)) from e

        latency_ms = (time.time() - start_time) * 1000
        if not response.choices:
            raise ProviderError("openai", "Response contained no choices")

        content = response.choices[0].message.content or ""
        output_tokens = response.usage.completion_tokens if response.usage else 0
        self.logger.log_response(model, output_tokens, latency_ms)
        return content

    def count_tokens(self, text: str, model: str | None = None) -> int:
        """
        Count tokens using tiktoken.

        The encoding is loaded on first use; when it cannot be loaded (for
        example without network access to fetch the BPE file) the base
        estimate is used.
        """
        if not text:
            return 0

        if self._tokenizer is None:
            self._tokenizer = self._load_tokenizer(model or self.model)

        if self._tokenizer is False:
            return super().count_tokens(text, model)
        return len(self._tokenizer.encode(text))

    def _load_tokenizer(self, model: str) -> Any:
        try:
            try:
                return tiktoken.encoding_for_model(model)
            except KeyError:
                return tiktoken.get_encoding("o200k_base")
        except Exception as e:
            self.logger.debug("Tokenizer unavailable, estimating", error=str(e))
            return False

    async def close(self) -> None:
        await self.client.close()
