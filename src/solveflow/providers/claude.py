"""
Anthropic Claude provider implementation.

Sends ``messages.create`` requests with base64 ``image`` blocks and a
``system`` parameter. Timeouts and retries are left to the Anthropic SDK.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    AuthenticationError,
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


class ClaudeProvider(BaseProvider):
    """
    Anthropic Claude provider.

    Supports:
    - Claude 3.7 Sonnet, Claude 3.5 Sonnet, Claude 3 Opus
    - Vision input
    - System prompts

    Example:
        provider = ClaudeProvider(api_key="sk-ant-...")
        text = await provider.generate(
            "Extract the problem.",
            images=[ImagePayload.from_bytes(png)],
        )
    """

    def __init__(
        self,
        model: str = "claude-3-7-sonnet-20250219",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Claude provider.

        Args:
            model: Claude model to use
            api_key: Anthropic API key
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

        self.client = AsyncAnthropic(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_client=http_client,
        )
        self.logger = ProviderLogger("anthropic")

    @property
    def name(self) -> str:
        return "anthropic"

    def _build_content(
        self, prompt: str, images: list[ImagePayload] | None
    ) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images or []:
            content.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": image.media_type,
                        "data": image.data,
                    },
                }
            )
        return content

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
        """Execute Claude message request."""
        model = model or self.model
        request: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": self._build_content(prompt, images)}],
        }
        if system:
            request["system"] = system

        self.logger.log_request(
            model,
            self.count_tokens(f"{system or ''}\n{prompt}"),
            image_count=len(images or []),
        )

        start_time = time.time()

        try:
            response = await self.client.messages.create(**request)

        except (AuthenticationError, PermissionDeniedError) as e:
            self.logger.log_error(e)
            raise ProviderAuthenticationError("anthropic") from e

        except RateLimitError as e:
            self.logger.log_error(e)
            raise ProviderRateLimitError("anthropic") from e

        except APIStatusError as e:
            self.logger.log_error(e)
            if e.status_code >= 500:
                raise ProviderServerError("anthropic", e.status_code) from e
            if e.status_code == 413 or "token" in str(e).lower():
                raise ProviderPayloadTooLargeError("anthropic") from e
            raise ProviderError("anthropic", str(e), status_code=e.status_code) from e

        # APITimeoutError is a subclass of APIConnectionError
        except APITimeoutError as e:
            self.logger.log_error(e)
            raise ProviderTimeoutError("anthropic", self.timeout) from e

        except APIConnectionError as e:
            self.logger.log_error(e)
            raise ProviderTransportError("anthropic") from e

        except APIError as e:
            self.logger.log_error(e)
            raise ProviderError("anthropic", str(e)) from e

        latency_ms = (time.time() - start_time) * 1000
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        self.logger.log_response(model, response.usage.output_tokens, latency_ms)
        return text

    async def close(self) -> None:
        await self.client.close()
