"""
Google Gemini provider implementation.

Calls the ``generateContent`` REST endpoint directly with httpx, sending the
API key in the ``x-goog-api-key`` header so it never appears in a URL or a
log line. Screenshots travel as ``inlineData`` parts.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
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

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(BaseProvider):
    """
    Google Gemini provider over key-based HTTP.

    Supports:
    - Gemini 2.0 Flash, Gemini 1.5 Pro
    - Vision input via inlineData
    - System prompts via systemInstruction

    Server errors and network failures are retried a bounded number of
    times; every other failure surfaces immediately.

    Example:
        provider = GeminiProvider(api_key="...")
        text = await provider.generate("Extract the problem.", images=[payload])
    """

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        retry_backoff: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            model: Gemini model to use
            api_key: Google AI Studio API key
            base_url: Optional custom API base URL
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt for 5xx/network errors
            retry_backoff: Exponential backoff multiplier in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url or GEMINI_BASE_URL,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.retry_backoff = retry_backoff
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"},
            transport=transport,
        )
        self.logger = ProviderLogger("gemini")

    @property
    def name(self) -> str:
        return "gemini"

    def _build_payload(
        self,
        prompt: str,
        images: list[ImagePayload] | None,
        system: str | None,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        parts: list[dict[str, Any]] = [{"text": prompt}]
        parts.extend(
            {"inlineData": {"mimeType": image.media_type, "data": image.data}}
            for image in images or []
        )
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

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
        """Execute Gemini generateContent request."""
        model = model or self.model
        payload = self._build_payload(prompt, images, system, max_tokens, temperature)

        self.logger.log_request(
            model,
            self.count_tokens(f"{system or ''}\n{prompt}"),
            image_count=len(images or []),
        )
        start_time = time.time()

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=self.retry_backoff, max=8),
                retry=retry_if_exception_type((ProviderServerError, ProviderTransportError)),
                reraise=True,
            ):
                with attempt:
                    data = await self._post(f"/models/{model}:generateContent", payload)
        except ProviderError as e:
            self.logger.log_error(e)
            raise

        latency_ms = (time.time() - start_time) * 1000
        text = self._response_text(data)
        output_tokens = data.get("usageMetadata", {}).get("candidatesTokenCount", 0)
        self.logger.log_response(model, output_tokens, latency_ms)
        return text

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError("gemini", self.timeout) from e
        except httpx.TransportError as e:
            raise ProviderTransportError("gemini") from e

        if response.status_code >= 400:
            raise self._status_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError("gemini", "Response was not valid JSON") from e

    def _status_error(self, response: httpx.Response) -> ProviderError:
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            message = str(body["error"].get("message", ""))
        else:
            message = response.text[:200]

        if status in (401, 403) or (status == 400 and "api key" in message.lower()):
            return ProviderAuthenticationError("gemini")
        if status == 429:
            return ProviderRateLimitError("gemini")
        if status == 413:
            return ProviderPayloadTooLargeError("gemini")
        if status >= 500:
            return ProviderServerError("gemini", status)
        return ProviderError("gemini", message or f"HTTP {status}", status_code=status)

    def _response_text(self, data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            reason = data.get("promptFeedback", {}).get("blockReason")
            detail = f" (blocked: {reason})" if reason else ""
            raise ProviderError("gemini", f"Empty response from Gemini API{detail}")

        parts = candidates[0].get("content", {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)

    async def close(self) -> None:
        await self.client.aclose()
