"""LLM Provider implementations."""

from solveflow.providers.base import BaseProvider
from solveflow.providers.claude import ClaudeProvider
from solveflow.providers.gemini import GeminiProvider
from solveflow.providers.openai_provider import OpenAIProvider
from solveflow.providers.registry import (
    ProviderRegistry,
    ProviderSnapshot,
    list_providers,
    register_provider,
)

__all__ = [
    # Base
    "BaseProvider",
    # Registry
    "ProviderRegistry",
    "ProviderSnapshot",
    "list_providers",
    "register_provider",
    # Providers
    "ClaudeProvider",
    "GeminiProvider",
    "OpenAIProvider",
]
