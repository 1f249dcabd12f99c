"""
Provider client registry.

Holds at most one live credentialed client, built for the provider selected
in the configuration. The registry rebuilds its client when the
configuration manager pushes a change; runs capture a ``ProviderSnapshot``
at start and keep using it even if the client is swapped mid-run.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from solveflow.core.config import DEFAULT_MODELS, ConfigManager, SolveFlowConfig, parse_provider
from solveflow.core.types import ApiProvider, ModelSelection
from solveflow.providers.base import BaseProvider
from solveflow.utils.errors import MissingAPIKeyError
from solveflow.utils.logging import get_logger

logger = get_logger(__name__)

# Provider registry
_PROVIDER_REGISTRY: dict[str, type[BaseProvider]] = {}


def _register_builtin_providers() -> None:
    """Register built-in providers."""
    # Import here to avoid circular imports
    from solveflow.providers.claude import ClaudeProvider
    from solveflow.providers.gemini import GeminiProvider
    from solveflow.providers.openai_provider import OpenAIProvider

    _PROVIDER_REGISTRY.setdefault(ApiProvider.OPENAI.value, OpenAIProvider)
    _PROVIDER_REGISTRY.setdefault(ApiProvider.GEMINI.value, GeminiProvider)
    _PROVIDER_REGISTRY.setdefault(ApiProvider.ANTHROPIC.value, ClaudeProvider)


def register_provider(name: str, provider_class: type[BaseProvider]) -> None:
    """
    Register a provider class under a provider identifier.

    Args:
        name: Provider identifier ("openai", "gemini" or "anthropic")
        provider_class: Provider class (must inherit from BaseProvider)
    """
    if not issubclass(provider_class, BaseProvider):
        raise TypeError(f"{provider_class} must inherit from BaseProvider")
    _register_builtin_providers()
    _PROVIDER_REGISTRY[name] = provider_class


def list_providers() -> list[str]:
    """
    List all registered providers.

    Returns:
        List of provider names
    """
    _register_builtin_providers()
    return list(_PROVIDER_REGISTRY.keys())


def get_provider_class(name: str) -> type[BaseProvider]:
    _register_builtin_providers()
    return _PROVIDER_REGISTRY[name]


@dataclass(frozen=True)
class ProviderSnapshot:
    """Client and settings captured by a run at start."""

    provider: ApiProvider
    client: BaseProvider | None
    models: ModelSelection
    language: str

    @property
    def ready(self) -> bool:
        return self.client is not None


class ProviderRegistry:
    """
    Owner of the active provider client.

    Example:
        registry = ProviderRegistry()
        registry.attach(get_config_manager())
        client = registry.active_client()
    """

    def __init__(
        self,
        provider_classes: dict[str, type[BaseProvider]] | None = None,
    ):
        """
        Args:
            provider_classes: Optional provider-name to class mapping that
                overrides the module registry
        """
        self._classes = provider_classes
        self._client: BaseProvider | None = None
        self._provider: ApiProvider = ApiProvider.GEMINI
        self._signature: tuple[object, ...] | None = None
        self._models = ModelSelection(*(DEFAULT_MODELS[ApiProvider.GEMINI],) * 3)
        self._language = "python"
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def provider(self) -> ApiProvider:
        return self._provider

    def _class_for(self, provider: ApiProvider) -> type[BaseProvider]:
        if self._classes is not None and provider.value in self._classes:
            return self._classes[provider.value]
        return get_provider_class(provider.value)

    def configure(
        self,
        provider: ApiProvider | str,
        credential: str | None,
        models: ModelSelection | None = None,
        *,
        language: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
    ) -> None:
        """
        Build the client for ``provider``.

        Calling this again with the same arguments keeps the existing
        client. Without a credential the active client becomes None.
        """
        provider = parse_provider(provider)
        credential = (credential or "").strip()
        models = models or ModelSelection(*(DEFAULT_MODELS[provider],) * 3)

        self._provider = provider
        self._models = models
        if language:
            self._language = language

        signature = (provider, credential, models.extraction, timeout, max_retries)
        if signature == self._signature:
            return
        self._signature = signature

        if not credential:
            self._client = None
            logger.warning("No API key configured, provider client disabled", provider=provider.value)
            return

        provider_class = self._class_for(provider)
        # The previous client is not closed: an in-flight run may still hold it
        self._client = provider_class(
            model=models.extraction,
            api_key=credential,
            timeout=timeout,
            max_retries=max_retries,
        )
        logger.info("Provider client initialized", provider=provider.value)

    def apply(self, config: SolveFlowConfig) -> None:
        """Rebuild from a full configuration."""
        self.configure(
            config.api_provider,
            config.api_key,
            config.models,
            language=config.language,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def attach(self, manager: ConfigManager) -> None:
        """Follow ``manager``: apply its configuration now and on every change."""
        self.detach()
        self.apply(manager.config)
        self._unsubscribe = manager.subscribe(self.apply)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def active_client(self) -> BaseProvider | None:
        return self._client

    def require_client(self) -> BaseProvider:
        """
        Return the active client.

        Raises:
            MissingAPIKeyError: If no credential is configured
        """
        if self._client is None:
            raise MissingAPIKeyError(self._provider.value)
        return self._client

    def snapshot(self, language: str | None = None) -> ProviderSnapshot:
        return ProviderSnapshot(
            provider=self._provider,
            client=self._client,
            models=self._models,
            language=language or self._language,
        )
