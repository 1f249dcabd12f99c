"""
SolveFlow Configuration System.

Supports loading from environment variables, YAML files, and programmatic
configuration. ``ConfigManager`` owns the live configuration and pushes a
notification to its subscribers whenever a pipeline-relevant field changes.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from solveflow.core.types import ApiProvider, ModelSelection
from solveflow.utils.errors import ConfigurationError
from solveflow.utils.logging import get_logger, mask_secret

logger = get_logger(__name__)

DEFAULT_PROVIDER = ApiProvider.GEMINI

DEFAULT_MODELS: dict[ApiProvider, str] = {
    ApiProvider.OPENAI: "gpt-4o",
    ApiProvider.GEMINI: "gemini-2.0-flash",
    ApiProvider.ANTHROPIC: "claude-3-7-sonnet-20250219",
}

ALLOWED_MODELS: dict[ApiProvider, tuple[str, ...]] = {
    ApiProvider.OPENAI: ("gpt-4o", "gpt-4o-mini"),
    ApiProvider.GEMINI: ("gemini-1.5-pro", "gemini-2.0-flash"),
    ApiProvider.ANTHROPIC: (
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
    ),
}

# Fields whose change must rebuild the provider client
PIPELINE_FIELDS = frozenset(
    {"api_provider", "api_keys", "extraction_model", "solution_model", "debugging_model", "language"}
)

ConfigListener = Callable[["SolveFlowConfig"], None]


def parse_provider(value: str | ApiProvider | None) -> ApiProvider:
    """Parse a provider identifier, falling back to the default on unknown values."""
    if isinstance(value, ApiProvider):
        return value
    try:
        return ApiProvider((value or "").strip().lower())
    except ValueError:
        if value:
            logger.warning("Unknown provider, using default", provider=value)
        return DEFAULT_PROVIDER


def detect_provider(api_key: str) -> ApiProvider:
    """Guess the provider from the key prefix."""
    key = api_key.strip()
    if key.startswith("sk-ant-"):
        return ApiProvider.ANTHROPIC
    if key.startswith("sk-"):
        return ApiProvider.OPENAI
    return ApiProvider.GEMINI


def is_valid_api_key_format(api_key: str, provider: ApiProvider | str | None = None) -> bool:
    """Basic shape check for an API key."""
    key = api_key.strip()
    resolved = parse_provider(provider) if provider else detect_provider(key)
    if resolved == ApiProvider.OPENAI:
        return re.fullmatch(r"sk-[A-Za-z0-9_-]{32,}", key) is not None
    if resolved == ApiProvider.ANTHROPIC:
        return re.fullmatch(r"sk-ant-[A-Za-z0-9_-]{32,}", key) is not None
    return len(key) >= 10


def sanitize_model(model: str, provider: ApiProvider) -> str:
    """Replace a model the provider does not allow with the provider default."""
    if model in ALLOWED_MODELS[provider]:
        return model
    default = DEFAULT_MODELS[provider]
    logger.warning(
        "Invalid model for provider, using default",
        provider=provider.value,
        model=model,
        default_model=default,
    )
    return default


def _empty_keys() -> dict[str, str]:
    return {provider.value: "" for provider in ApiProvider}


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    json_format: bool = False
    log_file: str | None = None


@dataclass
class SolveFlowConfig:
    """
    Master configuration for SolveFlow.

    Can be created from:
    - Environment variables (load with from_env())
    - YAML file (load with from_file())
    - Programmatically (direct instantiation)

    Example:
        config = SolveFlowConfig(
            api_provider=ApiProvider.OPENAI,
            api_keys={"openai": "sk-..."},
            extraction_model="gpt-4o",
        )
    """

    api_provider: ApiProvider = DEFAULT_PROVIDER
    api_keys: dict[str, str] = field(default_factory=_empty_keys)
    extraction_model: str = DEFAULT_MODELS[DEFAULT_PROVIDER]
    solution_model: str = DEFAULT_MODELS[DEFAULT_PROVIDER]
    debugging_model: str = DEFAULT_MODELS[DEFAULT_PROVIDER]
    language: str = "python"

    # Per network call
    timeout: float = 60.0
    max_retries: int = 2

    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        self.api_provider = parse_provider(self.api_provider)
        self.api_keys = {**_empty_keys(), **{k: v or "" for k, v in self.api_keys.items()}}
        self.extraction_model = sanitize_model(self.extraction_model, self.api_provider)
        self.solution_model = sanitize_model(self.solution_model, self.api_provider)
        self.debugging_model = sanitize_model(self.debugging_model, self.api_provider)

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> SolveFlowConfig:
        """
        Load configuration from environment variables.

        Args:
            dotenv_path: Optional path to .env file

        Returns:
            SolveFlowConfig instance
        """
        if dotenv_path:
            load_dotenv(dotenv_path)
        else:
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            return os.getenv(key, default)

        def get_env_bool(key: str, default: bool) -> bool:
            val = os.getenv(key, "").lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        provider = parse_provider(get_env("SOLVEFLOW_PROVIDER", DEFAULT_PROVIDER.value))
        default_model = DEFAULT_MODELS[provider]

        return cls(
            api_provider=provider,
            api_keys={
                ApiProvider.OPENAI.value: get_env("OPENAI_API_KEY", ""),
                ApiProvider.GEMINI.value: get_env("GEMINI_API_KEY") or get_env("GOOGLE_API_KEY", ""),
                ApiProvider.ANTHROPIC.value: get_env("ANTHROPIC_API_KEY", ""),
            },
            extraction_model=get_env("SOLVEFLOW_EXTRACTION_MODEL", default_model),
            solution_model=get_env("SOLVEFLOW_SOLUTION_MODEL", default_model),
            debugging_model=get_env("SOLVEFLOW_DEBUGGING_MODEL", default_model),
            language=get_env("SOLVEFLOW_LANGUAGE", "python"),
            timeout=float(get_env("SOLVEFLOW_TIMEOUT", 60.0)),
            max_retries=int(get_env("SOLVEFLOW_MAX_RETRIES", 2)),
            logging=LoggingConfig(
                level=get_env("LOG_LEVEL", "INFO"),
                json_format=get_env_bool("LOG_JSON", False),
                log_file=get_env("LOG_FILE"),
            ),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> SolveFlowConfig:
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            SolveFlowConfig instance
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> SolveFlowConfig:
        """Create config from dictionary."""
        provider = parse_provider(data.get("api_provider"))
        default_model = DEFAULT_MODELS[provider]
        logging_data = data.get("logging", {})

        return cls(
            api_provider=provider,
            api_keys=dict(data.get("api_keys") or {}),
            extraction_model=data.get("extraction_model", default_model),
            solution_model=data.get("solution_model", default_model),
            debugging_model=data.get("debugging_model", default_model),
            language=data.get("language", "python"),
            timeout=float(data.get("timeout", 60.0)),
            max_retries=int(data.get("max_retries", 2)),
            logging=LoggingConfig(**logging_data) if logging_data else LoggingConfig(),
        )

    @property
    def api_key(self) -> str:
        """Key of the selected provider, empty when absent."""
        return (self.api_keys.get(self.api_provider.value) or "").strip()

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def models(self) -> ModelSelection:
        return ModelSelection(
            extraction=self.extraction_model,
            solution=self.solution_model,
            debugging=self.debugging_model,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a display dictionary with masked keys."""
        return {
            "api_provider": self.api_provider.value,
            "api_keys": {name: mask_secret(value) for name, value in self.api_keys.items()},
            "extraction_model": self.extraction_model,
            "solution_model": self.solution_model,
            "debugging_model": self.debugging_model,
            "language": self.language,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "logging": {
                "level": self.logging.level,
                "json_format": self.logging.json_format,
            },
        }


class ConfigManager:
    """
    Holder of the live configuration.

    ``update()`` applies the same rules the settings dialog uses (provider
    auto-detection from a bare key, model reset on provider switch, model
    sanitization) and notifies subscribers when something that affects the
    pipeline changed.

    Example:
        manager = ConfigManager(SolveFlowConfig.from_env())
        manager.subscribe(lambda cfg: print(cfg.api_provider))
        manager.update(api_key="sk-ant-...")  # switches to anthropic
    """

    def __init__(self, config: SolveFlowConfig | None = None) -> None:
        self._config = config or SolveFlowConfig()
        self._listeners: list[ConfigListener] = []

    @property
    def config(self) -> SolveFlowConfig:
        return self._config

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, api_key: str | None = None, **changes: Any) -> SolveFlowConfig:
        """
        Apply configuration changes.

        Args:
            api_key: Bare key for the selected (or auto-detected) provider
            **changes: Any ``SolveFlowConfig`` field

        Returns:
            The new configuration
        """
        unknown = set(changes) - {f.name for f in fields(SolveFlowConfig)}
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration fields: {', '.join(sorted(unknown))}",
                config_key=sorted(unknown)[0],
            )

        current = self._config
        if "api_provider" in changes:
            changes["api_provider"] = parse_provider(changes["api_provider"])

        if api_key is not None:
            provider = changes.get("api_provider") or detect_provider(api_key)
            changes["api_provider"] = provider
            keys = dict(changes.get("api_keys") or current.api_keys)
            keys[provider.value] = api_key.strip()
            changes["api_keys"] = keys

        provider = changes.get("api_provider", current.api_provider)
        if provider != current.api_provider:
            default = DEFAULT_MODELS[provider]
            for name in ("extraction_model", "solution_model", "debugging_model"):
                changes.setdefault(name, default)
            logger.info("Provider switched", provider=provider.value)

        if "api_keys" in changes:
            changes["api_keys"] = {**current.api_keys, **changes["api_keys"]}

        # replace() re-runs __post_init__, which sanitizes the models
        new_config = replace(current, **changes)
        self._config = new_config

        changed = {
            name
            for name in PIPELINE_FIELDS
            if getattr(new_config, name) != getattr(current, name)
        }
        if changed:
            logger.info("Configuration updated", fields=sorted(changed))
            self._notify(new_config)
        return new_config

    def _notify(self, config: SolveFlowConfig) -> None:
        for listener in list(self._listeners):
            listener(config)


# Global manager instance (can be overridden)
_global_manager: ConfigManager | None = None


def get_config_manager() -> ConfigManager:
    """Get the global configuration manager, loading from the environment once."""
    global _global_manager
    if _global_manager is None:
        _global_manager = ConfigManager(SolveFlowConfig.from_env())
    return _global_manager


def get_config() -> SolveFlowConfig:
    """Get the current global configuration."""
    return get_config_manager().config


def set_config(config: SolveFlowConfig) -> None:
    """Replace the global configuration, notifying subscribers."""
    manager = get_config_manager()
    manager.update(**{f.name: getattr(config, f.name) for f in fields(SolveFlowConfig)})
