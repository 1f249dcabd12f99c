"""
Unit tests for the CLI: event rendering and the credential check.
"""

from __future__ import annotations

import importlib

import pytest
from rich.console import Console

from solveflow.cli.commands import solve as solve_commands
from solveflow.cli.commands.solve import EventRenderer
from solveflow.core.config import SolveFlowConfig
from solveflow.core.events import RunEvent, RunEventType
from solveflow.core.types import ApiProvider, ImagePayload, RunKind
from solveflow.providers.base import BaseProvider
from solveflow.providers.registry import ProviderRegistry
from solveflow.utils.errors import ProviderAuthenticationError
from tests.conftest import GEMINI_TEST_KEY

# solveflow.cli re-exports the ``main`` function, which shadows the submodule.
main_module = importlib.import_module("solveflow.cli.main")


@pytest.fixture
def recorded(monkeypatch: pytest.MonkeyPatch) -> Console:
    """Replace the module consoles with one recording console."""
    console = Console(record=True, width=200)
    monkeypatch.setattr(solve_commands, "console", console)
    monkeypatch.setattr(solve_commands, "error_console", console)
    monkeypatch.setattr(main_module, "console", console)
    return console


# =============================================================================
# Event rendering
# =============================================================================


class TestEventRenderer:
    """Tests for printing run events."""

    def test_problem_text_is_not_markup(self, recorded: Console) -> None:
        renderer = EventRenderer("python")
        renderer(
            RunEvent(
                type=RunEventType.PROBLEM_EXTRACTED,
                run_id="run-1",
                kind=RunKind.INITIAL,
                data={"problem_statement": "Return nums[i] + nums[j] for [bold] pairs"},
            )
        )

        output = recorded.export_text()
        assert "nums[i] + nums[j]" in output
        assert "[bold]" in output

    def test_bullets_and_failures_are_not_markup(self, recorded: Console) -> None:
        renderer = EventRenderer("python")
        renderer(
            RunEvent(
                type=RunEventType.EDGE_CASES_EXTRACTED,
                run_id="run-1",
                kind=RunKind.INITIAL,
                data={"edge_cases": ["grid[0][0] is blocked"]},
            )
        )
        renderer(
            RunEvent(
                type=RunEventType.RUN_FAILED,
                run_id="run-1",
                kind=RunKind.INITIAL,
                data={"message": "Unexpected token [x]", "classification": "parse_error"},
            )
        )

        output = recorded.export_text()
        assert "grid[0][0] is blocked" in output
        assert "Unexpected token [x]" in output

    def test_json_output_prints_nothing(self, recorded: Console) -> None:
        renderer = EventRenderer("python", json_output=True)
        renderer(
            RunEvent(
                type=RunEventType.PROBLEM_EXTRACTED,
                run_id="run-1",
                kind=RunKind.INITIAL,
                data={"problem_statement": "hidden"},
            )
        )
        assert "hidden" not in recorded.export_text()


# =============================================================================
# Credential check
# =============================================================================


class StaticProvider(BaseProvider):
    """Provider answering every request with ``reply``."""

    reply: str | Exception = "Hi"
    prompts: list[str] = []

    @property
    def name(self) -> str:
        return "static"

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
        StaticProvider.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


@pytest.fixture
def static_registry(monkeypatch: pytest.MonkeyPatch) -> type[StaticProvider]:
    StaticProvider.reply = "Hi"
    StaticProvider.prompts = []
    monkeypatch.setattr(
        main_module,
        "ProviderRegistry",
        lambda: ProviderRegistry(
            provider_classes={provider.value: StaticProvider for provider in ApiProvider}
        ),
    )
    return StaticProvider


class TestInfoCheck:
    """Tests for ``solveflow info --check``."""

    def test_valid_key(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recorded: Console,
        static_registry: type[StaticProvider],
    ) -> None:
        config = SolveFlowConfig(api_keys={"gemini": GEMINI_TEST_KEY})
        monkeypatch.setattr(main_module, "get_config", lambda: config)

        main_module.info(check=True)

        output = recorded.export_text()
        assert "Credentials" in output
        assert "valid" in output
        assert len(static_registry.prompts) == 1
        assert GEMINI_TEST_KEY not in output

    def test_rejected_key(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recorded: Console,
        static_registry: type[StaticProvider],
    ) -> None:
        static_registry.reply = ProviderAuthenticationError("gemini")
        config = SolveFlowConfig(api_keys={"gemini": GEMINI_TEST_KEY})
        monkeypatch.setattr(main_module, "get_config", lambda: config)

        main_module.info(check=True)

        assert "rejected" in recorded.export_text()

    def test_missing_key(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recorded: Console,
        static_registry: type[StaticProvider],
    ) -> None:
        monkeypatch.setattr(main_module, "get_config", lambda: SolveFlowConfig())

        main_module.info(check=True)

        assert "not configured" in recorded.export_text()
        assert static_registry.prompts == []

    def test_no_check_makes_no_request(
        self,
        monkeypatch: pytest.MonkeyPatch,
        recorded: Console,
        static_registry: type[StaticProvider],
    ) -> None:
        config = SolveFlowConfig(api_keys={"gemini": GEMINI_TEST_KEY})
        monkeypatch.setattr(main_module, "get_config", lambda: config)

        main_module.info()

        assert "Credentials" not in recorded.export_text()
        assert static_registry.prompts == []
