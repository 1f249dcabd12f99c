"""
Integration test fixtures for SolveFlow.

Provides an orchestrator wired to a scripted in-process provider, so full
solve and debug runs execute without any network access.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from solveflow.core.config import ConfigManager
from solveflow.core.events import RunEvent, RunEventType
from solveflow.core.orchestrator import SolveFlow
from solveflow.core.types import ApiProvider, ImagePayload, StageName
from solveflow.pipeline.prompts import SYSTEM_PROMPTS
from solveflow.providers.base import BaseProvider
from solveflow.providers.registry import ProviderRegistry

# =============================================================================
# Canned Responses
# =============================================================================

DEFAULT_RESPONSES: dict[StageName, str] = {
    StageName.EXTRACTION: (
        "```json\n"
        '{"problem_statement": "Reverse a string", "constraints": "",'
        ' "example_input": "\\"abc\\"", "example_output": "\\"cba\\""}\n'
        "```"
    ),
    StageName.EDGE_CASES: "- Empty string\n- Single character\n- Unicode characters",
    StageName.SOLUTION_THINKING: (
        "- Strings are immutable, so build a new one\n- Slicing reverses in one pass"
    ),
    StageName.APPROACH: (
        "- Walk the string from the end\n"
        "- Collect characters into the result\n\n"
        "PSEUDOCODE:\n"
        "```\n"
        "function reverse(s):\n"
        "    return s read backwards\n"
        "```"
    ),
    StageName.CODE_GENERATION: "```python\ndef reverse(s):\n    return s[::-1]\n```",
    StageName.COMPLEXITY: (
        "Time Complexity: O(n) because each character is visited once\n"
        "Space Complexity: O(n) - the reversed copy"
    ),
    StageName.DEBUG: (
        "### Issues Identified\n"
        "- The loop stops one character early\n\n"
        "### Specific Improvements and Corrections\n"
        "```python\ndef reverse(s):\n    return s[::-1]\n```\n\n"
        "### Key Points\n"
        "- Prefer slicing over manual loops\n"
    ),
}

_STAGE_BY_SYSTEM = {prompt: stage for stage, prompt in SYSTEM_PROMPTS.items()}


# =============================================================================
# Mock Provider Implementation
# =============================================================================


class MockProvider(BaseProvider):
    """
    Mock provider for integration testing.

    Routes each call to a stage by its system prompt and answers with the
    scripted response for that stage. A response may be an exception, which
    is raised instead. ``block(stage)`` holds calls for that stage until
    ``release(stage)``, so tests can act while a run is mid-stage.
    """

    def __init__(
        self,
        model: str = "mock-model",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 2,
    ):
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )
        self.responses: dict[StageName, str | Exception] = dict(DEFAULT_RESPONSES)
        self.calls: list[dict[str, Any]] = []
        self.aborted: list[StageName] = []
        self._gates: dict[StageName, asyncio.Event] = {}
        self._entered: dict[StageName, asyncio.Event] = {}
        self.closed = False

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def stages_called(self) -> list[StageName]:
        return [call["stage"] for call in self.calls]

    def calls_for(self, stage: StageName) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["stage"] == stage]

    def block(self, stage: StageName) -> None:
        self._gates[stage] = asyncio.Event()

    def release(self, stage: StageName) -> None:
        self._gates[stage].set()

    async def wait_until_called(self, stage: StageName, timeout: float = 5.0) -> None:
        """Wait until a call for ``stage`` has reached the provider."""
        entered = self._entered.setdefault(stage, asyncio.Event())
        await asyncio.wait_for(entered.wait(), timeout)

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
        """Return the scripted response for the stage of this call."""
        stage = _STAGE_BY_SYSTEM[system or ""]
        self.calls.append(
            {
                "stage": stage,
                "prompt": prompt,
                "images": images,
                "system": system,
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        self._entered.setdefault(stage, asyncio.Event()).set()

        gate = self._gates.get(stage)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.aborted.append(stage)
                raise

        response = self.responses[stage]
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_registry() -> ProviderRegistry:
    """Provide a registry that builds MockProvider for every provider."""
    return ProviderRegistry(provider_classes={provider.value: MockProvider for provider in ApiProvider})


@pytest.fixture
def flow(config_manager: ConfigManager, mock_registry: ProviderRegistry) -> SolveFlow:
    """Provide an orchestrator following ``config_manager`` with mock clients."""
    return SolveFlow(config_manager=config_manager, registry=mock_registry)


@pytest.fixture
def mock_provider(flow: SolveFlow) -> MockProvider:
    """Provide the client the orchestrator will capture for its next run."""
    client = flow.registry.active_client()
    assert isinstance(client, MockProvider)
    return client


@pytest.fixture
def images(sample_image: ImagePayload) -> list[ImagePayload]:
    """Provide a two-screenshot queue."""
    return [sample_image, ImagePayload.from_bytes(b"\xff\xd8\xff\xe0second")]


def event_types(events: list[RunEvent], include_progress: bool = False) -> list[RunEventType]:
    """Event tags in publication order, progress updates dropped by default."""
    return [
        event.type
        for event in events
        if include_progress or event.type != RunEventType.PROCESSING_STATUS
    ]
