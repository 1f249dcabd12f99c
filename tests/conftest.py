"""
Pytest configuration and fixtures for SolveFlow tests.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from solveflow.core.config import ConfigManager, SolveFlowConfig
from solveflow.core.types import (
    ApiProvider,
    ImagePayload,
    ModelSelection,
    PipelineContext,
    ProblemInfo,
    RunKind,
)
from solveflow.providers.base import BaseProvider

GEMINI_TEST_KEY = "AIzaSyTestKey0123456789abcdefghijkl"
OPENAI_TEST_KEY = "sk-" + "a" * 40
ANTHROPIC_TEST_KEY = "sk-ant-" + "b" * 40

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


@pytest.fixture
def mock_config() -> SolveFlowConfig:
    """Provide a test configuration with a Gemini key."""
    return SolveFlowConfig(
        api_provider=ApiProvider.GEMINI,
        api_keys={"gemini": GEMINI_TEST_KEY},
    )


@pytest.fixture
def config_manager(mock_config: SolveFlowConfig) -> ConfigManager:
    """Provide a configuration manager around the test configuration."""
    return ConfigManager(mock_config)


@pytest.fixture
def sample_image() -> ImagePayload:
    """Provide a tiny PNG screenshot payload."""
    return ImagePayload.from_bytes(PNG_BYTES)


@pytest.fixture
def problem_info() -> ProblemInfo:
    """Provide the canonical reverse-a-string problem."""
    return ProblemInfo(
        problem_statement="Reverse a string",
        constraints="",
        example_input='"abc"',
        example_output='"cba"',
    )


@pytest.fixture
def pipeline_context(sample_image: ImagePayload, problem_info: ProblemInfo) -> PipelineContext:
    """Provide a context as it looks after extraction."""
    return PipelineContext(
        run_id="run-test",
        kind=RunKind.INITIAL,
        language="python",
        provider="gemini",
        models=ModelSelection(
            extraction="gemini-2.0-flash",
            solution="gemini-1.5-pro",
            debugging="gemini-2.0-flash",
        ),
        images=[sample_image],
        problem_info=problem_info,
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """Provide a mock provider client."""
    client = MagicMock(spec=BaseProvider)
    client.name = "mock"
    client.model = "mock-model"
    client.generate = AsyncMock(return_value="")
    return client
