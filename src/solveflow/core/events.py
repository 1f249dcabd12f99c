"""
Run event stream.

The orchestrator publishes tagged ``RunEvent`` objects on an ``EventChannel``;
the UI (or CLI) consumes them from a single listener loop.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from solveflow.core.types import RunKind
from solveflow.utils.logging import get_logger

logger = get_logger(__name__)


class RunEventType(str, Enum):
    """Event tags emitted by the orchestrator."""

    # Solve flow
    RUN_STARTED = "run-started"
    PROCESSING_STATUS = "processing-status"
    PROBLEM_EXTRACTED = "problem-extracted"
    EDGE_CASES_EXTRACTED = "edge-cases-extracted"
    SOLUTION_THINKING = "solution-thinking"
    APPROACH_DEVELOPED = "approach-developed"
    CODE_GENERATED = "code-generated"
    RUN_SUCCEEDED = "run-succeeded"
    RUN_FAILED = "run-failed"
    RUN_CANCELLED = "run-cancelled"

    # Debug flow
    DEBUG_STARTED = "debug-started"
    DEBUG_SUCCEEDED = "debug-succeeded"
    DEBUG_FAILED = "debug-failed"
    DEBUG_CANCELLED = "debug-cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_EVENTS

    @property
    def is_stage_success(self) -> bool:
        return self in STAGE_SUCCESS_EVENTS


TERMINAL_EVENTS = frozenset(
    {
        RunEventType.RUN_SUCCEEDED,
        RunEventType.RUN_FAILED,
        RunEventType.RUN_CANCELLED,
        RunEventType.DEBUG_SUCCEEDED,
        RunEventType.DEBUG_FAILED,
        RunEventType.DEBUG_CANCELLED,
    }
)

STAGE_SUCCESS_EVENTS = frozenset(
    {
        RunEventType.PROBLEM_EXTRACTED,
        RunEventType.EDGE_CASES_EXTRACTED,
        RunEventType.SOLUTION_THINKING,
        RunEventType.APPROACH_DEVELOPED,
        RunEventType.CODE_GENERATED,
        RunEventType.RUN_SUCCEEDED,
    }
)

_sequence = itertools.count(1)


@dataclass(frozen=True)
class RunEvent:
    """A single tagged event of one run."""

    type: RunEventType
    run_id: str
    kind: RunKind
    data: dict[str, Any] = field(default_factory=dict)
    sequence: int = field(default_factory=lambda: next(_sequence))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "kind": self.kind.value,
            "data": self.data,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[RunEvent], Awaitable[None] | None]

_CLOSED = object()


class EventChannel:
    """
    Unbounded queue of run events with a single consumer.

    Example:
        channel = EventChannel()
        async for event in channel:
            render(event)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: RunEvent) -> None:
        """Enqueue an event; events published after ``close()`` are dropped."""
        if self._closed:
            logger.debug("Event dropped on closed channel", event_type=event.type.value)
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop the listener loop once queued events are consumed."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[RunEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[RunEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def listen(self, handler: EventHandler) -> None:
        """Run ``handler`` for every event until the channel is closed."""
        async for event in self:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result

    def drain(self) -> list[RunEvent]:
        """Return all queued events without waiting."""
        events: list[RunEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                # Keep the close marker for a later listener
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events
