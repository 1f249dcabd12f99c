#!/usr/bin/env python
"""
Basic SolveFlow Usage Example.

This example demonstrates the two top-level operations:
- Solving a coding problem from screenshots while streaming stage events
- Debugging an attempt against the problem that was just extracted

Prerequisites:
    - Set GEMINI_API_KEY (or OPENAI_API_KEY / ANTHROPIC_API_KEY together
      with SOLVEFLOW_PROVIDER)
    - Install solveflow: pip install -e .

Run:
    python examples/01_solve_and_debug.py problem.png [attempt.png]
"""

import asyncio
import sys
from pathlib import Path

# Add parent to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from solveflow import ImagePayload, RunEvent, RunEventType, SolveFlow


def print_event(event: RunEvent) -> None:
    """Print one line per event as the run progresses."""
    if event.type == RunEventType.PROCESSING_STATUS:
        print(f"  [{event.data['progress']:>3}%] {event.data['message']}")
    elif event.type == RunEventType.PROBLEM_EXTRACTED:
        print(f"\nProblem: {event.data['problem_statement']}\n")
    elif event.type == RunEventType.APPROACH_DEVELOPED:
        print("\nPseudocode:\n" + (event.data["pseudocode"] or "(none)") + "\n")
    elif event.type.is_terminal:
        print(f"\n{event.type.value}: {event.data.get('message', 'ok')}")


async def main(problem_path: Path, attempt_path: Path | None) -> None:
    async with SolveFlow() as flow:
        listener = asyncio.create_task(flow.events.listen(print_event))

        outcome = await flow.process_initial(
            [ImagePayload.from_bytes(problem_path.read_bytes())],
            language="python",
        )
        if outcome.success:
            print("\nSolution:\n" + outcome.result.code)
            print(f"\nTime:  {outcome.result.time_complexity}")
            print(f"Space: {outcome.result.space_complexity}")

        if outcome.success and attempt_path is not None:
            debug = await flow.process_follow_up(
                [ImagePayload.from_bytes(attempt_path.read_bytes())]
            )
            if debug.success:
                print("\nDebug analysis:\n" + debug.result.debug_analysis)

    await listener


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    attempt = Path(sys.argv[2]) if len(sys.argv) > 2 else None
    asyncio.run(main(Path(sys.argv[1]), attempt))
