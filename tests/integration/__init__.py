"""
Integration tests for SolveFlow.

This package contains end-to-end tests that drive the orchestrator with a
scripted in-process provider.

Test Modules:
    - test_pipeline: Solve and debug runs, failures, cancellation and
      configuration changes
"""

__all__ = [
    "test_pipeline",
]
