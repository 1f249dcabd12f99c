"""CLI commands for SolveFlow."""

from solveflow.cli.commands import solve

__all__ = ["solve"]
