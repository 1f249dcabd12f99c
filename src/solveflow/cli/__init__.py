"""
SolveFlow Command-Line Interface.

Provides the CLI entry point for running the solve pipeline
from the command line.

Commands:
    solve     - Solve a coding problem from screenshots
    debug     - Debug an attempt at a solved problem
    info      - Display configuration (keys masked)
    providers - List available LLM providers

Example:
    $ solveflow solve problem.png --language python
    $ solveflow debug error.png --problem-file problem.json
"""

from __future__ import annotations

from solveflow.cli.main import app, cli, main

__all__ = [
    "app",
    "cli",
    "main",
]
