"""
SolveFlow Examples.

This package contains working examples of the SolveFlow pipeline.

Examples:
    01_solve_and_debug.py  - Solve a problem from screenshots, then debug an attempt

Running Examples:
    python examples/01_solve_and_debug.py problem.png [attempt.png]
"""
