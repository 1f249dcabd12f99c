"""Pipeline stages, prompts and response extractors."""

from solveflow.pipeline.extractors import (
    extract_bullets,
    extract_code,
    extract_complexity,
    extract_debug,
    extract_pseudocode,
    parse_problem_info,
)
from solveflow.pipeline.stages import (
    SOLVE_STAGES,
    run_approach,
    run_code_generation,
    run_complexity,
    run_debug,
    run_edge_cases,
    run_extraction,
    run_solution_thinking,
)

__all__ = [
    # Extractors
    "extract_bullets",
    "extract_code",
    "extract_complexity",
    "extract_debug",
    "extract_pseudocode",
    "parse_problem_info",
    # Stages
    "SOLVE_STAGES",
    "run_extraction",
    "run_edge_cases",
    "run_solution_thinking",
    "run_approach",
    "run_code_generation",
    "run_complexity",
    "run_debug",
]
