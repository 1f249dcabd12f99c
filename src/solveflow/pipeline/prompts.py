"""
Prompt templates and generation parameters for every pipeline stage.
"""

from __future__ import annotations

from dataclasses import dataclass

from solveflow.core.types import ProblemInfo, StageName


@dataclass(frozen=True)
class StagePrompt:
    """Everything a provider needs for one stage call."""

    system: str
    prompt: str
    max_tokens: int
    temperature: float = 0.2


MAX_TOKENS: dict[StageName, int] = {
    StageName.EXTRACTION: 4000,
    StageName.EDGE_CASES: 1000,
    StageName.SOLUTION_THINKING: 1500,
    StageName.APPROACH: 2000,
    StageName.CODE_GENERATION: 2000,
    StageName.COMPLEXITY: 1000,
    StageName.DEBUG: 4000,
}

SYSTEM_PROMPTS: dict[StageName, str] = {
    StageName.EXTRACTION: (
        "You are a coding challenge interpreter. Analyze the screenshots of the coding "
        "problem and extract all relevant information. Return the information as JSON "
        "with these fields: problem_statement, constraints, example_input, example_output. "
        "Return only the JSON object without any other text."
    ),
    StageName.EDGE_CASES: (
        "You are an expert coding interview assistant. Identify critical edge cases for "
        "coding problems. List them concisely without explanations."
    ),
    StageName.SOLUTION_THINKING: (
        "You are an expert coding interview assistant. Provide extremely concise insights "
        "(1-2 sentences per point max)."
    ),
    StageName.APPROACH: (
        "You are an expert coding interview assistant. Develop clear solution approaches "
        "for coding problems."
    ),
    StageName.CODE_GENERATION: (
        "You are an expert coding interview assistant. Generate clean, optimized code solutions."
    ),
    StageName.COMPLEXITY: (
        "You are an expert coding interview assistant. Provide detailed complexity analysis "
        "for algorithms."
    ),
    StageName.DEBUG: (
        "You are a coding interview assistant helping debug and improve solutions. Analyze "
        "the screenshots, which show error messages, incorrect outputs or test cases, and "
        "provide detailed debugging help."
    ),
}


def describe_problem(problem: ProblemInfo, language: str) -> str:
    """Problem block shared by the text-only stages."""
    return (
        f"PROBLEM STATEMENT:\n{problem.problem_statement}\n\n"
        f"CONSTRAINTS:\n{problem.constraints or 'No specific constraints provided.'}\n\n"
        f"EXAMPLE INPUT:\n{problem.example_input or 'No example input provided.'}\n\n"
        f"EXAMPLE OUTPUT:\n{problem.example_output or 'No example output provided.'}\n\n"
        f"LANGUAGE: {language}"
    )


def _stage(stage: StageName, prompt: str) -> StagePrompt:
    return StagePrompt(
        system=SYSTEM_PROMPTS[stage],
        prompt=prompt.strip(),
        max_tokens=MAX_TOKENS[stage],
    )


def extraction_prompt(language: str) -> StagePrompt:
    return _stage(
        StageName.EXTRACTION,
        "Extract the coding problem details from these screenshots. Return them in JSON "
        "format with the fields problem_statement, constraints, example_input and "
        f"example_output. The preferred language for the solution is {language}.",
    )


def edge_cases_prompt(problem: ProblemInfo, language: str) -> StagePrompt:
    return _stage(
        StageName.EDGE_CASES,
        f"""
Analyze the following coding problem and identify potential edge cases:

{describe_problem(problem, language)}

List 3-5 important edge cases that a solution needs to handle.
Format the output as a simple list of edge cases without explanations.
Keep each edge case to a single line and make them very concise.
""",
    )


def solution_thinking_prompt(problem: ProblemInfo, language: str) -> StagePrompt:
    return _stage(
        StageName.SOLUTION_THINKING,
        f"""
Think through how to solve the following coding problem:

{describe_problem(problem, language)}

Provide exactly 3-5 key insights about how to approach this problem.
Each insight must be:
1. Presented as a bullet point
2. At most 1-2 sentences
3. Focused on a single insight or technique

Keep each bullet point concise and direct.
""",
    )


def approach_prompt(problem: ProblemInfo, language: str) -> StagePrompt:
    return _stage(
        StageName.APPROACH,
        f"""
Develop a solution approach for the following coding problem:

{describe_problem(problem, language)}

First, describe the high-level algorithm step by step as a bullet list.

Then provide a section labeled "PSEUDOCODE:" containing a detailed pseudocode
implementation of the solution inside a code block fenced with triple backticks:

```
function sampleAlgorithm(input):
    // initialization
    initialize variables

    // main logic
    for each element in input:
        if condition:
            do something
        else:
            do something else

    return result
```

Use 4 spaces of indentation per level, comment the major sections and keep
naming consistent. If the solution is recursive, state the base case. If it
uses dynamic programming, describe the table, the transitions and the base cases.
""",
    )


def code_generation_prompt(problem: ProblemInfo, language: str, pseudocode: str) -> StagePrompt:
    return _stage(
        StageName.CODE_GENERATION,
        f"""
Generate a clean, optimized solution for the following coding problem:

{describe_problem(problem, language)}

Based on the following approach:
{pseudocode}

Provide only the full, runnable code solution in {language}. Make it efficient,
handle edge cases, and include comments where they help clarity.
""",
    )


def complexity_prompt(problem: ProblemInfo, code: str) -> StagePrompt:
    return _stage(
        StageName.COMPLEXITY,
        f"""
Analyze the time and space complexity of the following solution:

PROBLEM STATEMENT:
{problem.problem_statement}

SOLUTION:
{code}

Provide a detailed analysis of:
1. Time Complexity: the Big O notation, and why in 2-3 sentences.
2. Space Complexity: the Big O notation, and why in 2-3 sentences.
""",
    )


def debug_prompt(problem: ProblemInfo, language: str) -> StagePrompt:
    return _stage(
        StageName.DEBUG,
        f"""
I'm solving this coding problem: "{problem.problem_statement}" in {language}.
I need help debugging or improving my solution. The screenshots show my code
and the errors or test cases.

Your response MUST follow this exact structure with these section headers:
### Issues Identified
- Each issue as a bullet point with a clear explanation

### Specific Improvements and Corrections
- Specific code changes needed, as bullet points

### Optimizations
- Performance optimizations, if applicable

### Explanation of Changes Needed
A clear explanation of why the changes are needed

### Key Points
- Summary bullet points of the most important takeaways

If you include code, use Markdown code blocks with a language tag (e.g. ```{language}).
""",
    )
