"""
Response extractors.

Pure functions that turn free-form model text into the structures the
pipeline carries between stages: bullet lists, fenced code, pseudocode,
time/space complexity and the problem JSON of the extraction stage.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from solveflow.core.types import ComplexityResult, ProblemInfo
from solveflow.utils.errors import ProblemParseError

COMPLEXITY_NOT_AVAILABLE = "Complexity not available"
DEBUG_CODE_PLACEHOLDER = "// Debug mode - see analysis below"
DEBUG_COMPLEXITY = "N/A - Debug mode"
DEBUG_DEFAULT_THOUGHTS = ("Debug analysis based on your screenshots",)

MAX_FALLBACK_FRAGMENTS = 5
MAX_DEBUG_THOUGHTS = 5

# =============================================================================
# Patterns
# =============================================================================

# "-", "*", "•" or "N." at line start; "**bold**" and "3.14" are not markers
_BULLET_RE = re.compile(r"^[ \t]*(?:[-•]|\*(?!\*)|\d+\.(?!\d))[ \t]*(.*)$", re.MULTILINE)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+|\n")
_HAS_WORD_RE = re.compile(r"\w")

# Tagged form first so a language tag is never returned as code
_FENCE_RE = re.compile(r"```[^\n`]*\n(.*?)```|```(.*?)```", re.DOTALL)
_PSEUDO_FENCE_RE = re.compile(
    r"```[ \t]*(?:pseudo[ -]?code|algorithm|plaintext)[ \t]*\n(.*?)```",
    re.DOTALL | re.IGNORECASE,
)

_PSEUDO_LABEL_RE = re.compile(
    r"^[ \t]*(?:\*\*)?(?:pseudo[ -]?code|algorithm)(?:\*\*)?[ \t]*:(?:\*\*)?[ \t]*(.*?)"
    r"(?=^[ \t]*(?:\*\*)?(?-i:[A-Z])[A-Za-z ]*:|^[ \t]*#|\Z)",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)
_PSEUDO_HEADING_RE = re.compile(
    r"^[ \t]*#{1,6}[ \t]*(?:pseudo[ -]?code|algorithm)\b[^\n]*\n(.*?)(?=^[ \t]*#|\Z)",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)
_NUMBERED_STEP_RE = re.compile(r"^[ \t]*\d+\.[ \t]+\S.*$", re.MULTILINE)

_COMPLEXITY_LABEL_RE = re.compile(
    r"^[ \t]*(?:[-*•][ \t]*|\d+\.[ \t]*)?(?:\*\*)?"
    r"(time|space)(?:[- ]?complexity\b(?:\*\*)?[ \t]*(?:[:\-\u2013\u2014])?|(?:\*\*)?[ \t]*:)(?:\*\*)?",
    re.MULTILINE | re.IGNORECASE,
)
_BIG_O_RE = re.compile(r"O\((?:[^()]|\([^()]*\))+\)")
_WHITESPACE_RE = re.compile(r"\s+")

_JSON_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)

_DEBUG_HEADINGS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"issues identified|problems found|bugs found", re.IGNORECASE), "## Issues Identified"),
    (re.compile(r"code improvements|improvements|suggested changes", re.IGNORECASE), "## Code Improvements"),
    (re.compile(r"optimizations|performance improvements", re.IGNORECASE), "## Optimizations"),
    (re.compile(r"explanation|detailed analysis", re.IGNORECASE), "## Explanation"),
)


# =============================================================================
# Bullets and code blocks
# =============================================================================


def extract_bullets(text: str) -> list[str]:
    """
    Extract list items from model output.

    Lines starting with ``-``, ``*``, ``•`` or ``N.`` yield their trailing
    content, order preserved. Without any such line the text is split on
    sentence boundaries and at most five fragments are returned.

    Args:
        text: Raw model response

    Returns:
        List of stripped items (possibly empty for empty input)
    """
    items = [match.group(1).strip() for match in _BULLET_RE.finditer(text)]
    items = [item for item in items if item]
    if items:
        return items

    fragments = [part.strip() for part in _SENTENCE_SPLIT_RE.split(text)]
    fragments = [part for part in fragments if part]
    return fragments[:MAX_FALLBACK_FRAGMENTS]


def extract_fenced_block(text: str) -> str | None:
    """Return the trimmed inner text of the first fenced block, or None."""
    match = _FENCE_RE.search(text)
    if match is None:
        return None
    inner = match.group(1) if match.group(1) is not None else match.group(2)
    return inner.strip()


def extract_code(text: str) -> str:
    """First fenced block, or the whole trimmed response when nothing is fenced."""
    block = extract_fenced_block(text)
    if block:
        return block
    return text.strip()


# =============================================================================
# Pseudocode
# =============================================================================


def extract_pseudocode(text: str) -> str:
    """
    Extract the pseudocode of an approach response.

    Strategies, first non-empty wins:
        1. fenced block tagged pseudocode/algorithm/plaintext, else any fenced block
        2. ``Pseudocode:`` / ``Algorithm:`` label up to the next capitalized label
        3. ``## Pseudocode`` / ``## Algorithm`` section up to the next heading
        4. run of numbered steps

    Returns:
        The pseudocode, or "" when no strategy matches
    """
    match = _PSEUDO_FENCE_RE.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()

    block = extract_fenced_block(text)
    if block:
        return block

    for pattern in (_PSEUDO_LABEL_RE, _PSEUDO_HEADING_RE):
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()

    steps = [line.strip() for line in _NUMBERED_STEP_RE.findall(text)]
    return "\n".join(steps)


# =============================================================================
# Complexity
# =============================================================================


def format_complexity(span: str | None) -> str:
    """
    Normalize one complexity span.

    - absent span: ``"Complexity not available"``
    - Big-O with an explanation marker (``-`` or ``because``): as-is
    - Big-O without a marker: ``"O(..) - rest"``, or the bare ``"O(..)"``
      when nothing else was said
    - no Big-O at all: the text as-is
    """
    if span is None:
        return COMPLEXITY_NOT_AVAILABLE
    text = _WHITESPACE_RE.sub(" ", span).strip()
    if not text:
        return COMPLEXITY_NOT_AVAILABLE

    match = _BIG_O_RE.search(text)
    if match is None:
        return text
    if "-" in text or "because" in text.lower():
        return text

    notation = match.group(0)
    rest = (text[: match.start()] + text[match.end() :]).strip()
    rest = rest.lstrip(".,;:)").strip()
    if not rest:
        return notation
    return f"{notation} - {rest}"


def _complexity_spans(text: str) -> dict[str, str]:
    labels = list(_COMPLEXITY_LABEL_RE.finditer(text))
    spans: dict[str, str] = {}
    for index, label in enumerate(labels):
        kind = label.group(1).lower()
        end = labels[index + 1].start() if index + 1 < len(labels) else len(text)
        # First label of each kind wins
        spans.setdefault(kind, text[label.end() : end].strip(" \t\n*"))
    return spans


def extract_complexity(text: str) -> ComplexityResult:
    """
    Locate the time and space complexity of an analysis response.

    Example:
        >>> extract_complexity("Time Complexity: O(n log n) because of sorting\\n"
        ...                    "Space Complexity: O(1)")
        ComplexityResult(time_complexity='O(n log n) because of sorting',
                         space_complexity='O(1)')
    """
    spans = _complexity_spans(text)
    return ComplexityResult(
        time_complexity=format_complexity(spans.get("time")),
        space_complexity=format_complexity(spans.get("space")),
    )


# =============================================================================
# Problem extraction
# =============================================================================


def parse_problem_info(text: str) -> ProblemInfo:
    """
    Decode the extraction stage answer into a ``ProblemInfo``.

    Raises:
        ProblemParseError: If the text holds no usable JSON object
    """
    cleaned = _JSON_FENCE_RE.sub("", text.strip()).strip()
    if not cleaned:
        raise ProblemParseError(raw_text=text)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ProblemParseError(raw_text=text) from None
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise ProblemParseError(raw_text=text) from e

    if not isinstance(data, dict):
        raise ProblemParseError(raw_text=text)

    try:
        return ProblemInfo.model_validate(data)
    except PydanticValidationError as e:
        raise ProblemParseError("problem info is missing a problem statement", raw_text=text) from e


# =============================================================================
# Debug critique
# =============================================================================


@dataclass(frozen=True)
class DebugExtraction:
    code: str
    analysis: str
    thoughts: list[str]


def format_debug_analysis(text: str) -> str:
    """Add Markdown headings to a critique that came back without any."""
    if "# " in text or "## " in text:
        return text
    formatted = text
    for pattern, heading in _DEBUG_HEADINGS:
        formatted = pattern.sub(heading, formatted, count=1)
    return formatted


def extract_debug(text: str) -> DebugExtraction:
    """Split a debug critique into code, formatted analysis and key thoughts."""
    code = extract_fenced_block(text) or DEBUG_CODE_PLACEHOLDER
    analysis = format_debug_analysis(text)

    thoughts = [
        match.group(1).strip()
        for match in _BULLET_RE.finditer(analysis)
        if _HAS_WORD_RE.search(match.group(1))
    ][:MAX_DEBUG_THOUGHTS]
    if not thoughts:
        thoughts = list(DEBUG_DEFAULT_THOUGHTS)

    return DebugExtraction(code=code, analysis=analysis, thoughts=thoughts)
