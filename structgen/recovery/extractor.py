"""Pattern extraction and scoring of JSON objects embedded in prose.

Extraction strategy:
    An ordered set of boundary heuristics locates object-shaped substrings:
        1. object ending at end of text, before a fence close or a blank line
        2. object followed by a newline and a capitalized sentence
        3. object ending at end of text (trailing whitespace allowed)
        4. greedy first `{` to last `}` fallback
    Every match is parsed independently. Matches that fail to parse are
    discarded silently.

Scan bounds:
    Each pattern is matched at the first `{` and then at the first `{` after
    each match, never at every brace. A pattern accepts a `}` based only on
    the text that follows it, so a failed match at one `{` means no later `{`
    can match either and the scan stops there. Truncated output with
    thousands of nested objects is therefore scanned in linear time.

Scoring logic:
    - `OBJECT_BONUS` when the candidate parses to an object.
    - `FIELD_BONUS` per expected top-level field present.
    - `MAJORITY_BONUS` once more than half of the expected fields are present.
    - Length bonus `len(text) / 100`, capped at `LENGTH_BONUS_CAP`.
    Highest score wins; the first candidate wins ties.

Determinism:
    Pure functions of the input text and field checklist. No I/O, no state.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator


logger = logging.getLogger(__name__)

OBJECT_BONUS = 10.0
FIELD_BONUS = 5.0
MAJORITY_BONUS = 20.0
LENGTH_BONUS_CAP = 10.0

BOUNDARY_PATTERNS = (
    re.compile(r"\{[\s\S]*?\}(?=\s*$|\s*```|\s*\n\s*\n)"),
    re.compile(r"\{[\s\S]*?\}(?=\s*\n[A-Z])"),
    re.compile(r"\{[\s\S]*?\}(?=\s*$)"),
    re.compile(r"\{[\s\S]*\}"),
)


@dataclass(frozen=True)
class ScoredCandidate:
    value: Any
    text: str
    score: float


def score_candidate(parsed: Any, text: str, expected_fields: Iterable[str] = ()) -> float:
    """Score one parsed candidate against the expected field checklist."""
    fields = tuple(expected_fields)
    score = 0.0

    if isinstance(parsed, dict):
        score += OBJECT_BONUS
        present = sum(1 for field in fields if field in parsed)
        score += FIELD_BONUS * present
        if fields and present * 2 > len(fields):
            score += MAJORITY_BONUS

    score += min(len(text) / 100, LENGTH_BONUS_CAP)
    return score


def max_score(expected_fields: Iterable[str] = ()) -> float:
    """Upper bound of `score_candidate` for a checklist."""
    fields = tuple(expected_fields)
    bonus = MAJORITY_BONUS if fields else 0.0
    return OBJECT_BONUS + FIELD_BONUS * len(fields) + bonus + LENGTH_BONUS_CAP


def find_candidates(text: str) -> list[str]:
    """Return distinct object-shaped substrings in heuristic order."""
    seen: set[str] = set()
    out: list[str] = []

    for pattern in BOUNDARY_PATTERNS:
        for candidate in _scan(pattern, text):
            candidate = candidate.strip()
            if candidate and candidate not in seen:
                seen.add(candidate)
                out.append(candidate)

    return out


def _scan(pattern: re.Pattern, text: str) -> Iterator[str]:
    pos = text.find("{")
    while pos != -1:
        match = pattern.match(text, pos)
        if match is None:
            return
        yield match.group(0)
        pos = text.find("{", match.end())
