"""Structured output recovery pipeline.

Architectural role:
    Converts one provider's raw text into a `RecoveredDocument` whose `strategy`
    and `confidence` tell downstream collaborators how much to trust it.

Pipeline:
    1. Direct parse            -> `direct`, confidence 1.0
    2. Pattern extraction      -> scored candidates
    3. Best-candidate scoring  -> `pattern-extracted`
    4. Heuristic repair        -> `heuristic-repaired`
    5. Raw-text fallback       -> `raw-text` (text requests without any `{`)
    6. `UnrecoverableOutput`

Failure handling:
    Steps 2-4 are exploratory: parse failures inside them are swallowed and the
    pipeline moves on. Only the final fallthrough raises.

Determinism:
    Pure function of `(raw_text, response_kind, target_shape)`.
"""

import json
import logging
from typing import Any

from structgen.core.errors import MalformedOutputError, UnrecoverableOutput
from structgen.core.types import RecoveredDocument, ResponseKind, Strategy, TargetShape
from structgen.recovery.extractor import extract_best, max_score, score_candidate
from structgen.recovery.repair import repair_json


logger = logging.getLogger(__name__)

RAW_TEXT_CONFIDENCE = 0.5


def _parse_structured(text: str) -> Any:
    """Parse text as a JSON object or array.

    Raises:
        MalformedOutputError: On syntax errors or scalar JSON values.
    """
    try:
        value = json.loads(text)
    except ValueError as exc:
        raise MalformedOutputError(str(exc)) from exc

    if not isinstance(value, (dict, list)):
        raise MalformedOutputError(f"expected object or array, got {type(value).__name__}")
    return value


def _scaled_confidence(base: float, span: float, score: float, ceiling: float) -> float:
    ratio = min(score / ceiling, 1.0) if ceiling > 0 else 0.0
    return round(base + span * ratio, 3)


def recover(
    raw_text: str,
    response_kind: ResponseKind = ResponseKind.STRUCTURED,
    target_shape: TargetShape | None = None,
) -> RecoveredDocument:
    """Recover a structured document from raw provider text.

    Args:
        raw_text: Normalized provider output.
        response_kind: `text` permits the raw-text fallback.
        target_shape: Field checklist used by candidate scoring.

    Returns:
        `RecoveredDocument` with strategy and confidence.

    Raises:
        UnrecoverableOutput: When every recovery step fails.
    """
    text = raw_text or ""
    if not text.strip():
        raise UnrecoverableOutput("Provider returned empty output", raw_text=text)

    fields = target_shape.expected_fields if target_shape else ()
    ceiling = max_score(fields)

    try:
        value = _parse_structured(text)
        return RecoveredDocument(value=value, strategy=Strategy.DIRECT, confidence=1.0)
    except MalformedOutputError:
        logger.debug("Direct parse failed; trying pattern extraction")

    best = extract_best(text, fields)
    if best is not None:
        logger.debug("Pattern extraction succeeded with score %.2f", best.score)
        return RecoveredDocument(
            value=best.value,
            strategy=Strategy.PATTERN_EXTRACTED,
            confidence=_scaled_confidence(0.6, 0.3, best.score, ceiling),
        )

    repaired = repair_json(text)
    if repaired is not None:
        try:
            value = _parse_structured(repaired)
            score = score_candidate(value, repaired, fields)
            logger.debug("Heuristic repair succeeded with score %.2f", score)
            return RecoveredDocument(
                value=value,
                strategy=Strategy.HEURISTIC_REPAIRED,
                confidence=_scaled_confidence(0.3, 0.3, score, ceiling),
            )
        except MalformedOutputError as exc:
            logger.debug("Heuristic repair did not yield valid JSON: %s", exc)

    if response_kind == ResponseKind.TEXT and "{" not in text:
        return RecoveredDocument(
            value=text,
            strategy=Strategy.RAW_TEXT,
            confidence=RAW_TEXT_CONFIDENCE,
        )

    shape_name = target_shape.name if target_shape else "structured output"
    raise UnrecoverableOutput(
        f"Could not recover {shape_name} from {len(text)} chars of provider output",
        raw_text=text,
    )
