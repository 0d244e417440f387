"""Image generation with prompt-simplification fallback.

Role in pipeline:
    - Receives an image request and the image catalog snapshot from the engine.
    - Runs the fallback executor over every candidate.
    - On exhaustion, simplifies the prompt and walks the same snapshot again.

Pass model:
    `rounds` is the total number of passes, the first with the caller's prompt.
    With every pass exhausted the terminal error reports the summed attempts
    (providers x rounds) and the last provider error.

Error handling strategy:
    - `AllProvidersExhausted` inside a pass triggers the next pass.
    - `GenerationCancelled` and `ConfigurationError` stop immediately.

Determinism:
    - `simplify_prompt` is a pure function.
    - Provider output remains externally non-deterministic.
"""

import logging
import re
from typing import Awaitable, Callable

from structgen.catalog.types import Candidate, Catalog
from structgen.core.errors import AllProvidersExhausted, GenerationCancelled
from structgen.core.types import CancellationToken, GenerationRequest, ImageResult
from structgen.llm.executor import AttemptOutcome, FallbackExecutor


logger = logging.getLogger(__name__)

# Applied in order, case-sensitive.
SIMPLIFICATIONS = (
    ("detailed digital illustration", "illustration"),
    ("dramatic lighting", ""),
    ("high quality", ""),
    ("professional artwork", "artwork"),
    ("epic fantasy style", "fantasy"),
    ("suitable for tabletop RPG", ""),
)

_SPACES = re.compile(r"[ \t]{2,}")
_EMPTY_SEPARATORS = re.compile(r"\s*,(\s*,)+")
_SPACE_BEFORE_COMMA = re.compile(r"\s+,")


def simplify_prompt(prompt: str) -> str:
    """Drop decorative descriptors and tidy the separators they leave behind."""
    text = prompt
    for phrase, replacement in SIMPLIFICATIONS:
        text = text.replace(phrase, replacement)

    text = _EMPTY_SEPARATORS.sub(",", text)
    text = _SPACE_BEFORE_COMMA.sub(",", text)
    text = _SPACES.sub(" ", text)
    return text.strip(" ,\t\n")


ImageInvoke = Callable[[Candidate, GenerationRequest], Awaitable[AttemptOutcome]]


class DegradationController:
    """Round-based wrapper around `FallbackExecutor` for image candidates.

    Args:
        executor: Shared fallback executor.
        rounds: Total passes over the catalog, including the first.
    """

    def __init__(self, executor: FallbackExecutor, rounds: int = 3) -> None:
        if rounds < 1:
            raise ValueError("rounds must be >= 1")
        self.executor = executor
        self.rounds = rounds

    async def generate(
        self,
        catalog: Catalog,
        invoke: ImageInvoke,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
    ) -> ImageResult:
        """Return the first image produced across all passes.

        Each pass after the first hands `invoke` a copy of `request` whose prompt
        has been simplified once more; the request id is kept.

        Raises:
            AllProvidersExhausted: Every pass failed; `attempts` is the total.
            GenerationCancelled: The caller's token fired.
            ConfigurationError: A candidate could not be configured.
        """
        current = request
        total_attempts = 0
        errors: list[str] = []
        last_error: BaseException | None = None

        for round_index in range(self.rounds):
            if round_index > 0:
                current = current.with_prompt(simplify_prompt(current.prompt))
                logger.info(
                    "All image providers failed; retrying with simplified prompt (round %d/%d)",
                    round_index + 1,
                    self.rounds,
                )

            async def _invoke(
                candidate: Candidate, _request: GenerationRequest = current
            ) -> AttemptOutcome:
                return await invoke(candidate, _request)

            try:
                result = await self.executor.execute(
                    catalog,
                    _invoke,
                    request.request_id,
                    cancel=cancel,
                    round=round_index,
                )
            except GenerationCancelled as exc:
                exc.attempts += total_attempts
                raise
            except AllProvidersExhausted as exc:
                total_attempts += exc.attempts
                errors.extend(exc.errors)
                last_error = exc.last_error
                continue

            total_attempts += result.attempts
            return ImageResult(
                url=result.value,
                provider_used=result.candidate.provider.name,
                model_used=result.candidate.model.model_name,
                cost=result.attempt.cost,
                attempts=total_attempts,
                prompt_used=current.prompt,
            )

        raise AllProvidersExhausted(
            f"All image providers failed after {self.rounds} rounds "
            f"({total_attempts} attempts). Last error: {last_error}",
            attempts=total_attempts,
            last_error=last_error,
            errors=errors,
        )
