"""Sequential fallback execution over a catalog snapshot.

Architectural role:
    Walks `catalog.bounded(max_attempts)` in order, running one dialect-specific
    invocation per candidate until one succeeds.

State model:
    Pending -> TryingCandidate(i) -> Succeeded
                                  -> TryingCandidate(i + 1)
                                  -> ExhaustedFailure

Attempt policy:
    - Strictly sequential; never more than one in-flight provider call.
    - Each attempt races the call, a fixed wall-clock timeout and the caller's
      cancellation token.
    - Transient failures (timeout, status, transport, envelope) append one
      failed `AttemptRecord` and advance. A candidate is never retried in place.
    - `ConfigurationError` propagates immediately.
    - A fired cancellation token aborts the in-flight call, records a
      `cancelled` attempt and raises `GenerationCancelled`. Native task
      cancellation is recorded the same way and re-raised unchanged.

Telemetry:
    Exactly one record per started attempt, written through `safe_append`.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from structgen.catalog.types import Candidate, Catalog
from structgen.core.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    GenerationCancelled,
    ProviderTimeout,
    TransientProviderError,
)
from structgen.core.types import AttemptRecord, CancellationToken
from structgen.telemetry.sink import TelemetrySink, safe_append


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptOutcome:
    """What a successful invocation hands back to the executor."""

    value: Any
    total_tokens: int = 0
    response_size: int = 0


@dataclass(frozen=True)
class ExecutionResult:
    value: Any
    candidate: Candidate
    attempt: AttemptRecord
    attempts: int


Invoke = Callable[[Candidate], Awaitable[AttemptOutcome]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FallbackExecutor:
    """Bounded, sequential, timeout-guarded candidate walker.

    Args:
        telemetry: Attempt sink (best-effort).
        max_attempts: Length of the catalog prefix that may be tried.
        timeout_seconds: Wall-clock budget per attempt.
    """

    def __init__(
        self,
        telemetry: TelemetrySink | None = None,
        max_attempts: int = 3,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.telemetry = telemetry
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds

    async def execute(
        self,
        catalog: Catalog,
        invoke: Invoke,
        request_id: str,
        cancel: CancellationToken | None = None,
        round: int = 0,
    ) -> ExecutionResult:
        """Run candidates until the first success.

        Raises:
            AllProvidersExhausted: Every candidate in the bounded prefix failed.
            GenerationCancelled: `cancel` fired.
            ConfigurationError: A candidate could not be configured.
        """
        candidates = catalog.bounded(self.max_attempts)
        errors: list[str] = []
        last_error: BaseException | None = None
        attempts = 0

        for candidate in candidates:
            if cancel is not None and cancel.cancelled:
                raise GenerationCancelled(attempts=attempts)

            attempts += 1
            started_at = _utcnow()
            logger.info(
                "Trying %s (attempt %d/%d, round %d)",
                candidate.label,
                attempts,
                len(candidates),
                round,
            )

            try:
                outcome = await self._run_with_deadline(invoke(candidate), cancel)
            except ConfigurationError:
                raise
            except GenerationCancelled:
                self._record_failure(request_id, candidate, started_at, "cancelled",
                                     "cancelled by caller", round)
                raise GenerationCancelled(attempts=attempts)
            except asyncio.CancelledError:
                self._record_failure(request_id, candidate, started_at, "cancelled",
                                     "task cancelled", round)
                raise
            except TransientProviderError as exc:
                last_error = exc
                errors.append(f"{candidate.label}: {exc}")
                self._record_failure(request_id, candidate, started_at, exc.category,
                                     str(exc), round)
                logger.warning("Failed with %s: %s", candidate.label, exc)
                continue
            except Exception as exc:
                last_error = exc
                errors.append(f"{candidate.label}: {type(exc).__name__}: {exc}")
                self._record_failure(request_id, candidate, started_at, "unexpected",
                                     f"{type(exc).__name__}: {exc}", round)
                logger.exception("Unexpected failure with %s", candidate.label)
                continue

            record = AttemptRecord(
                request_id=request_id,
                provider_id=candidate.provider.id,
                provider_name=candidate.provider.name,
                model_id=candidate.model.id,
                model_name=candidate.model.model_name,
                started_at=started_at,
                finished_at=_utcnow(),
                success=True,
                total_tokens=outcome.total_tokens,
                cost=candidate.model.cost_for(outcome.total_tokens),
                response_size=outcome.response_size,
                round=round,
            )
            safe_append(self.telemetry, record)
            logger.info("Success with %s in %d ms", candidate.label, record.duration_ms)
            return ExecutionResult(
                value=outcome.value,
                candidate=candidate,
                attempt=record,
                attempts=attempts,
            )

        raise AllProvidersExhausted(
            f"All {attempts} provider attempts failed. Last error: {last_error}",
            attempts=attempts,
            last_error=last_error,
            errors=errors,
        )

    async def _run_with_deadline(
        self,
        call: Awaitable[AttemptOutcome],
        cancel: CancellationToken | None,
    ) -> AttemptOutcome:
        task = asyncio.ensure_future(call)
        cancel_task = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        waiters = {task} if cancel_task is None else {task, cancel_task}

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if task in done:
                return task.result()
            if cancel_task is not None and cancel_task in done:
                raise GenerationCancelled()
            raise ProviderTimeout(f"no response within {self.timeout_seconds:g}s")
        finally:
            pending = [t for t in (task, cancel_task) if t is not None and not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    def _record_failure(
        self,
        request_id: str,
        candidate: Candidate,
        started_at: datetime,
        category: str,
        message: str,
        round: int,
    ) -> None:
        safe_append(
            self.telemetry,
            AttemptRecord(
                request_id=request_id,
                provider_id=candidate.provider.id,
                provider_name=candidate.provider.name,
                model_id=candidate.model.id,
                model_name=candidate.model.model_name,
                started_at=started_at,
                finished_at=_utcnow(),
                success=False,
                error_category=category,
                error_message=message,
                round=round,
            ),
        )
