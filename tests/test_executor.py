import asyncio

import pytest

from structgen.core.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    GenerationCancelled,
    ProviderHTTPError,
    ProviderTimeout,
)
from structgen.core.types import CancellationToken
from structgen.llm.executor import AttemptOutcome, FallbackExecutor


def _scripted(script):
    """Return an invoke whose behavior per provider id comes from `script`."""
    calls = []

    async def invoke(candidate):
        calls.append(candidate.provider.id)
        action = script[candidate.provider.id]
        if isinstance(action, BaseException):
            raise action
        if callable(action):
            return await action()
        return action

    return invoke, calls


async def _hang():
    await asyncio.sleep(10)


@pytest.mark.asyncio
async def test_failover_reaches_third_provider(make_catalog, telemetry):
    invoke, calls = _scripted({
        "p0": ProviderHTTPError("P0 HTTP ERROR (503 Service Unavailable)", status_code=503),
        "p1": ProviderTimeout("P1 REQUEST TIMED OUT"),
        "p2": AttemptOutcome("raw text", total_tokens=1_000, response_size=64),
    })
    executor = FallbackExecutor(telemetry, max_attempts=3)

    result = await executor.execute(make_catalog(3), invoke, "req-1")

    assert result.value == "raw text"
    assert result.candidate.provider.id == "p2"
    assert result.attempts == 3
    assert calls == ["p0", "p1", "p2"]

    records = telemetry.records
    assert [r.success for r in records] == [False, False, True]
    assert [r.error_category for r in records] == ["http_status", "timeout", None]
    assert all(r.request_id == "req-1" for r in records)
    assert records[2].total_tokens == 1_000
    assert records[2].cost == pytest.approx(0.001)
    assert records[2] is result.attempt


@pytest.mark.asyncio
async def test_stops_at_first_success(make_catalog, telemetry):
    invoke, calls = _scripted({
        "p0": AttemptOutcome("first"),
        "p1": AttemptOutcome("second"),
    })
    result = await FallbackExecutor(telemetry).execute(make_catalog(2), invoke, "req")
    assert result.value == "first"
    assert calls == ["p0"]
    assert len(telemetry.records) == 1


@pytest.mark.asyncio
async def test_bounded_prefix_and_exhaustion(make_catalog, telemetry):
    invoke, calls = _scripted({
        f"p{i}": ProviderHTTPError(f"P{i} HTTP ERROR (500)", status_code=500)
        for i in range(5)
    })

    with pytest.raises(AllProvidersExhausted) as excinfo:
        await FallbackExecutor(telemetry, max_attempts=3).execute(make_catalog(5), invoke, "req")

    assert calls == ["p0", "p1", "p2"]
    assert excinfo.value.attempts == 3
    assert len(excinfo.value.errors) == 3
    assert isinstance(excinfo.value.last_error, ProviderHTTPError)
    assert len(telemetry.records) == 3


@pytest.mark.asyncio
async def test_per_attempt_timeout(make_catalog, telemetry):
    invoke, calls = _scripted({"p0": _hang, "p1": AttemptOutcome("ok")})

    executor = FallbackExecutor(telemetry, timeout_seconds=0.05)
    result = await executor.execute(make_catalog(2), invoke, "req")

    assert result.value == "ok"
    assert telemetry.records[0].error_category == "timeout"


@pytest.mark.asyncio
async def test_cancellation_token_aborts_in_flight_call(make_catalog, telemetry):
    invoke, calls = _scripted({"p0": _hang, "p1": AttemptOutcome("never")})
    token = CancellationToken()

    async def cancel_soon():
        await asyncio.sleep(0.05)
        token.cancel()

    canceller = asyncio.create_task(cancel_soon())
    with pytest.raises(GenerationCancelled) as excinfo:
        await FallbackExecutor(telemetry, timeout_seconds=5).execute(
            make_catalog(2), invoke, "req", cancel=token
        )
    await canceller

    assert excinfo.value.tag == "Cancelled"
    assert excinfo.value.attempts == 1
    assert calls == ["p0"]
    [record] = telemetry.records
    assert record.error_category == "cancelled"
    assert not record.success


@pytest.mark.asyncio
async def test_already_cancelled_token_makes_no_calls(make_catalog, telemetry):
    invoke, calls = _scripted({"p0": AttemptOutcome("x")})
    token = CancellationToken()
    token.cancel()

    with pytest.raises(GenerationCancelled):
        await FallbackExecutor(telemetry).execute(make_catalog(1), invoke, "req", cancel=token)

    assert calls == []
    assert telemetry.records == []


@pytest.mark.asyncio
async def test_task_cancellation_is_recorded_and_propagated(make_catalog, telemetry):
    invoke, _ = _scripted({"p0": _hang})
    task = asyncio.create_task(
        FallbackExecutor(telemetry, timeout_seconds=5).execute(make_catalog(1), invoke, "req")
    )
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    [record] = telemetry.records
    assert record.error_category == "cancelled"


@pytest.mark.asyncio
async def test_configuration_error_is_fatal(make_catalog, telemetry):
    invoke, calls = _scripted({
        "p0": ConfigurationError("P0 credential missing"),
        "p1": AttemptOutcome("unreached"),
    })

    with pytest.raises(ConfigurationError):
        await FallbackExecutor(telemetry).execute(make_catalog(2), invoke, "req")

    assert calls == ["p0"]
    assert telemetry.records == []


@pytest.mark.asyncio
async def test_unexpected_exception_counts_as_failed_attempt(make_catalog, telemetry):
    invoke, _ = _scripted({"p0": ValueError("bad"), "p1": AttemptOutcome("ok")})

    result = await FallbackExecutor(telemetry).execute(make_catalog(2), invoke, "req")

    assert result.value == "ok"
    assert telemetry.records[0].error_category == "unexpected"


@pytest.mark.asyncio
async def test_telemetry_failure_never_fails_request(make_catalog):
    class BrokenSink:
        def append(self, record):
            raise OSError("disk full")

    invoke, _ = _scripted({"p0": AttemptOutcome("ok")})
    result = await FallbackExecutor(BrokenSink()).execute(make_catalog(1), invoke, "req")
    assert result.value == "ok"
