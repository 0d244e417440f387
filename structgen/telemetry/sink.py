"""Append-only attempt telemetry.

Architectural role:
    Receives one `AttemptRecord` per provider call. Records are consumed later
    by an external analytics collaborator.

Failure model:
    Telemetry is best-effort. Callers go through `safe_append`, which logs and
    discards any sink failure so losing observability never blocks or fails a
    generation request.

Concurrency:
    Every sink here is safe for concurrent writers (threads and coroutines);
    writes are serialized by a `threading.Lock` and never held across awaits.
"""

import atexit
import json
import logging
import os
import threading
from typing import Protocol

from structgen.core.types import AttemptRecord


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    def append(self, record: AttemptRecord) -> None:
        ...


def safe_append(sink: TelemetrySink | None, record: AttemptRecord) -> None:
    """Append to `sink`, swallowing every sink failure."""
    if sink is None:
        return
    try:
        sink.append(record)
    except Exception:
        logger.warning(
            "Telemetry append failed for %s/%s (request %s); record dropped",
            record.provider_name,
            record.model_name,
            record.request_id,
            exc_info=True,
        )


class InMemoryTelemetrySink:
    """Thread-safe in-process record list."""

    def __init__(self) -> None:
        self._records: list[AttemptRecord] = []
        self._lock = threading.Lock()

    def append(self, record: AttemptRecord) -> None:
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> list[AttemptRecord]:
        with self._lock:
            return list(self._records)

    def for_request(self, request_id: str) -> list[AttemptRecord]:
        return [r for r in self.records if r.request_id == request_id]


class JsonlTelemetrySink:
    """Write one JSON object per line to a local file.

    The file is opened once, on the first record, and kept open. Lines are
    buffered in memory and flushed to disk every `flush_every` records, on
    `flush()`/`close()`, and at interpreter exit, so `append` does no
    per-record file-system calls on the event loop.
    """

    def __init__(self, path: str, flush_every: int = 32) -> None:
        if flush_every < 1:
            raise ValueError("flush_every must be >= 1")
        self.path = path
        self.flush_every = flush_every
        self._lock = threading.Lock()
        self._file = None
        self._pending = 0
        atexit.register(self.close)

    def append(self, record: AttemptRecord) -> None:
        line = json.dumps(record.to_dict(), ensure_ascii=False)
        with self._lock:
            if self._file is None:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                self._file = open(self.path, "a", encoding="utf-8")
            self._file.write(line + "\n")
            self._pending += 1
            if self._pending >= self.flush_every:
                self._flush_locked()

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def close(self) -> None:
        with self._lock:
            if self._file is None:
                return
            self._flush_locked()
            self._file.close()
            self._file = None

    def _flush_locked(self) -> None:
        if self._file is not None and self._pending:
            self._file.flush()
            self._pending = 0


class LoggingTelemetrySink:
    """Emit each record through the standard logging system."""

    def __init__(self, logger_name: str = "structgen.telemetry") -> None:
        self._logger = logging.getLogger(logger_name)

    def append(self, record: AttemptRecord) -> None:
        self._logger.info(
            "attempt request=%s provider=%s model=%s success=%s category=%s "
            "duration_ms=%d tokens=%d cost=%.6f",
            record.request_id,
            record.provider_name,
            record.model_name,
            record.success,
            record.error_category,
            record.duration_ms,
            record.total_tokens,
            record.cost,
        )


class FanOutTelemetrySink:
    """Forward each record to several sinks, isolating their failures."""

    def __init__(self, sinks: list[TelemetrySink]) -> None:
        self.sinks = list(sinks)

    def append(self, record: AttemptRecord) -> None:
        for sink in self.sinks:
            safe_append(sink, record)

    def close(self) -> None:
        """Close every sink that holds a resource."""
        for sink in self.sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                close()
