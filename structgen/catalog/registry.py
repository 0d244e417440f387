"""Provider/model registry and catalog snapshot construction.

Architectural role:
    Replaces a process-global provider cache with an explicitly constructed
    `ProviderRegistry` that is handed to the orchestrator. The registry reads
    rows from a `ProviderSource` collaborator, keeps the last loaded rows, and
    builds immutable `Catalog` snapshots per generation kind.

Ordering:
    Providers ascend by (`priority`, `id`). Within a provider, models descend by
    `cost_rate` (higher-cost, typically higher-capability models first) with
    ties broken by ascending model `id`. The resulting order is a pure function
    of the loaded rows.

Concurrency:
    `reload()` swaps the cached rows in a single assignment. Snapshots already
    handed to in-flight requests are tuples and are never mutated.

Failure behavior:
    An empty candidate list raises `ConfigurationError`; it is never treated as a
    retryable provider failure.
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ValidationError

from structgen.catalog.types import (
    Candidate,
    Catalog,
    GenerationKind,
    ModelDescriptor,
    ProviderDescriptor,
)
from structgen.core.errors import ConfigurationError


logger = logging.getLogger(__name__)


class ProviderSource(Protocol):
    """Read interface of the administrative catalog collaborator."""

    def list_active_providers(self) -> list[ProviderDescriptor]:
        ...

    def list_active_models(self, kind: GenerationKind) -> list[ModelDescriptor]:
        ...


class InMemoryProviderSource:
    """Provider source backed by in-process descriptor lists."""

    def __init__(
        self,
        providers: list[ProviderDescriptor] | None = None,
        models: list[ModelDescriptor] | None = None,
    ) -> None:
        self.providers = list(providers or [])
        self.models = list(models or [])

    def list_active_providers(self) -> list[ProviderDescriptor]:
        return [p for p in self.providers if p.active]

    def list_active_models(self, kind: GenerationKind) -> list[ModelDescriptor]:
        return [m for m in self.models if m.active and m.kind == kind]


class _CatalogFile(BaseModel):
    providers: list[ProviderDescriptor] = []
    models: list[ModelDescriptor] = []


class JsonFileProviderSource:
    """Provider source reading a JSON export of the admin catalog.

    Expected document shape::

        {"providers": [{...ProviderDescriptor...}],
         "models":    [{...ModelDescriptor...}]}

    The file is re-read on every call so `ProviderRegistry.reload()` observes
    edits made by the admin tooling.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> _CatalogFile:
        if not self.path.exists():
            raise ConfigurationError(f"Catalog file not found: {self.path}")
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return _CatalogFile.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as exc:
            raise ConfigurationError(f"Invalid catalog file {self.path}: {exc}") from exc

    def list_active_providers(self) -> list[ProviderDescriptor]:
        return [p for p in self._read().providers if p.active]

    def list_active_models(self, kind: GenerationKind) -> list[ModelDescriptor]:
        return [m for m in self._read().models if m.active and m.kind == kind]


@dataclass(frozen=True)
class _Rows:
    providers: tuple[ProviderDescriptor, ...]
    models: dict[GenerationKind, tuple[ModelDescriptor, ...]]


def order_candidates(
    providers: list[ProviderDescriptor],
    models: list[ModelDescriptor],
) -> tuple[Candidate, ...]:
    """Join and order providers and models into catalog candidates."""
    ordered_providers = sorted(
        (p for p in providers if p.active),
        key=lambda p: (p.priority, p.id),
    )

    candidates: list[Candidate] = []
    for provider in ordered_providers:
        provider_models = sorted(
            (m for m in models if m.active and m.provider_id == provider.id),
            key=lambda m: (-m.cost_rate, m.id),
        )
        candidates.extend(Candidate(provider=provider, model=m) for m in provider_models)

    return tuple(candidates)


class ProviderRegistry:
    """Cached, explicitly reloadable view over a `ProviderSource`.

    Args:
        source: Catalog collaborator.

    Behavior:
        - Rows are loaded lazily on the first `catalog()` call.
        - `reload()` re-reads providers and every generation kind's models.
    """

    def __init__(self, source: ProviderSource) -> None:
        self.source = source
        self._rows: _Rows | None = None
        self._lock = threading.Lock()

    def reload(self) -> None:
        """Re-read every row from the source and replace the cached rows."""
        providers = tuple(self.source.list_active_providers())
        models = {
            kind: tuple(self.source.list_active_models(kind))
            for kind in GenerationKind
        }
        with self._lock:
            self._rows = _Rows(providers=providers, models=models)

        logger.info(
            "Catalog reloaded: %d providers, %d chat models, %d image models",
            len(providers),
            len(models[GenerationKind.CHAT]),
            len(models[GenerationKind.IMAGE]),
        )

    def catalog(self, kind: GenerationKind) -> Catalog:
        """Return the ordered candidate snapshot for `kind`.

        Raises:
            ConfigurationError: If no active candidate exists.
        """
        rows = self._rows
        if rows is None:
            self.reload()
            rows = self._rows

        candidates = order_candidates(list(rows.providers), list(rows.models.get(kind, ())))
        if not candidates:
            raise ConfigurationError(f"No active {kind.value} providers/models configured")

        return Catalog(kind=kind, candidates=candidates)
