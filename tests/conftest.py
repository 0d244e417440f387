import pytest

from structgen.catalog.types import (
    Candidate,
    Catalog,
    GenerationKind,
    ModelDescriptor,
    ProviderDescriptor,
    ProviderKind,
)
from structgen.telemetry.sink import InMemoryTelemetrySink


@pytest.fixture
def make_provider():
    def _make(id="p1", kind=ProviderKind.OPENAI, priority=0, **overrides):
        fields = {
            "id": id,
            "name": id.upper(),
            "kind": kind,
            "priority": priority,
            "base_url": f"https://{id}.test",
        }
        fields.update(overrides)
        return ProviderDescriptor(**fields)

    return _make


@pytest.fixture
def make_model():
    def _make(id="m1", provider_id="p1", cost_rate=1.0, **overrides):
        fields = {
            "id": id,
            "provider_id": provider_id,
            "model_name": f"{id}-wire",
            "cost_rate": cost_rate,
        }
        fields.update(overrides)
        return ModelDescriptor(**fields)

    return _make


@pytest.fixture
def make_catalog(make_provider, make_model):
    """Build a catalog of one model per provider, in the given order."""

    def _make(count=3, kind=GenerationKind.CHAT, provider_kind=ProviderKind.OPENAI):
        candidates = tuple(
            Candidate(
                provider=make_provider(id=f"p{i}", kind=provider_kind, priority=i),
                model=make_model(id=f"m{i}", provider_id=f"p{i}", kind=kind),
            )
            for i in range(count)
        )
        return Catalog(kind=kind, candidates=candidates)

    return _make


@pytest.fixture
def telemetry():
    return InMemoryTelemetrySink()
