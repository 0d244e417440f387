import json

import pytest

from structgen.api import cli
from structgen.catalog.registry import InMemoryProviderSource, ProviderRegistry
from structgen.core.errors import AllProvidersExhausted
from structgen.core.types import (
    ADVENTURE_SHAPE,
    ImageResult,
    RecoveredDocument,
    ResponseKind,
    Strategy,
)


class FakeOrchestrator:
    def __init__(self, registry=None, error=None):
        self.registry = registry
        self.error = error
        self.requests = []
        self.closed = False

    def generate_structured_sync(self, request):
        self.requests.append(request)
        if self.error:
            raise self.error
        return RecoveredDocument(value={"title": "X"}, strategy=Strategy.DIRECT, confidence=1.0)

    def generate_image_sync(self, request):
        self.requests.append(request)
        return ImageResult(url="https://img.test/1.png", provider_used="Fal.ai",
                           model_used="flux", cost=0.015, attempts=1, prompt_used=request.prompt)

    def close(self):
        self.closed = True


@pytest.fixture
def install(monkeypatch):
    def _install(fake):
        monkeypatch.setattr(cli, "build_orchestrator", lambda config: fake)
        return fake

    return _install


def test_structured_prints_json(install, capsys):
    fake = install(FakeOrchestrator())

    code = cli.main([
        "structured", "A crypt crawl",
        "--shape", "adventure", "--temperature", "0.2", "--max-tokens", "500",
    ])

    assert code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["value"] == {"title": "X"}
    assert output["strategy"] == "direct"

    [request] = fake.requests
    assert request.target_shape == ADVENTURE_SHAPE
    assert request.tuning.temperature == 0.2
    assert request.tuning.max_tokens == 500
    assert request.response_kind == ResponseKind.STRUCTURED


def test_text_flag_and_system(install):
    fake = install(FakeOrchestrator())
    cli.main(["structured", "hello", "--text", "--system", "Be brief."])
    [request] = fake.requests
    assert request.response_kind == ResponseKind.TEXT
    assert request.system_instruction == "Be brief."
    assert request.tuning is None


def test_image_command(install, capsys):
    install(FakeOrchestrator())
    assert cli.main(["image", "a dragon"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["url"] == "https://img.test/1.png"
    assert output["prompt_used"] == "a dragon"


def test_catalog_command(install, capsys, make_provider, make_model):
    registry = ProviderRegistry(InMemoryProviderSource(
        providers=[make_provider(id="a")],
        models=[make_model(id="m1", provider_id="a")],
    ))
    install(FakeOrchestrator(registry=registry))

    assert cli.main(["catalog", "--kind", "chat"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert output["candidates"] == [
        {"provider": "A", "model": "m1-wire", "priority": 0, "cost_rate": 1.0},
    ]


def test_orchestration_error_exit_code(install, capsys):
    install(FakeOrchestrator(error=AllProvidersExhausted("All 3 provider attempts failed", 3)))

    assert cli.main(["structured", "x"]) == 1
    assert capsys.readouterr().err.strip() == (
        "AllProvidersExhausted: All 3 provider attempts failed"
    )


def test_invalid_environment(monkeypatch, capsys):
    monkeypatch.setenv("STRUCTGEN_TIMEOUT_SECONDS", "soon")
    assert cli.main(["structured", "x"]) == 1
    assert capsys.readouterr().err.startswith("ConfigurationMissing:")


def test_subcommand_required():
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 2


def test_preference_flags_reach_the_request(install):
    fake = install(FakeOrchestrator())
    cli.main(["image", "a dragon", "--provider", "fal", "--model", "flux"])
    [request] = fake.requests
    assert request.preferred_provider_id == "fal"
    assert request.preferred_model_id == "flux"


def test_orchestrator_is_closed_after_errors(install):
    fake = install(FakeOrchestrator(error=AllProvidersExhausted("down", 1)))
    assert cli.main(["structured", "x"]) == 1
    assert fake.closed
