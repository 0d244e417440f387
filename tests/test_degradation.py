import pytest

from structgen.catalog.types import GenerationKind, ProviderKind
from structgen.core.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    GenerationCancelled,
    ProviderHTTPError,
)
from structgen.core.types import CancellationToken, GenerationRequest
from structgen.image.service import DegradationController, simplify_prompt
from structgen.llm.executor import AttemptOutcome, FallbackExecutor


PROMPT = "A detailed digital illustration of a red dragon, dramatic lighting, high quality"


@pytest.fixture
def image_catalog(make_catalog):
    return make_catalog(2, kind=GenerationKind.IMAGE, provider_kind=ProviderKind.FAL_AI)


def test_simplify_prompt_drops_descriptors_and_tidies_separators():
    prompt = (
        "A detailed digital illustration of a dragon, dramatic lighting, "
        "high quality, epic fantasy style"
    )
    assert simplify_prompt(prompt) == "A illustration of a dragon, fantasy"


def test_simplify_prompt_trims_trailing_separator():
    assert simplify_prompt("Castle gate, suitable for tabletop RPG") == "Castle gate"
    assert simplify_prompt("professional artwork of a tavern") == "artwork of a tavern"


def test_simplify_prompt_leaves_plain_prompts_alone():
    assert simplify_prompt("a red door") == "a red door"


@pytest.mark.asyncio
async def test_exhaustion_sums_attempts_over_rounds(image_catalog, telemetry):
    prompts = []

    async def invoke(candidate, request):
        prompts.append(request.prompt)
        raise ProviderHTTPError("HTTP ERROR (500)", status_code=500)

    controller = DegradationController(FallbackExecutor(telemetry), rounds=2)

    with pytest.raises(AllProvidersExhausted) as excinfo:
        await controller.generate(image_catalog, invoke, GenerationRequest(prompt=PROMPT))

    assert excinfo.value.attempts == 4
    assert len(excinfo.value.errors) == 4
    assert isinstance(excinfo.value.last_error, ProviderHTTPError)
    assert prompts[:2] == [PROMPT, PROMPT]
    assert prompts[2:] == [simplify_prompt(PROMPT)] * 2
    assert [r.round for r in telemetry.records] == [0, 0, 1, 1]


@pytest.mark.asyncio
async def test_simplified_prompt_can_succeed(image_catalog, telemetry):
    async def invoke(candidate, request):
        if "dramatic lighting" in request.prompt:
            raise ProviderHTTPError("HTTP ERROR (400)", status_code=400)
        return AttemptOutcome(f"https://img.test/{candidate.model.id}.png")

    controller = DegradationController(FallbackExecutor(telemetry), rounds=3)
    result = await controller.generate(image_catalog, invoke, GenerationRequest(prompt=PROMPT))

    assert result.url == "https://img.test/m0.png"
    assert result.attempts == 3
    assert result.prompt_used == simplify_prompt(PROMPT)
    assert result.provider_used == "P0"
    assert result.cost == 1.0


@pytest.mark.asyncio
async def test_simplified_rounds_keep_request_identity(image_catalog, telemetry):
    seen = []

    async def invoke(candidate, request):
        seen.append((request.request_id, request.system_instruction, request.prompt))
        raise ProviderHTTPError("HTTP ERROR (500)", status_code=500)

    request = GenerationRequest(prompt=PROMPT, system_instruction="Paint.", request_id="img-7")
    controller = DegradationController(FallbackExecutor(telemetry), rounds=2)
    with pytest.raises(AllProvidersExhausted):
        await controller.generate(image_catalog, invoke, request)

    assert {(rid, system) for rid, system, _ in seen} == {("img-7", "Paint.")}
    assert [prompt for _, _, prompt in seen] == [PROMPT, PROMPT] + [simplify_prompt(PROMPT)] * 2
    assert {r.request_id for r in telemetry.records} == {"img-7"}
    assert request.prompt == PROMPT


@pytest.mark.asyncio
async def test_cancellation_stops_all_rounds(image_catalog, telemetry):
    token = CancellationToken()
    calls = []

    async def invoke(candidate, request):
        calls.append(request.prompt)
        token.cancel()
        raise ProviderHTTPError("HTTP ERROR (500)", status_code=500)

    controller = DegradationController(FallbackExecutor(telemetry), rounds=3)
    with pytest.raises(GenerationCancelled):
        await controller.generate(
            image_catalog, invoke, GenerationRequest(prompt=PROMPT), cancel=token
        )

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_configuration_error_stops_all_rounds(image_catalog, telemetry):
    async def invoke(candidate, request):
        raise ConfigurationError("credential missing")

    controller = DegradationController(FallbackExecutor(telemetry), rounds=3)
    with pytest.raises(ConfigurationError):
        await controller.generate(image_catalog, invoke, GenerationRequest(prompt=PROMPT))


def test_rounds_must_be_positive():
    with pytest.raises(ValueError):
        DegradationController(FallbackExecutor(), rounds=0)
