import pytest
from pydantic import BaseModel, Field, ValidationError

from structgen.core.errors import (
    AllProvidersExhausted,
    ConfigurationError,
    GenerationCancelled,
    ProviderHTTPError,
    TransientProviderError,
    UnrecoverableOutput,
)
from structgen.core.types import GenerationRequest, ResponseKind, TargetShape, Tuning


class Npc(BaseModel):
    name: str
    game_system: str = Field(alias="gameSystem")


def test_target_shape_from_model_prefers_aliases():
    shape = TargetShape.from_model(Npc)
    assert shape.name == "Npc"
    assert shape.expected_fields == ("name", "gameSystem")


def test_request_defaults():
    first = GenerationRequest(prompt="x")
    second = GenerationRequest(prompt="x")
    assert first.response_kind == ResponseKind.STRUCTURED
    assert first.request_id != second.request_id


def test_with_prompt_keeps_request_id():
    request = GenerationRequest(prompt="long prompt")
    shorter = request.with_prompt("short")
    assert shorter.prompt == "short"
    assert shorter.request_id == request.request_id


@pytest.mark.parametrize("fields", [{"temperature": 2.5}, {"max_tokens": 0}])
def test_tuning_validation(fields):
    with pytest.raises(ValidationError):
        Tuning(**fields)


def test_error_tags():
    assert ConfigurationError("x").tag == "ConfigurationMissing"
    assert UnrecoverableOutput("x").tag == "UnrecoverableOutput"
    assert AllProvidersExhausted("x", attempts=1).tag == "AllProvidersExhausted"
    assert GenerationCancelled().tag == "Cancelled"
    assert issubclass(ProviderHTTPError, TransientProviderError)
    assert ProviderHTTPError("x", status_code=502).category == "http_status"
