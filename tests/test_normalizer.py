import pytest

from structgen.catalog.types import ProviderKind
from structgen.core.errors import MalformedEnvelopeError
from structgen.llm.normalizer import normalize_chat_response


def test_chat_completion_envelope():
    data = {
        "choices": [{"message": {"content": '  {"a": 1}\n'}}],
        "usage": {"total_tokens": 42},
    }
    for kind in (ProviderKind.OPENAI, ProviderKind.OPENROUTER):
        result = normalize_chat_response(kind, data)
        assert result.text == '{"a": 1}'
        assert result.total_tokens == 42


def test_message_envelope():
    data = {
        "content": [{"type": "text", "text": "hello"}],
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }
    result = normalize_chat_response(ProviderKind.ANTHROPIC, data)
    assert result.text == "hello"
    assert result.total_tokens == 15


def test_candidate_envelope_concatenates_parts():
    data = {
        "candidates": [{"content": {"parts": [{"text": '{"a": '}, {"text": "1}"}]}}],
        "usageMetadata": {"totalTokenCount": 7},
    }
    result = normalize_chat_response(ProviderKind.GOOGLE, data)
    assert result.text == '{"a": 1}'
    assert result.total_tokens == 7


def test_missing_usage_counts_as_zero():
    data = {"choices": [{"message": {"content": "x"}}]}
    assert normalize_chat_response(ProviderKind.OPENAI, data).total_tokens == 0


@pytest.mark.parametrize(
    "kind, data",
    [
        (ProviderKind.OPENAI, {"choices": []}),
        (ProviderKind.OPENAI, {"error": {"message": "overloaded"}}),
        (ProviderKind.ANTHROPIC, {"content": [{"type": "tool_use"}]}),
        (ProviderKind.GOOGLE, {"candidates": [{"content": {"parts": []}}]}),
        (ProviderKind.OPENAI, {"choices": [{"message": {"content": None}}]}),
        (ProviderKind.OPENAI, ["not", "an", "object"]),
        (ProviderKind.FAL_AI, {"images": []}),
    ],
)
def test_malformed_envelopes(kind, data):
    with pytest.raises(MalformedEnvelopeError) as excinfo:
        normalize_chat_response(kind, data)
    assert excinfo.value.category == "malformed_envelope"
