"""Envelope unwrapping for chat responses.

Supported envelopes:
    - chat-completion (`openai`, `openrouter`): `choices[0].message.content`
    - message (`anthropic`): `content[0].text`
    - candidate (`google`): `candidates[0].content.parts[*].text`, concatenated

Token usage:
    Read from `usage.total_tokens`, `usage.input_tokens + usage.output_tokens`
    or `usageMetadata.totalTokenCount`. Missing usage counts as zero.

Failure handling:
    Any missing key, wrong type or unknown dialect raises
    `MalformedEnvelopeError`, which the executor records as a failed attempt.
"""

from dataclasses import dataclass
from typing import Any

from structgen.catalog.types import ProviderKind
from structgen.core.errors import MalformedEnvelopeError


@dataclass(frozen=True)
class NormalizedResponse:
    text: str
    total_tokens: int = 0


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _chat_completion_text(data: dict[str, Any]) -> str:
    return data["choices"][0]["message"]["content"]


def _message_text(data: dict[str, Any]) -> str:
    return data["content"][0]["text"]


def _candidate_text(data: dict[str, Any]) -> str:
    parts = data["candidates"][0]["content"]["parts"]
    texts = [part["text"] for part in parts if isinstance(part, dict) and "text" in part]
    if not texts:
        raise KeyError("text")
    return "".join(texts)


def normalize_chat_response(kind: ProviderKind, data: Any) -> NormalizedResponse:
    """Unwrap one provider envelope into raw text plus token usage.

    Raises:
        MalformedEnvelopeError: When the body does not match the dialect.
    """
    if not isinstance(data, dict):
        raise MalformedEnvelopeError(f"{kind.value} response is not a JSON object")

    try:
        if kind == ProviderKind.OPENAI or kind == ProviderKind.OPENROUTER:
            text = _chat_completion_text(data)
            usage = data.get("usage") or {}
            tokens = _as_int(usage.get("total_tokens"))
        elif kind == ProviderKind.ANTHROPIC:
            text = _message_text(data)
            usage = data.get("usage") or {}
            tokens = _as_int(usage.get("input_tokens")) + _as_int(usage.get("output_tokens"))
        elif kind == ProviderKind.GOOGLE:
            text = _candidate_text(data)
            usage = data.get("usageMetadata") or {}
            tokens = _as_int(usage.get("totalTokenCount"))
        else:
            raise MalformedEnvelopeError(f"no chat envelope known for dialect '{kind.value}'")
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise MalformedEnvelopeError(
            f"{kind.value} response missing expected field: {exc}"
        ) from exc

    if not isinstance(text, str):
        raise MalformedEnvelopeError(f"{kind.value} response content is not text")

    return NormalizedResponse(text=text.strip(), total_tokens=tokens)
