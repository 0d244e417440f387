"""Chat request builders for each supported wire dialect.

Architectural role:
    Translates one generic `GenerationRequest` plus a catalog `Candidate` into a
    provider-specific `(url, headers, body)` triple. Response unwrapping lives in
    `llm.normalizer`.

Provider handling:
    - `openai`: bearer auth, `/chat/completions`, `response_format=json_object`
      for structured requests.
    - `openrouter`: bearer auth plus attribution headers; JSON mode only for
      models flagged `supports_structured_output`.
    - `anthropic`: `x-api-key` + `anthropic-version` headers, `/v1/messages`,
      system prompt as a top-level field.
    - `google`: `x-goog-api-key` header, `:generateContent`,
      `responseMimeType=application/json` for structured requests.

Parameter handling:
    Temperature and max tokens come from request tuning, then model defaults,
    then module defaults. Zero is a valid override.

Determinism:
    Pure function of its inputs.
"""

from dataclasses import dataclass, field
from typing import Any

from structgen.catalog.types import Candidate, ProviderKind
from structgen.config import (
    ANTHROPIC_VERSION,
    DEFAULT_CHAT_ENDPOINTS,
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    OPENROUTER_REFERER,
    OPENROUTER_TITLE,
)
from structgen.core.errors import ConfigurationError
from structgen.core.types import GenerationRequest, ResponseKind


CHAT_KINDS = frozenset({
    ProviderKind.OPENAI,
    ProviderKind.OPENROUTER,
    ProviderKind.ANTHROPIC,
    ProviderKind.GOOGLE,
})


@dataclass(frozen=True)
class WireRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any] = field(default_factory=dict)
    method: str = "POST"


def resolve_base_url(candidate: Candidate, defaults: dict[str, str]) -> str:
    base = (candidate.provider.base_url or defaults.get(candidate.provider.kind.value, "")).rstrip("/")
    if not base:
        raise ConfigurationError(f"{candidate.provider.name} has no base URL configured")
    return base


def _temperature(candidate: Candidate, request: GenerationRequest) -> float:
    if request.tuning is not None and request.tuning.temperature is not None:
        return request.tuning.temperature
    if candidate.model.default_temperature is not None:
        return candidate.model.default_temperature
    return DEFAULT_TEMPERATURE


def _max_tokens(candidate: Candidate, request: GenerationRequest) -> int:
    if request.tuning is not None and request.tuning.max_tokens is not None:
        return request.tuning.max_tokens
    return candidate.model.max_tokens or DEFAULT_MAX_TOKENS


def _messages(request: GenerationRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": request.system_instruction},
        {"role": "user", "content": request.prompt},
    ]


def build_chat_request(
    candidate: Candidate,
    request: GenerationRequest,
    api_key: str | None,
) -> WireRequest:
    """Build the wire request for one chat candidate.

    Raises:
        ConfigurationError: For non-chat dialects or missing endpoints.
    """
    kind = candidate.provider.kind
    if kind not in CHAT_KINDS:
        raise ConfigurationError(
            f"{candidate.provider.name}: dialect '{kind.value}' cannot serve chat models"
        )

    model_name = candidate.model.model_name
    structured = request.response_kind == ResponseKind.STRUCTURED
    base = resolve_base_url(candidate, DEFAULT_CHAT_ENDPOINTS)
    headers = {"Content-Type": "application/json"}

    if kind == ProviderKind.OPENAI or kind == ProviderKind.OPENROUTER:
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        if kind == ProviderKind.OPENROUTER:
            headers["HTTP-Referer"] = OPENROUTER_REFERER
            headers["X-Title"] = OPENROUTER_TITLE

        body: dict[str, Any] = {
            "model": model_name,
            "messages": _messages(request),
            "temperature": _temperature(candidate, request),
            "max_tokens": _max_tokens(candidate, request),
        }
        json_mode = structured and (
            kind == ProviderKind.OPENAI or candidate.model.supports_structured_output
        )
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        return WireRequest(url=f"{base}/chat/completions", headers=headers, body=body)

    if kind == ProviderKind.ANTHROPIC:
        if api_key:
            headers["x-api-key"] = api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION

        body = {
            "model": model_name,
            "max_tokens": _max_tokens(candidate, request),
            "temperature": _temperature(candidate, request),
            "system": request.system_instruction,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        return WireRequest(url=f"{base}/v1/messages", headers=headers, body=body)

    # Google
    if api_key:
        headers["x-goog-api-key"] = api_key

    generation_config: dict[str, Any] = {
        "temperature": _temperature(candidate, request),
        "maxOutputTokens": _max_tokens(candidate, request),
    }
    if structured:
        generation_config["responseMimeType"] = "application/json"

    body = {
        "systemInstruction": {"parts": [{"text": request.system_instruction}]},
        "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
        "generationConfig": generation_config,
    }
    url = f"{base}/v1beta/models/{model_name}:generateContent"
    return WireRequest(url=url, headers=headers, body=body)
