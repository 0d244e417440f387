"""Candidate-to-text adapter for chat invocation.

Architectural role:
    Provides the per-candidate chat call handed to the fallback executor. This
    module bridges request building (`llm.dialects`) to transport
    (`llm.client`) and envelope unwrapping (`llm.normalizer`).

Model call flow:
    credential -> wire request -> `client.send_json(...)` -> normalized text.

Token behavior:
    Token limits come from request tuning or the model row. Usage reported by
    the provider is returned so the executor can price the attempt.

Determinism:
    Request construction is deterministic for fixed inputs. Generated output is
    not, since inference runs remotely.
"""

import logging

import httpx

from structgen.catalog.credentials import CredentialResolver
from structgen.catalog.types import Candidate
from structgen.core.types import GenerationRequest
from structgen.llm.client import send_json
from structgen.llm.dialects import build_chat_request
from structgen.llm.executor import AttemptOutcome
from structgen.llm.normalizer import normalize_chat_response


logger = logging.getLogger(__name__)


async def invoke_chat(
    client: httpx.AsyncClient,
    credentials: CredentialResolver,
    candidate: Candidate,
    request: GenerationRequest,
) -> AttemptOutcome:
    """Run one chat completion against `candidate`.

    Returns:
        `AttemptOutcome` whose value is the normalized raw text.

    Failure scenarios:
        - Missing credential or unsupported dialect -> `ConfigurationError`
        - Transport, status or envelope problems -> `TransientProviderError`
    """
    api_key = credentials.resolve(candidate.provider)
    wire = build_chat_request(candidate, request, api_key)

    data, size = await send_json(client, wire, candidate.provider.name)
    normalized = normalize_chat_response(candidate.provider.kind, data)
    logger.debug(
        "%s returned %d chars (%d tokens)",
        candidate.label,
        len(normalized.text),
        normalized.total_tokens,
    )

    return AttemptOutcome(
        value=normalized.text,
        total_tokens=normalized.total_tokens,
        response_size=size,
    )
