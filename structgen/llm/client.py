"""Async HTTP transport for provider calls.

Architectural role:
    Executes one wire request against one provider with `httpx.AsyncClient`
    and maps every transport-level failure onto the transient error taxonomy.

Retry behavior:
    None. Each call is attempted once; the fallback executor decides what happens
    next.

Failure handling model:
    - `httpx.TimeoutException` -> `ProviderTimeout`
    - other `httpx.RequestError` -> `ProviderTransportError`
    - non-2xx status -> `ProviderHTTPError` (provider label + status only)
    - non-JSON body -> `MalformedEnvelopeError`

Security:
    Error messages never echo headers or request bodies.
"""

import json
from typing import Any

import httpx

from structgen.core.errors import (
    MalformedEnvelopeError,
    ProviderHTTPError,
    ProviderTimeout,
    ProviderTransportError,
)
from structgen.llm.dialects import WireRequest


def _build_sanitized_http_error(label: str, response: httpx.Response) -> ProviderHTTPError:
    """Build a provider-labeled HTTP error without exposing response internals."""
    reason = response.reason_phrase or "HTTP ERROR"
    return ProviderHTTPError(
        f"{label.upper()} HTTP ERROR ({response.status_code} {reason})",
        status_code=response.status_code,
    )


async def send_json(
    client: httpx.AsyncClient,
    wire: WireRequest,
    label: str,
) -> tuple[Any, int]:
    """Send one request and return `(parsed_json, response_size_bytes)`.

    Args:
        client: Shared async client. Its timeout is the transport timeout; the
            executor enforces the wall-clock deadline independently.
        wire: Provider-specific request.
        label: Provider label for error messages.
    """
    try:
        response = await client.request(
            wire.method,
            wire.url,
            headers=wire.headers,
            json=wire.body if wire.method != "GET" else None,
        )
    except httpx.TimeoutException as exc:
        raise ProviderTimeout(f"{label.upper()} REQUEST TIMED OUT") from exc
    except httpx.RequestError as exc:
        raise ProviderTransportError(
            f"{label.upper()} REQUEST FAILED ({type(exc).__name__})"
        ) from exc

    if response.status_code < 200 or response.status_code >= 300:
        raise _build_sanitized_http_error(label, response)

    body = response.content or b""
    try:
        return json.loads(body), len(body)
    except ValueError as exc:
        raise MalformedEnvelopeError(f"{label.upper()} returned a non-JSON body") from exc
