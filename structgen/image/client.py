"""Image-provider request building, transport and URL extraction.

Processing flow:
    1. Resolve the candidate's credential.
    2. Build the dialect-specific submission payload.
    3. Submit through `llm.client.send_json`.
    4. Extract the first generated image reference.

Provider handling:
    - `fal_ai`: `Authorization: Key ...`, `{base}/{model}`, `images[0].url`.
      Sampling parameters depend on the model family (flux-dev, flux, sdxl).
    - `openai`: bearer auth, `{base}/images/generations`, `data[0].url`.
    - `stability`: bearer auth, `{base}/v1/generation/{model}/text-to-image`;
      the Base64 artifact is returned as a `data:image/png;base64,` URL.
    - `ai_horde`: `apikey` header, async job submit followed by status polling
      until the job finishes, faults or the poll budget runs out.

Base64 and temporary files:
    - Base64 artifacts are wrapped, never decoded.
    - No temporary files are created.

Error handling strategy:
    - Unsupported dialect or malformed `image_size` -> `ConfigurationError`.
    - Missing image reference in a 2xx body -> `MalformedEnvelopeError`.
    - Faulted or never-finishing Horde jobs -> transient errors, so the
      executor advances to the next candidate.

Performance characteristics:
    - Horde polling sleeps with `asyncio.sleep` and is additionally bounded by
      the executor's per-attempt deadline, which cancels the poll loop.
"""

import asyncio
import logging
from typing import Any

import httpx

from structgen.catalog.credentials import CredentialResolver
from structgen.catalog.types import Candidate, ProviderKind
from structgen.config import DEFAULT_IMAGE_ENDPOINTS
from structgen.core.errors import (
    ConfigurationError,
    MalformedEnvelopeError,
    ProviderHTTPError,
    ProviderTimeout,
    ProviderTransportError,
)
from structgen.llm.client import send_json
from structgen.llm.dialects import WireRequest, resolve_base_url
from structgen.llm.executor import AttemptOutcome


logger = logging.getLogger(__name__)

HORDE_STEPS = 25
HORDE_MAX_POLLS = 150
HORDE_RATE_LIMIT_STATUS = 429


def _dimensions(image_size: str) -> tuple[int, int]:
    try:
        width, height = image_size.lower().split("x", 1)
        return int(width), int(height)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid image_size '{image_size}'") from exc


def _fal_body(model_name: str, prompt: str, image_size: str) -> dict[str, Any]:
    body: dict[str, Any] = {"prompt": prompt, "image_size": image_size, "sync_mode": True}
    if "flux-dev" in model_name or "flux/dev" in model_name:
        body.update(num_inference_steps=30, guidance_scale=6.5,
                    style_preset="fantasy", enhance_prompt=True)
    elif "flux" in model_name:
        body.update(num_inference_steps=30, guidance_scale=6.5)
    else:
        body.update(num_inference_steps=50, guidance_scale=7.5)
    return body


def build_image_request(candidate: Candidate, prompt: str, api_key: str | None) -> WireRequest:
    """Build the submission request for one image candidate.

    For `ai_horde` this is the async job submission; polling is handled by
    `generate_with_horde`.
    """
    kind = candidate.provider.kind
    model = candidate.model
    base = resolve_base_url(candidate, DEFAULT_IMAGE_ENDPOINTS)
    headers = {"Content-Type": "application/json"}

    if kind == ProviderKind.FAL_AI:
        if api_key:
            headers["Authorization"] = f"Key {api_key}"
        return WireRequest(
            url=f"{base}/{model.model_name.strip('/')}",
            headers=headers,
            body=_fal_body(model.model_name, prompt, model.image_size),
        )

    if kind == ProviderKind.OPENAI:
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        body = {
            "model": model.model_name,
            "prompt": prompt,
            "n": 1,
            "size": model.image_size,
            "quality": model.quality,
        }
        return WireRequest(url=f"{base}/images/generations", headers=headers, body=body)

    if kind == ProviderKind.STABILITY:
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        headers["Accept"] = "application/json"
        width, height = _dimensions(model.image_size)
        body = {
            "text_prompts": [{"text": prompt}],
            "cfg_scale": 7,
            "height": height,
            "width": width,
            "samples": 1,
            "steps": 30,
        }
        url = f"{base}/v1/generation/{model.model_name}/text-to-image"
        return WireRequest(url=url, headers=headers, body=body)

    if kind == ProviderKind.AI_HORDE:
        if api_key:
            headers["apikey"] = api_key
        width, height = _dimensions(model.image_size)
        body = {
            "prompt": prompt,
            "params": {"width": width, "height": height, "steps": HORDE_STEPS},
            "models": [model.model_name],
        }
        return WireRequest(url=f"{base}/generate/async", headers=headers, body=body)

    raise ConfigurationError(
        f"{candidate.provider.name}: dialect '{kind.value}' cannot serve image models"
    )


def extract_image_url(kind: ProviderKind, data: Any) -> str:
    """Return the first image reference from a completed response body.

    Raises:
        MalformedEnvelopeError: When no image reference is present.
    """
    try:
        if kind == ProviderKind.FAL_AI:
            url = data["images"][0]["url"]
        elif kind == ProviderKind.OPENAI:
            url = data["data"][0]["url"]
        elif kind == ProviderKind.STABILITY:
            url = "data:image/png;base64," + data["artifacts"][0]["base64"]
        elif kind == ProviderKind.AI_HORDE:
            generation = data["generations"][0]
            url = generation.get("img") or generation.get("image_url")
        else:
            raise MalformedEnvelopeError(f"no image envelope known for dialect '{kind.value}'")
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise MalformedEnvelopeError(
            f"{kind.value} image response missing expected field: {exc}"
        ) from exc

    if not url or not isinstance(url, str):
        raise MalformedEnvelopeError(f"{kind.value} finished but returned no image URL")
    return url


async def generate_with_horde(
    client: httpx.AsyncClient,
    candidate: Candidate,
    submit: WireRequest,
    poll_seconds: float = 2.0,
    max_polls: int = HORDE_MAX_POLLS,
) -> tuple[str, int]:
    """Submit and poll an AI Horde async image job.

    Returns:
        `(image_url, total_response_bytes)`.

    Failure handling:
        - No job id -> `MalformedEnvelopeError`
        - Faulted job -> `ProviderTransportError`
        - Poll budget exhausted -> `ProviderTimeout`
        - Rate-limited polls (429) sleep and count against the budget.
    """
    label = candidate.provider.name
    submit_data, total_size = await send_json(client, submit, label)

    job_id = submit_data.get("id") if isinstance(submit_data, dict) else None
    if not job_id:
        raise MalformedEnvelopeError(f"{label.upper()} did not return a job id")

    base = resolve_base_url(candidate, DEFAULT_IMAGE_ENDPOINTS)
    status = WireRequest(
        url=f"{base}/generate/status/{job_id}",
        headers=submit.headers,
        method="GET",
    )

    for _ in range(max_polls):
        try:
            status_data, size = await send_json(client, status, label)
        except ProviderHTTPError as exc:
            if exc.status_code != HORDE_RATE_LIMIT_STATUS:
                raise
            logger.info("%s status poll rate-limited; backing off", label)
            await asyncio.sleep(poll_seconds * 1.5)
            continue

        total_size += size
        if not isinstance(status_data, dict):
            raise MalformedEnvelopeError(f"{label.upper()} status is not a JSON object")
        if status_data.get("faulted"):
            raise ProviderTransportError(f"{label.upper()} job faulted")

        finished = bool(status_data.get("done") or status_data.get("finished"))
        if finished and status_data.get("generations"):
            return extract_image_url(ProviderKind.AI_HORDE, status_data), total_size

        await asyncio.sleep(poll_seconds)

    raise ProviderTimeout(f"{label.upper()} job {job_id} did not finish after {max_polls} polls")


async def invoke_image(
    client: httpx.AsyncClient,
    credentials: CredentialResolver,
    candidate: Candidate,
    prompt: str,
    poll_seconds: float = 2.0,
) -> AttemptOutcome:
    """Run one image generation against `candidate`."""
    api_key = credentials.resolve(candidate.provider)
    wire = build_image_request(candidate, prompt, api_key)

    if candidate.provider.kind == ProviderKind.AI_HORDE:
        url, size = await generate_with_horde(client, candidate, wire, poll_seconds)
    else:
        data, size = await send_json(client, wire, candidate.provider.name)
        url = extract_image_url(candidate.provider.kind, data)

    return AttemptOutcome(value=url, response_size=size)
