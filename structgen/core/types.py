"""Request, result and telemetry data contracts for orchestration.

Architectural role:
    Defines the inbound `GenerationRequest` accepted from business layers, the
    outbound `RecoveredDocument` / `ImageResult`, and the immutable
    `AttemptRecord` written to telemetry for every provider call.

Lifecycle:
    Requests and results are transient and scoped to one call. Attempt records
    are append-only and outlive the call (analytics export).
"""

import asyncio
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResponseKind(str, Enum):
    TEXT = "text"
    STRUCTURED = "structured"


class Strategy(str, Enum):
    """Recovery path that produced a `RecoveredDocument`."""

    DIRECT = "direct"
    PATTERN_EXTRACTED = "pattern-extracted"
    HEURISTIC_REPAIRED = "heuristic-repaired"
    RAW_TEXT = "raw-text"


class TargetShape(BaseModel):
    """Target document shape: a name plus the top-level field checklist."""

    model_config = ConfigDict(frozen=True)

    name: str
    expected_fields: tuple[str, ...] = ()

    @classmethod
    def from_model(cls, model: type[BaseModel], name: str | None = None) -> "TargetShape":
        """Derive the checklist from a pydantic model's declared fields.

        Aliases win over attribute names so camelCase wire keys are matched.
        """
        fields = tuple(
            info.alias or field_name
            for field_name, info in model.model_fields.items()
        )
        return cls(name=name or model.__name__, expected_fields=fields)


ADVENTURE_SHAPE = TargetShape(
    name="adventure",
    expected_fields=("title", "gameSystem", "summary", "scenes", "encounters", "npcs"),
)


class Tuning(BaseModel):
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)


class GenerationRequest(BaseModel):
    """Inbound generation request from the business layer."""

    prompt: str
    system_instruction: str = "You are a helpful assistant."
    response_kind: ResponseKind = ResponseKind.STRUCTURED
    target_shape: TargetShape | None = None
    tuning: Tuning | None = None
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    # Optional hint: try this provider (and model) first, then the usual order.
    preferred_provider_id: str | None = None
    preferred_model_id: str | None = None

    def with_prompt(self, prompt: str) -> "GenerationRequest":
        return self.model_copy(update={"prompt": prompt})


@dataclass(frozen=True)
class AttemptRecord:
    """Immutable log entry for one candidate invocation."""

    request_id: str
    provider_id: str
    provider_name: str
    model_id: str
    model_name: str
    started_at: datetime
    finished_at: datetime
    success: bool
    error_category: str | None = None
    error_message: str | None = None
    total_tokens: int = 0
    cost: float = 0.0
    response_size: int = 0
    round: int = 0

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat()
        data["duration_ms"] = self.duration_ms
        return data


@dataclass(frozen=True)
class RecoveredDocument:
    value: Any
    strategy: Strategy
    confidence: float
    attempt: AttemptRecord | None = None


@dataclass(frozen=True)
class ImageResult:
    url: str
    provider_used: str
    model_used: str
    cost: float
    attempts: int = 1
    prompt_used: str = ""


class CancellationToken:
    """Caller-owned cancellation signal shared with one or more requests.

    Setting the token aborts the in-flight provider call of every request that
    holds it and surfaces `GenerationCancelled` instead of trying further
    candidates.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()
