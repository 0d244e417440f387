"""Provider and model descriptors read from the administrative catalog.

Architectural role:
    Typed view of the provider/model rows owned by an external admin
    collaborator. Rows are validated with pydantic at the boundary and frozen so
    a loaded catalog snapshot cannot be mutated by orchestration code.

Security:
    `ProviderDescriptor.credential_env` is the *name* of an environment variable.
    Secrets are resolved at call time by `catalog.credentials`, never stored here.
"""

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Wire dialect spoken by a provider."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    FAL_AI = "fal_ai"
    STABILITY = "stability"
    AI_HORDE = "ai_horde"


class GenerationKind(str, Enum):
    CHAT = "chat"
    IMAGE = "image"


class ProviderDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: ProviderKind
    base_url: str = ""
    credential_env: str | None = None
    active: bool = True
    priority: int = 0


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str
    provider_id: str
    model_name: str
    display_name: str = ""
    kind: GenerationKind = GenerationKind.CHAT
    supports_structured_output: bool = False
    supports_vision: bool = False
    max_tokens: int | None = None
    # USD per 1M tokens for chat models, USD per image for image models.
    cost_rate: float = Field(default=0.0, ge=0.0)
    default_temperature: float | None = None
    active: bool = True
    image_size: str = "1024x1024"
    quality: str = "standard"

    @property
    def label(self) -> str:
        return self.display_name or self.model_name

    def cost_for(self, total_tokens: int) -> float:
        """Return the cost of one successful call."""
        if self.kind == GenerationKind.IMAGE:
            return self.cost_rate
        return self.cost_rate * total_tokens / 1_000_000


@dataclass(frozen=True)
class Candidate:
    """One (provider, model) pair the executor may attempt."""

    provider: ProviderDescriptor
    model: ModelDescriptor

    @property
    def label(self) -> str:
        return f"{self.provider.name}/{self.model.model_name}"


@dataclass(frozen=True)
class Catalog:
    """Immutable, ordered snapshot of candidates for one generation kind."""

    kind: GenerationKind
    candidates: tuple[Candidate, ...]

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    def bounded(self, max_attempts: int) -> tuple[Candidate, ...]:
        """Return the prefix the executor is allowed to try."""
        return self.candidates[: max(0, max_attempts)]

    def prefer(self, provider_id: str | None, model_id: str | None = None) -> "Catalog":
        """Move candidates matching a caller hint to the front.

        Matching candidates keep their relative order, as do the rest. An
        unknown hint returns the catalog unchanged.
        """
        if provider_id is None and model_id is None:
            return self

        def matches(candidate: Candidate) -> bool:
            if provider_id is not None and candidate.provider.id != provider_id:
                return False
            return model_id is None or candidate.model.id == model_id

        preferred = tuple(c for c in self.candidates if matches(c))
        rest = tuple(c for c in self.candidates if not matches(c))
        return Catalog(kind=self.kind, candidates=preferred + rest)
