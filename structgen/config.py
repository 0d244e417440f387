"""Runtime configuration for the orchestration layer.

Architectural role:
    Centralizes fallback bounds, timeouts, catalog/telemetry locations and the
    per-dialect default endpoints consumed by `structgen.llm`, `structgen.image`
    and `structgen.core.engine`.

Model call flow integration:
    - `core.engine.Orchestrator.from_config` consumes `OrchestratorConfig`.
    - `llm.dialects` and `image.client` fall back to `DEFAULT_CHAT_ENDPOINTS` /
      `DEFAULT_IMAGE_ENDPOINTS` when a provider row carries no base URL.

Determinism:
    Deterministic for a fixed process environment. `.env` is loaded at import
    time; `OrchestratorConfig.from_env` reads variables at call time.

Failure behavior:
    Malformed numeric variables raise `ValueError` from `from_env`, before any
    provider is contacted.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


# Chat dialect endpoint map. Keys are `ProviderKind` values.
DEFAULT_CHAT_ENDPOINTS = {
    "openai": "https://api.openai.com/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "anthropic": "https://api.anthropic.com",
    "google": "https://generativelanguage.googleapis.com",
}

# Image dialect endpoint map.
DEFAULT_IMAGE_ENDPOINTS = {
    "fal_ai": "https://fal.run",
    "openai": "https://api.openai.com/v1",
    "stability": "https://api.stability.ai",
    "ai_horde": "https://aihorde.net/api/v2",
}

ANTHROPIC_VERSION = "2023-06-01"

# Attribution headers OpenRouter expects from registered applications.
OPENROUTER_REFERER = os.getenv("STRUCTGEN_OPENROUTER_REFERER", "https://arcanum-scribe.com")
OPENROUTER_TITLE = os.getenv("STRUCTGEN_OPENROUTER_TITLE", "Arcanum Scribe")

DEFAULT_TEMPERATURE = 0.8
DEFAULT_MAX_TOKENS = 4096


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class OrchestratorConfig:
    """Tunable bounds and file locations for one orchestrator instance.

    Relevant environment variables:
        - `STRUCTGEN_MAX_ATTEMPTS`
        - `STRUCTGEN_TIMEOUT_SECONDS`
        - `STRUCTGEN_SIMPLIFICATION_ROUNDS`
        - `STRUCTGEN_CATALOG_PATH`
        - `STRUCTGEN_KEYS_DIR`
        - `STRUCTGEN_TELEMETRY_PATH`
        - `STRUCTGEN_RELOAD_CATALOG`
        - `STRUCTGEN_HORDE_POLL_SECONDS`
        - `STRUCTGEN_LOG_LEVEL`
    """

    max_attempts: int = 3
    timeout_seconds: float = 30.0
    simplification_rounds: int = 3
    catalog_path: str = "config/catalog.json"
    keys_dir: str | None = "config"
    telemetry_path: str | None = None
    reload_catalog_each_call: bool = True
    horde_poll_seconds: float = 2.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.simplification_rounds < 1:
            raise ValueError("simplification_rounds must be >= 1")

    @classmethod
    def from_env(cls) -> "OrchestratorConfig":
        """Build configuration from the process environment."""
        return cls(
            max_attempts=int(os.getenv("STRUCTGEN_MAX_ATTEMPTS", "3")),
            timeout_seconds=float(os.getenv("STRUCTGEN_TIMEOUT_SECONDS", "30")),
            simplification_rounds=int(os.getenv("STRUCTGEN_SIMPLIFICATION_ROUNDS", "3")),
            catalog_path=os.getenv("STRUCTGEN_CATALOG_PATH", "config/catalog.json"),
            keys_dir=os.getenv("STRUCTGEN_KEYS_DIR", "config") or None,
            telemetry_path=os.getenv("STRUCTGEN_TELEMETRY_PATH", "").strip() or None,
            reload_catalog_each_call=_env_bool("STRUCTGEN_RELOAD_CATALOG", True),
            horde_poll_seconds=float(os.getenv("STRUCTGEN_HORDE_POLL_SECONDS", "2")),
            log_level=os.getenv("STRUCTGEN_LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
