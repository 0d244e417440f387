"""Entry points for structured-document and image generation.

Architectural role:
    Provides the only orchestration surface business layers call. One
    `Orchestrator` owns the provider registry, credential resolver, telemetry
    sink and configuration, and wires them into the fallback executor,
    recoverer and degradation controller for each request.

Control-flow model:
    Structured:
        1. Reload the catalog when configured (one call is one session).
        2. Snapshot the chat catalog, moving a caller-preferred candidate first.
        3. Walk candidates with `FallbackExecutor` until one returns text.
        4. Recover a structured document from that text off the event loop
           (`asyncio.to_thread`).
    Image:
        1-2. As above, for the image catalog.
        3. Walk candidates in prompt-simplification rounds.

Error handling strategy:
    Callers only ever see `AllProvidersExhausted`, `UnrecoverableOutput`,
    `GenerationCancelled` or `ConfigurationError`. Recovery failure does not
    trigger another provider attempt.

Concurrency:
    Any number of requests may run concurrently on one event loop. Catalog
    snapshots are immutable and telemetry sinks are lock-protected.

Determinism:
    Candidate order and recovery are deterministic for fixed catalog rows and
    provider output. Provider output itself is not.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from structgen.catalog.credentials import CredentialResolver, EnvCredentialResolver
from structgen.catalog.registry import JsonFileProviderSource, ProviderRegistry
from structgen.catalog.types import Candidate, Catalog, GenerationKind
from structgen.config import OrchestratorConfig
from structgen.core.types import (
    CancellationToken,
    GenerationRequest,
    ImageResult,
    RecoveredDocument,
)
from structgen.image.client import invoke_image
from structgen.image.service import DegradationController
from structgen.llm.executor import AttemptOutcome, FallbackExecutor
from structgen.llm.service import invoke_chat
from structgen.recovery.recoverer import recover
from structgen.telemetry.sink import (
    FanOutTelemetrySink,
    JsonlTelemetrySink,
    LoggingTelemetrySink,
    TelemetrySink,
)


logger = logging.getLogger(__name__)


class Orchestrator:
    """Resilient generation facade over an unreliable provider catalog.

    Args:
        registry: Provider/model registry.
        credentials: Call-time secret resolver.
        telemetry: Attempt sink; `None` disables telemetry.
        config: Bounds and timeouts.
        http_client: Optional shared async client. When omitted, one client is
            opened per call and closed when the call ends.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        credentials: CredentialResolver,
        telemetry: TelemetrySink | None = None,
        config: OrchestratorConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.registry = registry
        self.credentials = credentials
        self.telemetry = telemetry
        self.config = config or OrchestratorConfig()
        self.http_client = http_client
        self.executor = FallbackExecutor(
            telemetry=telemetry,
            max_attempts=self.config.max_attempts,
            timeout_seconds=self.config.timeout_seconds,
        )
        self.degradation = DegradationController(
            self.executor,
            rounds=self.config.simplification_rounds,
        )

    @classmethod
    def from_config(cls, config: OrchestratorConfig | None = None) -> "Orchestrator":
        """Wire a JSON catalog, env/key-file credentials and configured sinks."""
        config = config or OrchestratorConfig.from_env()

        sinks: list[TelemetrySink] = [LoggingTelemetrySink()]
        if config.telemetry_path:
            sinks.append(JsonlTelemetrySink(config.telemetry_path))

        return cls(
            registry=ProviderRegistry(JsonFileProviderSource(config.catalog_path)),
            credentials=EnvCredentialResolver(config.keys_dir),
            telemetry=FanOutTelemetrySink(sinks),
            config=config,
        )

    def refresh_catalog(self) -> None:
        """Explicitly reload provider/model rows from the registry source."""
        self.registry.reload()

    def close(self) -> None:
        """Flush and close telemetry sinks that hold files."""
        close = getattr(self.telemetry, "close", None)
        if close is not None:
            close()

    def _snapshot(self, kind: GenerationKind, request: GenerationRequest) -> Catalog:
        if self.config.reload_catalog_each_call:
            self.registry.reload()
        catalog = self.registry.catalog(kind)

        provider_id = request.preferred_provider_id
        model_id = request.preferred_model_id
        if provider_id is None and model_id is None:
            return catalog

        preferred = catalog.prefer(provider_id, model_id)
        head = preferred.candidates[0]
        if provider_id not in (None, head.provider.id) or model_id not in (None, head.model.id):
            logger.warning(
                "Preferred %s candidate %s/%s not in catalog; using default order",
                kind.value,
                provider_id or "*",
                model_id or "*",
            )
        return preferred

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
        ) as client:
            yield client

    async def generate_structured(
        self,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
    ) -> RecoveredDocument:
        """Generate and recover one structured document.

        Raises:
            AllProvidersExhausted: No chat candidate produced text.
            UnrecoverableOutput: Text was produced but nothing could be recovered.
            GenerationCancelled: `cancel` fired.
            ConfigurationError: Empty catalog or missing credential.
        """
        catalog = self._snapshot(GenerationKind.CHAT, request)
        logger.info(
            "Structured request %s: %d chat candidates (max %d attempts)",
            request.request_id,
            len(catalog),
            self.config.max_attempts,
        )

        async with self._client() as client:
            async def _invoke(candidate: Candidate) -> AttemptOutcome:
                return await invoke_chat(client, self.credentials, candidate, request)

            result = await self.executor.execute(
                catalog,
                _invoke,
                request.request_id,
                cancel=cancel,
            )

        document = await asyncio.to_thread(
            recover, result.value, request.response_kind, request.target_shape
        )
        logger.info(
            "Request %s recovered via %s (confidence %.2f) from %s",
            request.request_id,
            document.strategy.value,
            document.confidence,
            result.candidate.label,
        )
        return RecoveredDocument(
            value=document.value,
            strategy=document.strategy,
            confidence=document.confidence,
            attempt=result.attempt,
        )

    async def generate_image(
        self,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
    ) -> ImageResult:
        """Generate one image, simplifying the prompt between exhausted rounds.

        Raises:
            AllProvidersExhausted: Every round failed; `attempts` is the total.
            GenerationCancelled: `cancel` fired.
            ConfigurationError: Empty catalog or missing credential.
        """
        catalog = self._snapshot(GenerationKind.IMAGE, request)
        logger.info(
            "Image request %s: %d image candidates, %d rounds",
            request.request_id,
            len(catalog),
            self.config.simplification_rounds,
        )

        async with self._client() as client:
            async def _invoke(candidate: Candidate, attempt: GenerationRequest) -> AttemptOutcome:
                return await invoke_image(
                    client,
                    self.credentials,
                    candidate,
                    attempt.prompt,
                    poll_seconds=self.config.horde_poll_seconds,
                )

            return await self.degradation.generate(
                catalog,
                _invoke,
                request,
                cancel=cancel,
            )

    def generate_structured_sync(self, request: GenerationRequest) -> RecoveredDocument:
        """Synchronous wrapper for `generate_structured`.

        Calling from an already running event loop propagates `asyncio.run`
        limitations.
        """
        return self._run_async(self.generate_structured(request))

    def generate_image_sync(self, request: GenerationRequest) -> ImageResult:
        """Synchronous wrapper for `generate_image`."""
        return self._run_async(self.generate_image(request))

    def _run_async(self, coroutine: Any) -> Any:
        return asyncio.run(coroutine)
