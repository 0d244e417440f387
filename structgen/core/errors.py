"""Error taxonomy shared by every orchestration layer.

Control-flow contract:
    - `TransientProviderError` subclasses make the fallback executor advance to
      the next candidate. They never reach entry-point callers directly.
    - `ConfigurationError` is fatal immediately; no fallback is attempted.
    - `MalformedOutputError` stays inside the recoverer.
    - Entry points raise only errors whose `tag` is one of
      `AllProvidersExhausted`, `UnrecoverableOutput`, `Cancelled`,
      `ConfigurationMissing`.

Security:
    Messages carry provider labels and status codes only, never credentials or
    raw request bodies.
"""


class OrchestratorError(Exception):
    """Base class for every error raised by `structgen`."""

    tag = "OrchestratorError"


class ConfigurationError(OrchestratorError):
    """Empty catalog, missing credential or unsupported dialect pairing."""

    tag = "ConfigurationMissing"


class TransientProviderError(OrchestratorError):
    """A single candidate failed; the executor moves on to the next one."""

    tag = "TransientProviderError"
    category = "transport"


class ProviderTimeout(TransientProviderError):
    category = "timeout"


class ProviderHTTPError(TransientProviderError):
    category = "http_status"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderTransportError(TransientProviderError):
    category = "transport"


class MalformedEnvelopeError(TransientProviderError):
    """Provider answered 2xx but the body matched no known envelope."""

    category = "malformed_envelope"


class MalformedOutputError(OrchestratorError):
    """Internal recoverer signal: one recovery step could not parse its input."""

    tag = "MalformedOutputError"


class UnrecoverableOutput(OrchestratorError):
    """Every recovery step failed on the provider's raw text."""

    tag = "UnrecoverableOutput"

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class AllProvidersExhausted(OrchestratorError):
    """The bounded candidate prefix (times rounds, for media) failed."""

    tag = "AllProvidersExhausted"

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: BaseException | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.errors = list(errors or [])


class GenerationCancelled(OrchestratorError):
    """The caller's cancellation token fired while a request was running."""

    tag = "Cancelled"

    def __init__(self, message: str = "generation cancelled", attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts
