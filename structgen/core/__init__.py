"""Core orchestration package.

Architectural role:
    Exposes the entry points business layers call, together with the shared
    request/result types and the error taxonomy.

Composition:
    - `engine`: `Orchestrator` facade wiring catalog, executor and recoverer.
    - `types`: Requests, recovered documents, attempt records, cancellation.
    - `errors`: Tagged error hierarchy surfaced to callers.

Determinism and side effects:
    Package import itself is side-effect free. Provider calls and telemetry
    writes happen in `engine` during request processing.
"""
