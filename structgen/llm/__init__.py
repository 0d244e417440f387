"""LLM access package.

Architectural role:
    Provides request construction, transport, envelope unwrapping and the
    bounded fallback executor used by the orchestration layer.

Module split:
    - `dialects`: per-dialect chat request builders.
    - `client`: async HTTP transport with sanitized error mapping.
    - `normalizer`: per-dialect response envelope unwrapping.
    - `executor`: sequential, timeout-guarded candidate walker.
    - `service`: one chat call for one candidate.
"""
