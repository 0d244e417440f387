"""Resilient structured-generation orchestrator.

Architectural role:
    Turns one natural-language generation request into a guaranteed-shape
    result (a recovered JSON document or an image reference) over a catalog of
    unreliable generative providers.

Entry point:
    `structgen.core.engine.Orchestrator`.
"""
