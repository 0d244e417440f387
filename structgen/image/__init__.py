"""Image generation adapter package.

Scope:
    Provides text-to-image request builders, the AI Horde polling client and
    the prompt-simplification degradation controller.

Non-goals:
    - No Base64 decoding.
    - No temporary-file creation or cleanup.
"""
