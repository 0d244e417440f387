"""Structured output recovery package.

This package turns raw provider text into parsed documents. It is pure: no
provider calls, no telemetry, no configuration access.
"""
