"""Attempt telemetry sinks."""
