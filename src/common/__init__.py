"""Common utilities for the pathways service."""

__all__ = [
    "db",
    "logging",
    "metrics",
    "settings",
    "telemetry",
]
