"""Gateway exception types."""

from __future__ import annotations


class HermesError(Exception):
    """Base error type."""


class ConfigurationError(HermesError, ValueError):
    """Raised when gateway configuration cannot be used as given."""
