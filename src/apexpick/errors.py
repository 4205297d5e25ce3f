"""Exception taxonomy for the aggregation and scoring pipeline."""

from __future__ import annotations


class ApexError(Exception):
    """Base class for every error raised by :mod:`apexpick`."""


class ValidationError(ApexError, ValueError):
    """Malformed entity specs, fixtures or market data.

    This is the only error class expected to reach callers; it signals a
    programming or input mistake rather than an environmental problem.
    """


class ConfigurationError(ValidationError):
    """Raised when pipeline configuration validation fails."""


class SourceUnavailable(ApexError):
    """A single adapter failed, timed out or returned nothing usable."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class InsufficientData(ApexError):
    """Every adapter for an entity failed.

    The aggregator logs this condition and returns a zero-quality profile
    instead of raising it.
    """

    def __init__(self, entity: str, attempted: int) -> None:
        super().__init__(f"no data sources responded for {entity} ({attempted} attempted)")
        self.entity = entity
        self.attempted = attempted


class StakeCapViolation(ApexError, AssertionError):
    """A recommended stake exceeded the configured bankroll ceiling."""


__all__ = [
    "ApexError",
    "ConfigurationError",
    "InsufficientData",
    "SourceUnavailable",
    "StakeCapViolation",
    "ValidationError",
]
