"""Rounding rules, odds math and small shared helpers."""

from __future__ import annotations

import datetime as dt
import math
import re

from .errors import ValidationError

XG_DECIMALS = 2
XPTS_DECIMALS = 1
PERCENT_DECIMALS = 2
PROBABILITY_DECIMALS = 1

__all__ = [
    "PERCENT_DECIMALS",
    "PROBABILITY_DECIMALS",
    "XG_DECIMALS",
    "XPTS_DECIMALS",
    "clamp",
    "implied_probability",
    "round_percent",
    "slugify",
    "utc_now",
    "validate_decimal_odds",
]

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def clamp(value: float, lower: float, upper: float) -> float:
    """Bound ``value`` to ``[lower, upper]``."""

    return max(lower, min(upper, value))


def round_percent(value: float) -> float:
    return round(value, PERCENT_DECIMALS)


def validate_decimal_odds(odds: float) -> float:
    """Return ``odds`` as a float, rejecting prices that cannot pay out."""

    try:
        price = float(odds)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Decimal odds must be numeric, got {odds!r}") from exc
    if math.isnan(price) or math.isinf(price) or price <= 1.0:
        raise ValidationError(f"Decimal odds must exceed 1.0, got {odds!r}")
    return price


def implied_probability(odds: float) -> float:
    """Market-implied probability of decimal ``odds`` as a percentage (2dp)."""

    return round_percent(100.0 / validate_decimal_odds(odds))


def slugify(value: str) -> str:
    """Lower-case ``value`` and collapse anything non-alphanumeric to ``-``."""

    return _SLUG_PATTERN.sub("-", value.strip().lower()).strip("-")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)
