"""Data source adapters."""

from .base import SourceAdapter, StaticAdapter
from .common import AsyncHTTPClient, RateLimiter
from .espn import EspnNewsAdapter
from .http import HttpJsonAdapter

__all__ = [
    "AsyncHTTPClient",
    "EspnNewsAdapter",
    "HttpJsonAdapter",
    "RateLimiter",
    "SourceAdapter",
    "StaticAdapter",
]
