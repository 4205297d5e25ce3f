"""Shared async HTTP utilities for network-bound adapters."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Mapping

import requests

DEFAULT_USER_AGENT = "apexpick/0.1.0"


class AsyncHTTPClient:
    """Small async wrapper running :mod:`requests` calls in the default executor."""

    def __init__(
        self,
        timeout: float | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        session: requests.Session | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = user_agent
        self._timeout = timeout

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, lambda: self._request_json(url, params=params, headers=headers)
        )

    def _request_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        response = self._session.get(
            url, params=dict(params or {}), headers=dict(headers or {}), timeout=self._timeout
        )
        response.raise_for_status()
        return response.json()


class RateLimiter:
    """Space calls at least ``1 / requests_per_second`` apart."""

    def __init__(self, requests_per_second: float | None) -> None:
        self._interval = 0.0
        if requests_per_second and requests_per_second > 0:
            self._interval = 1.0 / requests_per_second
        self._lock = asyncio.Lock()
        self._last_call = 0.0

    @property
    def interval(self) -> float:
        return self._interval

    async def wait(self) -> None:
        if self._interval <= 0:
            return
        async with self._lock:
            now = time.monotonic()
            wait_time = self._interval - (now - self._last_call)
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self._last_call = time.monotonic()


def dig(data: Any, path: str) -> Any:
    """Follow a dotted ``path`` through nested mappings and lists."""

    current = data
    for segment in (part for part in path.split(".") if part):
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def merge_headers(*layers: Mapping[str, str] | None) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update({key: value for key, value in layer.items() if value})
    return merged


__all__ = ["AsyncHTTPClient", "DEFAULT_USER_AGENT", "RateLimiter", "dig", "merge_headers"]
