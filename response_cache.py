"""Time-boxed in-memory memoization of completion results."""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


@dataclass(slots=True)
class CacheEntry:
    key: str
    payload: Any
    stored_at: float


def cache_key(operation: str, params: Any) -> str:
    """Deterministic key for (operation, params).

    Keys are sorted so that dicts built in a different insertion order still
    hit the same entry.
    """
    return f"{operation}:{json.dumps(_canonical(params), sort_keys=True, separators=(',', ':'))}"


def _canonical(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonical(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class ResponseCache:
    """Process-local cache with lazy expiry.

    Expired entries are reported absent and replaced by the next ``set`` on the
    same key; there is no background sweep and no capacity bound. Each cached
    payload freezes one answer of a non-deterministic upstream for ``ttl_seconds``.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, operation: str, params: Any) -> Any | None:
        key = cache_key(operation, params)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            LOGGER.debug("Cache entry expired for operation=%s", operation)
            return None
        LOGGER.debug("Cache hit for operation=%s", operation)
        return entry.payload

    def set(self, operation: str, params: Any, payload: Any) -> None:
        key = cache_key(operation, params)
        self._entries[key] = CacheEntry(key=key, payload=payload, stored_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {"size": len(self._entries)}

    def __len__(self) -> int:
        return len(self._entries)
