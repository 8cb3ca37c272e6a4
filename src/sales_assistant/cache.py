"""
Bounded, time-boxed memoization of match results keyed by normalized query.

The cache is shared by every in-flight request. All operations are
synchronous and never await, so on a single event loop each call is atomic;
entries are self-describing (timestamped), so a lost race on eviction only
costs a re-match.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

import structlog

if TYPE_CHECKING:
    from src.sales_assistant.matcher import MatchResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: Optional["MatchResult"]
    timestamp: float


class MatchCache(ABC):
    """Interface the matcher talks to; swap in a distributed cache here."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, result: Optional["MatchResult"]) -> None:
        raise NotImplementedError

    @abstractmethod
    def invalidate(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self) -> None:
        raise NotImplementedError

    def get_trusted(self, key: str, min_similarity: float) -> Optional["MatchResult"]:
        """
        Return the cached result only if it is high-confidence.

        Low-confidence (or empty) entries are invalidated so the caller
        re-matches instead of serving a stale guess.
        """
        entry = self.get(key)
        if entry is None:
            return None

        result = entry.result
        if result is not None and result.similarity >= min_similarity:
            return result

        self.invalidate(key)
        logger.debug(
            "Discarded low-confidence cache entry",
            key=key[:80],
            similarity=None if result is None else round(result.similarity, 3),
        )
        return None


class ResultCache(MatchCache):
    """In-process LRU cache with a TTL."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.timestamp >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None

        self._entries.move_to_end(key)
        return entry

    def set(self, key: str, result: Optional["MatchResult"]) -> None:
        if key in self._entries:
            self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            try:
                self._entries.popitem(last=False)
            except KeyError:
                break
        self._entries[key] = CacheEntry(key=key, result=result, timestamp=self._clock())

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
