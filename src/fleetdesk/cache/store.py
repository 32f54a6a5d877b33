"""In-memory TTL store.

One ``MemoryCache`` is built per process by the application lifespan and
shared by every request handler through ``app.state``. All operations are
synchronous and run on the event loop thread, so no two of them ever
interleave; the only suspension points in the cache layer are the awaited
fetchers in ``fleetdesk.cache.query``.

Entries expire lazily on read and in bulk through ``sweep()``, which the
application runs periodically. When the store is full the least recently
used live entry is evicted. Evictions and expirations are counted
separately so an undersized cache shows up in ``stats()``.
"""

from __future__ import annotations

import fnmatch
import logging
import re
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from fleetdesk.cache.errors import InvalidKeyPatternError
from fleetdesk.cache.keys import namespace

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300
DEFAULT_MAX_SIZE = 1000
MAX_PATTERN_LENGTH = 256

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A cached value and its bookkeeping."""

    key: str
    value: Any
    stored_at: float
    ttl_seconds: float
    hit_count: int = 0
    tags: frozenset[str] = frozenset()

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class KeyInfo:
    """Introspection view of a single entry."""

    key: str
    ttl_remaining: float
    hit_count: int
    tags: list[str]


@dataclass
class CacheStats:
    """Point-in-time statistics for a store."""

    size: int
    max_size: int
    active: int
    expired: int
    total_hits: int
    average_hits: float
    hits: int
    misses: int
    evictions: int
    expirations: int
    keys: list[KeyInfo] = field(default_factory=list)

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return round(self.hits / lookups, 4) if lookups else 0.0


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Validate a glob-style key pattern and compile it.

    Supports ``*``, ``?`` and ``[...]``. Rejects patterns that could only be
    interpreted as "match everything" or that are syntactically broken;
    full clears go through ``MemoryCache.clear()`` instead.
    """
    cleaned = pattern.strip() if isinstance(pattern, str) else ""
    if not cleaned:
        raise InvalidKeyPatternError(str(pattern), "pattern must not be empty")
    if len(cleaned) > MAX_PATTERN_LENGTH:
        raise InvalidKeyPatternError(cleaned, "pattern is too long")
    if not cleaned.strip("*?"):
        raise InvalidKeyPatternError(cleaned, "pattern must contain a literal part")

    depth = 0
    for char in cleaned:
        if char == "[":
            if depth:
                raise InvalidKeyPatternError(cleaned, "nested '[' in character class")
            depth = 1
        elif char == "]" and depth:
            depth = 0
    if depth:
        raise InvalidKeyPatternError(cleaned, "unterminated '[' in character class")

    try:
        return re.compile(fnmatch.translate(cleaned))
    except re.error as e:
        raise InvalidKeyPatternError(cleaned, str(e)) from e


class MemoryCache:
    """Bounded key-value store with per-entry TTL, tags and LRU eviction."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be > 0, got {default_ttl}")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._tag_index: dict[str, set[str]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        # Invalidation counters, see version()
        self._epoch = 0
        self._key_versions: dict[str, int] = {}
        self._tag_versions: dict[str, int] = {}

    def version(self, key: str, tags: Iterable[str] = ()) -> tuple[int, int, int]:
        """Invalidation version covering ``key`` stored under ``tags``.

        Changes whenever a removal could have hit the key, whether or not it
        is currently stored: an exact delete of the key, a tag delete of one
        of its tags (its namespace included), a pattern delete or a clear.
        Removals of unrelated keys and tags leave it unchanged. The
        cache-aside wrapper compares versions around an awaited fetch so a
        result that predates an invalidation is neither stored nor shared.
        """
        scope = frozenset(tags) | {namespace(key)}
        return (
            self._epoch,
            self._key_versions.get(key, 0),
            sum(self._tag_versions.get(tag, 0) for tag in scope),
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for ``key``, or ``default`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        if entry.is_expired(self._clock()):
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            return default

        entry.hit_count += 1
        self._hits += 1
        self._entries.move_to_end(key)
        return entry.value

    def has(self, key: str) -> bool:
        """Check if a fresh entry exists, without counting a hit."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            self._remove(key)
            self._expirations += 1
            return False
        return True

    def entry(self, key: str) -> CacheEntry | None:
        """Return the raw entry if fresh. Does not count as a hit."""
        return self._entries.get(key) if self.has(key) else None

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        """Insert or overwrite ``key``.

        The key's namespace is always added to ``tags``.
        """
        ttl_seconds = self.default_ttl if ttl is None else ttl
        if ttl_seconds <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl_seconds}")

        now = self._clock()
        if key in self._entries:
            self._remove(key)
        elif len(self._entries) >= self.max_size:
            self._make_room(now)

        entry_tags = frozenset(tags) | {namespace(key)}
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            stored_at=now,
            ttl_seconds=ttl_seconds,
            tags=entry_tags,
        )
        for tag in entry_tags:
            self._tag_index.setdefault(tag, set()).add(key)

    def increment(self, key: str, by: int = 1, ttl: float | None = None) -> int:
        """Add ``by`` to a numeric entry, starting from 0 when absent."""
        current = self.get(key) or 0
        value = int(current) + by
        self.set(key, value, ttl)
        return value

    def decrement(self, key: str, by: int = 1, ttl: float | None = None) -> int:
        return self.increment(key, -by, ttl)

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns False if it was not present."""
        self._key_versions[key] = self._key_versions.get(key, 0) + 1
        return self._remove(key)

    def delete_many(self, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def delete_by_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob pattern.

        Raises InvalidKeyPatternError, without deleting anything, if the
        pattern is malformed.
        """
        regex = compile_pattern(pattern)
        # A pattern may cover keys that are being fetched but not stored yet
        self._epoch += 1
        matched = [key for key in self._entries if regex.match(key)]
        return sum(1 for key in matched if self._remove(key))

    def delete_by_tag(self, *tags: str) -> int:
        """Remove every entry carrying any of ``tags``."""
        keys: set[str] = set()
        for tag in tags:
            self._tag_versions[tag] = self._tag_versions.get(tag, 0) + 1
            keys.update(self._tag_index.get(tag, ()))
        return sum(1 for key in keys if self._remove(key))

    def keys_matching(self, pattern: str) -> list[str]:
        regex = compile_pattern(pattern)
        return [key for key in self._entries if regex.match(key)]

    def sweep(self) -> int:
        """Purge all expired entries. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> None:
        """Drop every entry. Counters are kept."""
        self._epoch += 1
        self._key_versions.clear()
        self._tag_versions.clear()
        self._entries.clear()
        self._tag_index.clear()

    def reset_stats(self) -> None:
        self._hits = self._misses = self._evictions = self._expirations = 0

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def stats(self, include_keys: bool = True) -> CacheStats:
        now = self._clock()
        entries = list(self._entries.values())
        expired = sum(1 for entry in entries if entry.is_expired(now))
        total_hits = sum(entry.hit_count for entry in entries)
        keys = (
            [
                KeyInfo(
                    key=entry.key,
                    ttl_remaining=max(0.0, round(entry.expires_at - now, 3)),
                    hit_count=entry.hit_count,
                    tags=sorted(entry.tags),
                )
                for entry in entries
            ]
            if include_keys
            else []
        )
        return CacheStats(
            size=len(entries),
            max_size=self.max_size,
            active=len(entries) - expired,
            expired=expired,
            total_hits=total_hits,
            average_hits=total_hits / len(entries) if entries else 0.0,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
            keys=keys,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry.tags:
            members = self._tag_index.get(tag)
            if members is not None:
                members.discard(key)
                if not members:
                    del self._tag_index[tag]
        return True

    def _make_room(self, now: float) -> None:
        """Free one slot: expired entries first, then the LRU entry."""
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)

        while len(self._entries) >= self.max_size:
            lru_key = next(iter(self._entries))
            self._remove(lru_key)
            self._evictions += 1
            logger.debug(f"Evicted live cache entry under size pressure: {lru_key}")
