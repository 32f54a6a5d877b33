"""Exceptions raised by the cache layer."""

from __future__ import annotations


class CacheError(Exception):
    """Base class for cache failures.

    Callers of the cache-aside wrapper never see these: a failing store
    degrades to a miss. They surface only through the administrative API.
    """


class InvalidKeyPatternError(CacheError):
    """A key pattern was rejected before anything was deleted."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid cache key pattern {pattern!r}: {reason}")
