"""
State management utilities for the UMA bot clients.

A client owns one StateCache: an immutable snapshot of the last reconciled
view plus the watermark of the next block to query. Updates build a new
snapshot off to the side and publish it with a single commit.
"""

import time
from typing import Any, Generic, TypeVar

S = TypeVar("S")


class Watermark:
    """
    Lower bound of the next block query.

    After a range ``[a, b]`` has been incorporated the watermark is ``b + 1``.
    It never moves backwards.
    """

    def __init__(self, start_block: int = 0):
        if start_block < 0:
            raise ValueError(f"Watermark start block must be non-negative, got {start_block}")
        self._next_block = start_block
        self._last_queried_block: int | None = None

    @property
    def next_block(self) -> int:
        return self._next_block

    @property
    def last_queried_block(self) -> int | None:
        """Highest block ever successfully queried, None before the first commit."""
        return self._last_queried_block

    def covers(self, to_block: int) -> bool:
        """True when ``to_block`` is already behind the watermark."""
        return to_block < self._next_block

    def advance(self, to_block: int) -> None:
        """Record that every block up to ``to_block`` has been incorporated."""
        if self._last_queried_block is None or to_block > self._last_queried_block:
            self._last_queried_block = to_block
        self._next_block = max(self._next_block, to_block + 1)


class StateCache(Generic[S]):
    """
    Holds the last committed snapshot of a client and its watermark.

    Getters read ``snapshot`` which is only ever replaced as a whole, so a
    reader sees either the previous or the next state, never a mix.
    """

    def __init__(self, initial: S, start_block: int = 0):
        """
        Initialize the cache.

        Args:
            initial: Snapshot served before the first successful update
            start_block: First block the owning client should query
        """
        self._snapshot: S = initial
        self.watermark = Watermark(start_block)
        self.update_count = 0
        self.last_commit_time: float | None = None

    @property
    def snapshot(self) -> S:
        return self._snapshot

    def commit(self, snapshot: S, to_block: int | None = None) -> None:
        """
        Publish a fully built snapshot and advance the watermark.

        Args:
            snapshot: The new state
            to_block: Upper bound of the range that produced it, if block based
        """
        self._snapshot = snapshot
        if to_block is not None:
            self.watermark.advance(to_block)
        self.update_count += 1
        self.last_commit_time = time.time()

    def get_stats(self) -> dict[str, Any]:
        """
        Get current cache statistics.

        Returns:
            Dictionary with state metrics
        """
        return {
            'update_count': self.update_count,
            'next_block': self.watermark.next_block,
            'last_queried_block': self.watermark.last_queried_block,
            'last_commit_time': self.last_commit_time,
        }
