"""
Polling primitives for the UMA bot clients.

BlockCursor turns a watermark into the next block range, UpdateThrottle
bounds how often time-based sources are refreshed, and PollingController
drives periodic ``update()`` calls on a set of clients.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any, Protocol

from .models import BlockRange
from .state_cache import Watermark


class ClientState(Enum):
    """Lifecycle of one ``update()`` call."""
    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"


class Updatable(Protocol):
    async def update(self) -> None: ...


class BlockCursor:
    """Computes the next block range to query from a watermark."""

    def __init__(self, watermark: Watermark):
        self.watermark = watermark

    def next_range(self, latest_block: int, ending_block: int | None = None) -> BlockRange:
        """
        Range from the watermark up to ``ending_block`` or the chain head.

        The range is empty when the watermark already covers the upper bound.
        """
        to_block = ending_block if ending_block is not None else latest_block
        return BlockRange(from_block=self.watermark.next_block, to_block=to_block)


class UpdateThrottle:
    """Minimum-interval guard for sources refreshed on a clock."""

    def __init__(self, min_time_between_updates: int):
        if min_time_between_updates < 0:
            raise ValueError(
                f"Minimum time between updates must be non-negative, got {min_time_between_updates}"
            )
        self.min_time_between_updates = min_time_between_updates
        self.last_update_time: int | None = None

    def should_skip(self, current_time: int) -> bool:
        return (
            self.last_update_time is not None
            and self.last_update_time + self.min_time_between_updates > current_time
        )

    def time_remaining(self, current_time: int) -> int:
        if self.last_update_time is None:
            return 0
        return max(self.last_update_time + self.min_time_between_updates - current_time, 0)

    def mark(self, current_time: int) -> None:
        self.last_update_time = current_time


class PollingController:
    """
    Runs ``update()`` on a set of clients at a fixed interval.

    Each target gets its own lock so two updates of the same client never
    overlap. A failing target is logged and the remaining targets still run;
    the failed one is retried on the next tick.
    """

    def __init__(
        self,
        targets: Sequence[Updatable],
        interval: int = 60,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the controller.

        Args:
            targets: Clients whose ``update()`` is called every cycle
            interval: Seconds to sleep between cycles
            logger: Logger to use, defaults to this module's logger
        """
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")

        self.targets = list(targets)
        self.interval = interval
        self.logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

        self._locks: dict[int, asyncio.Lock] = {}
        self.is_running = False
        self.cycles = 0
        self.failures = 0
        self.last_errors: dict[str, str] = {}

    def _lock_for(self, target: Updatable) -> asyncio.Lock:
        return self._locks.setdefault(id(target), asyncio.Lock())

    @staticmethod
    def _target_name(target: Updatable) -> str:
        return getattr(target, "AT", type(target).__name__)

    async def poll_once(self) -> bool:
        """
        Run one cycle over every target.

        Returns:
            True if every target updated successfully
        """
        all_ok = True
        for target in self.targets:
            name = self._target_name(target)
            async with self._lock_for(target):
                try:
                    await target.update()
                    self.last_errors.pop(name, None)
                except Exception as e:
                    all_ok = False
                    self.failures += 1
                    self.last_errors[name] = str(e)
                    self.logger.error(
                        f"Update failed, will retry next cycle: {e}",
                        extra={"at": name},
                        exc_info=True,
                    )
        self.cycles += 1
        return all_ok

    async def start(self, on_cycle: Callable[[], Awaitable[Any]] | None = None) -> None:
        """
        Start polling until ``stop()`` is called.

        Args:
            on_cycle: Optional coroutine run after every successful cycle
        """
        if self.is_running:
            self.logger.warning("Polling already running")
            return

        self.is_running = True
        self.logger.info(
            f"Starting polling of {len(self.targets)} clients every {self.interval} seconds"
        )

        while self.is_running:
            try:
                if await self.poll_once() and on_cycle is not None:
                    await on_cycle()
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                self.logger.info("Polling cancelled")
                break
            except Exception as e:
                self.logger.error(f"Error in polling loop: {e}", exc_info=True)
                # Continue polling despite errors
                await asyncio.sleep(self.interval)

    async def stop(self) -> None:
        """Stop the polling loop."""
        self.logger.info("Stopping polling")
        self.is_running = False

    def get_status(self) -> dict[str, Any]:
        """
        Get current status of the polling controller.

        Returns:
            Dictionary with status information
        """
        return {
            "is_running": self.is_running,
            "interval": self.interval,
            "targets": [self._target_name(target) for target in self.targets],
            "cycles": self.cycles,
            "failures": self.failures,
            "last_errors": dict(self.last_errors),
        }
