#!/usr/bin/env python3
"""Generic historical price feed backed by an HTTP API.

All feeds share the same update and lookup logic; only the request they
build and the response shape they parse differ, which is what a
PriceSource captures.
"""

import bisect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Any, Mapping, Protocol

from ..config import PriceFeedConfig
from ..exceptions import PriceFeedError
from ..models import PricePeriod
from ..polling import UpdateThrottle


def convert_price_feed_decimals(value: Any, decimals: int = 18) -> int:
    """Scale a decimal number to an integer with ``decimals`` places.

    Extra fractional digits are truncated.
    """
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise PriceFeedError(f"Invalid price value: {value!r}") from None

    if not number.is_finite():
        raise PriceFeedError(f"Invalid price value: {value!r}")

    with localcontext() as context:
        context.prec = 100
        truncated = number.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN)
        return int(truncated.scaleb(decimals))


class JsonFetcher(Protocol):
    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any: ...


class PriceSource(ABC):
    """Describes one external price API."""

    #: Default minimum seconds between two fetches
    min_time_between_updates: int = 43200

    @property
    @abstractmethod
    def uuid(self) -> str:
        """Human-readable identifier used in logs and errors."""

    @abstractmethod
    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        """Return the URL and query parameters covering ``[start_time, end_time]``."""

    @abstractmethod
    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        """Extract ``(timestamp, value)`` pairs, or None if the body has no data."""


class PriceFeed(ABC):
    """Interface shared by every price feed."""

    @abstractmethod
    async def update(self) -> None: ...

    @abstractmethod
    def get_current_price(self) -> int | None: ...

    @abstractmethod
    def get_historical_price(self, time: int) -> int: ...

    @abstractmethod
    def get_last_update_time(self) -> int | None: ...

    @abstractmethod
    def get_lookback(self) -> int: ...

    @abstractmethod
    def get_price_feed_decimals(self) -> int: ...


class HistoricalPriceFeed(PriceFeed):
    """Price feed that keeps the recent price history of one PriceSource."""

    def __init__(
        self,
        source: PriceSource,
        networker: JsonFetcher,
        get_time: Callable[[], Awaitable[int]],
        lookback: int,
        price_feed_decimals: int = 18,
        min_time_between_updates: int | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the price feed.

        Args:
            source: The API to fetch from
            networker: Performs the HTTP GET
            get_time: Returns the current time in seconds
            lookback: Seconds of history to fetch on every update
            price_feed_decimals: Decimals prices are scaled to
            min_time_between_updates: Overrides the source's default update interval
            logger: Logger to use, defaults to this module's logger
        """
        if lookback <= 0:
            raise ValueError(f"Lookback must be positive, got {lookback}")

        self.source = source
        self.networker = networker
        self.get_time = get_time
        self.lookback = lookback
        self.price_feed_decimals = price_feed_decimals
        self.logger = logger or logging.getLogger(__name__)

        self.throttle = UpdateThrottle(
            source.min_time_between_updates
            if min_time_between_updates is None
            else min_time_between_updates
        )
        self.current_price: int | None = None
        self.price_history: list[PricePeriod] = []

    @classmethod
    def from_config(
        cls,
        source: PriceSource,
        networker: JsonFetcher,
        get_time: Callable[[], Awaitable[int]],
        config: PriceFeedConfig,
        logger: logging.Logger | None = None,
    ) -> "HistoricalPriceFeed":
        return cls(
            source=source,
            networker=networker,
            get_time=get_time,
            lookback=config.lookback,
            price_feed_decimals=config.price_feed_decimals,
            min_time_between_updates=config.min_time_between_updates,
            logger=logger,
        )

    @property
    def uuid(self) -> str:
        return self.source.uuid

    @property
    def at(self) -> str:
        return type(self.source).__name__

    async def update(self) -> None:
        current_time = int(await self.get_time())

        if self.throttle.should_skip(current_time):
            self.logger.debug(
                "Update skipped because the last one was too recent",
                extra={
                    "at": self.at,
                    "currentTime": current_time,
                    "lastUpdateTimestamp": self.throttle.last_update_time,
                    "timeRemainingUntilUpdate": self.throttle.time_remaining(current_time),
                },
            )
            return

        self.logger.debug(
            f"Updating {self.uuid}",
            extra={
                "at": self.at,
                "currentTime": current_time,
                "lastUpdateTimestamp": self.throttle.last_update_time,
            },
        )

        url, params = self.source.build_request(current_time - self.lookback, current_time)
        response = await self.networker.get_json(url, params)

        points = self.source.parse_response(response) if response else None
        if not points:
            raise PriceFeedError(f"Could not parse price result from url {url}: {response!r}")

        history = sorted(
            (
                PricePeriod(timestamp=int(timestamp), price=convert_price_feed_decimals(value, self.price_feed_decimals))
                for timestamp, value in points
            ),
            key=lambda period: period.timestamp,
        )

        # Published together once the response is fully parsed
        self.price_history = history
        self.current_price = history[-1].price
        self.throttle.mark(current_time)

    def get_current_price(self) -> int | None:
        return self.current_price

    def get_historical_price(self, time: int) -> int:
        """Price of the last period at or before ``time``.

        Raises:
            PriceFeedError: If the feed was never updated, has no data, or
                ``time`` is before the retained window
        """
        if self.throttle.last_update_time is None:
            raise PriceFeedError(f"{self.uuid}: undefined lastUpdateTime")

        if not self.price_history:
            raise PriceFeedError(f"{self.uuid}: no valid price periods")

        first = self.price_history[0]
        if time < first.timestamp:
            raise PriceFeedError(
                f"{self.uuid}: time {time} is before first price period at {first.timestamp}"
            )

        timestamps = [period.timestamp for period in self.price_history]
        index = bisect.bisect_right(timestamps, time) - 1

        if index == len(self.price_history) - 1:
            # Past the last data point
            if self.current_price is None:
                raise PriceFeedError(f"{self.uuid}: currentPrice is null")
            return self.current_price

        return self.price_history[index].price

    def get_last_update_time(self) -> int | None:
        return self.throttle.last_update_time

    def get_lookback(self) -> int:
        return self.lookback

    def get_price_feed_decimals(self) -> int:
        return self.price_feed_decimals
