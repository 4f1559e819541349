"""HTTP price feeds sharing one update and lookup implementation."""

from .networker import HttpJsonFetcher
from .price_feed import HistoricalPriceFeed, PriceFeed, PriceSource, convert_price_feed_decimals
from .sources import (
    CommoditiesApiSource,
    HmLandRegistrySource,
    KapsarcSource,
    MarketStackSource,
    PolygonAggregatesSource,
    StatisticsNetherlandsSource,
    StLouisFedSource,
    TwelveDataSource,
)

__all__ = [
    "CommoditiesApiSource",
    "HistoricalPriceFeed",
    "HmLandRegistrySource",
    "HttpJsonFetcher",
    "KapsarcSource",
    "MarketStackSource",
    "PolygonAggregatesSource",
    "PriceFeed",
    "PriceSource",
    "StLouisFedSource",
    "StatisticsNetherlandsSource",
    "TwelveDataSource",
    "convert_price_feed_decimals",
]
