#!/usr/bin/env python3
"""Price sources for the HTTP price feeds.

Each source knows how to ask one external API for a date range and how to
pull ``(timestamp, value)`` pairs out of its response. Everything else
(throttling, decimal scaling, history lookup) lives in HistoricalPriceFeed.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo

from .price_feed import PriceSource


def _date_string(seconds: int) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d")


def _day_to_seconds(value: str) -> int:
    """Start of the UTC day of a ``YYYY-MM-DD...`` string."""
    day = datetime.strptime(value[:10], "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int(day.timestamp())


def _month_to_seconds(year: int, month: int) -> int:
    return int(datetime(year, month, 1, tzinfo=timezone.utc).timestamp())


class CommoditiesApiSource(PriceSource):
    """Daily commodity rates from commodities-api.com.

    The API quotes how much of the commodity one unit of the base currency
    buys, so the price is the base rate divided by the commodity rate.
    """

    URL = "https://commodities-api.com/api/timeseries"

    def __init__(self, commodity: str, base_currency: str, api_key: str):
        self.commodity = commodity
        self.base_currency = base_currency
        self.api_key = api_key

    @property
    def uuid(self) -> str:
        return f"CommoditiesApi-{self.commodity}-{self.base_currency}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        return self.URL, {
            "access_key": self.api_key,
            "start_date": _date_string(start_time),
            "end_date": _date_string(end_time),
            "base": self.base_currency,
            "symbols": self.commodity,
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        rates = (response.get("data") or {}).get("rates")
        if not rates:
            return None
        return [
            (_day_to_seconds(day), Decimal(str(rate[self.base_currency])) / Decimal(str(rate[self.commodity])))
            for day, rate in rates.items()
            if rate.get(self.commodity) and self.base_currency in rate
        ]


class TwelveDataSource(PriceSource):
    """Intraday close prices from twelvedata.com."""

    URL = "https://api.twelvedata.com/time_series"
    min_time_between_updates = 900

    def __init__(self, symbol: str, api_key: str, interval: str = "1min", timezone_name: str = "UTC"):
        self.symbol = symbol
        self.api_key = api_key
        self.interval = interval
        self.timezone_name = timezone_name
        self.tz = ZoneInfo(timezone_name)

    @property
    def uuid(self) -> str:
        return f"TwelveData-{self.symbol}"

    def _format(self, seconds: int) -> str:
        return datetime.fromtimestamp(seconds, tz=self.tz).strftime("%Y-%m-%d %H:%M:%S")

    def _to_seconds(self, value: str) -> int:
        fmt = "%Y-%m-%d" if len(value) == 10 else "%Y-%m-%d %H:%M:%S"
        return int(datetime.strptime(value, fmt).replace(tzinfo=self.tz).timestamp())

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        return self.URL, {
            "apikey": self.api_key,
            "interval": self.interval,
            "timezone": self.timezone_name,
            "order": "ASC",
            "symbol": self.symbol,
            "start_date": self._format(start_time),
            "end_date": self._format(end_time),
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        values = response.get("values")
        if not values:
            return None
        return [(self._to_seconds(item["datetime"]), item["close"]) for item in values]


class MarketStackSource(PriceSource):
    """End-of-day open prices from marketstack.com."""

    URL = "https://api.marketstack.com/v1/eod"

    def __init__(self, symbol: str, api_key: str):
        self.symbol = symbol
        self.api_key = api_key

    @property
    def uuid(self) -> str:
        return f"MarketStack-{self.symbol}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        return self.URL, {
            "symbols": self.symbol,
            "access_key": self.api_key,
            "date_from": _date_string(start_time),
            "date_to": _date_string(end_time),
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        data = response.get("data")
        if not data:
            return None
        return [(_day_to_seconds(item["date"]), item["open"]) for item in data]


class StLouisFedSource(PriceSource):
    """Economic series observations from the St. Louis Fed (FRED)."""

    URL = "https://api.stlouisfed.org/fred/series/observations"

    #: FRED's marker for a missing observation
    MISSING_VALUE = "."

    def __init__(self, series_id: str, api_key: str):
        self.series_id = series_id
        self.api_key = api_key

    @property
    def uuid(self) -> str:
        return f"StLouisFed-{self.series_id}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        return self.URL, {
            "file_type": "json",
            "api_key": self.api_key,
            "series_id": self.series_id,
            "observation_start": _date_string(start_time),
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        observations = response.get("observations")
        if not observations:
            return None
        return [
            (_day_to_seconds(item["date"]), item["value"])
            for item in observations
            if item.get("value") not in (None, self.MISSING_VALUE)
        ]


class HmLandRegistrySource(PriceSource):
    """UK house price index from HM Land Registry's SPARQL endpoint."""

    URL = "http://landregistry.data.gov.uk/landregistry/query"
    min_time_between_updates = 900

    QUERY_TEMPLATE = """
PREFIX xsd: <http://www.w3.org/2001/XMLSchema#>
PREFIX ukhpi: <http://landregistry.data.gov.uk/def/ukhpi/>

SELECT ?region ?date ?hpi
{{
  ?obs ukhpi:refRegion ?region ;
       ukhpi:refPeriodStart ?date ;
       ukhpi:housePriceIndex ?hpi .

  FILTER (
    ?date > "{start}"^^xsd:date &&
    ?date <= "{end}"^^xsd:date
  )

  FILTER (?region = <http://landregistry.data.gov.uk/id/region/{region}>)
}}
ORDER BY ASC(?date)
"""

    def __init__(self, region: str = "united-kingdom"):
        self.region = region

    @property
    def uuid(self) -> str:
        return f"HmLandRegistry-{self.region}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        query = self.QUERY_TEMPLATE.format(
            start=_date_string(start_time),
            end=_date_string(end_time),
            region=self.region,
        )
        return self.URL, {"query": query, "output": "json"}

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        bindings = (response.get("results") or {}).get("bindings")
        if not bindings:
            return None
        return [(_day_to_seconds(item["date"]["value"]), item["hpi"]["value"]) for item in bindings]


class KapsarcSource(PriceSource):
    """Monthly CPI records from the KAPSARC data portal."""

    URL = "https://datasource.kapsarc.org/api/records/1.0/search/"

    def __init__(self, dataset: str = "consumer-price-index4", item: str = "All items", rows: int = 20):
        self.dataset = dataset
        self.item = item
        self.rows = rows

    @property
    def uuid(self) -> str:
        return f"Kapsarc-{self.dataset}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        return self.URL, {
            "dataset": self.dataset,
            "q": f"date:[{_date_string(start_time)} TO {_date_string(end_time)}]",
            "lang": "EN",
            "rows": self.rows,
            "sort": "-date",
            "refine.item": self.item,
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        records = response.get("records")
        if not records:
            return None
        points = []
        for record in records:
            fields = record["fields"]
            year, month = fields["date"].split("-")[:2]
            points.append((_month_to_seconds(int(year), int(month)), fields["value"]))
        return points


class StatisticsNetherlandsSource(PriceSource):
    """Dutch house price index from the CBS open data OData API."""

    BASE_URL = "https://opendata.cbs.nl/ODataApi/odata"

    def __init__(self, table: str = "83906ENG", measure: str = "PriceIndexOfExistingOwnHomes_1"):
        self.table = table
        self.measure = measure

    @property
    def uuid(self) -> str:
        return f"StatisticsNetherlands-{self.table}"

    @staticmethod
    def _format_period(seconds: int) -> str:
        """CBS monthly period code, e.g. ``2023MM01``."""
        date = datetime.fromtimestamp(seconds, tz=timezone.utc)
        return f"{date.year}MM{date.month:02d}"

    @staticmethod
    def _period_to_seconds(period: str) -> int:
        return _month_to_seconds(int(period[0:4]), int(period[6:8]))

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        url = f"{self.BASE_URL}/{self.table}/UntypedDataSet"
        return url, {"$filter": f"Periods ge '{self._format_period(start_time)}'"}

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        values = response.get("value")
        if not values:
            return None
        return [
            (self._period_to_seconds(item["Periods"]), str(item[self.measure]).strip())
            for item in values
            # Yearly totals (``2023JJ00``) share the table with monthly rows
            if "MM" in item["Periods"] and str(item.get(self.measure) or "").strip() not in ("", ".")
        ]


class PolygonAggregatesSource(PriceSource):
    """Daily aggregate close prices from polygon.io (e.g. the URTH ETF)."""

    BASE_URL = "https://api.polygon.io/v2/aggs/ticker"

    def __init__(self, ticker: str, api_key: str, limit: int = 120):
        self.ticker = ticker
        self.api_key = api_key
        self.limit = limit

    @property
    def uuid(self) -> str:
        return f"Polygon-{self.ticker}"

    def build_request(self, start_time: int, end_time: int) -> tuple[str, dict[str, Any]]:
        url = (
            f"{self.BASE_URL}/{self.ticker}/range/1/day/"
            f"{_date_string(start_time)}/{_date_string(end_time)}"
        )
        return url, {
            "adjusted": "true",
            "sort": "asc",
            "limit": self.limit,
            "apiKey": self.api_key,
        }

    def parse_response(self, response: Any) -> list[tuple[int, Any]] | None:
        results = response.get("results")
        if not results:
            return None
        # Aggregate timestamps are in milliseconds
        return [(int(item["t"]) // 1000, item["c"]) for item in results]
