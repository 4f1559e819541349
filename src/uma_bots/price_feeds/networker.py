"""
HTTP JSON fetching for the price feeds.

"""

import logging
from typing import Any, Mapping

import httpx


class HttpJsonFetcher:
    """GETs a URL and returns the decoded JSON body.

    No retries; transport and HTTP status errors propagate to the caller.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        logger: logging.Logger | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self.logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        """
        Fetch ``url`` and decode the response as JSON.

        Args:
            url: Endpoint to request
            params: Query string parameters

        Returns:
            Parsed JSON body
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(url, params=dict(params) if params else None)
            response.raise_for_status()
            self.logger.debug(f"GET {response.url} -> {response.status_code}")
            return response.json()
