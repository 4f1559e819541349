"""
Read access to a single contract over a single RPC provider.

"""

import logging
from typing import Any, Mapping

from web3.contract import AsyncContract

from ..models import BlockRange, ChainEvent, EventKind


class ChainReader:
    """
    Fetches event logs and view-call results for one contract.

    Every method is a suspension point; nothing here caches.
    """

    def __init__(self, contract: AsyncContract, name: str = "", logger: logging.Logger | None = None):
        """
        Initialize the reader.

        Args:
            contract: AsyncWeb3 contract bound to the provider to read from
            name: Label used in log messages
            logger: Logger to use, defaults to this module's logger
        """
        self.contract = contract
        self.name = name or str(contract.address)
        self.logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def address(self) -> str:
        return self.contract.address

    @property
    def w3(self):
        return self.contract.w3

    async def get_past_events(
        self,
        event_name: str,
        block_range: BlockRange,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[ChainEvent]:
        """
        Fetch and decode the logs of one event over an inclusive block range.

        Args:
            event_name: ABI name of the event
            block_range: Blocks to search
            argument_filters: Optional indexed-argument filters

        Returns:
            Events ordered by block number and log index
        """
        if not hasattr(self.contract.events, event_name):
            raise ValueError(f"Event {event_name} not found in contract ABI")
        event_obj = getattr(self.contract.events, event_name)

        logs = await event_obj.get_logs(
            argument_filters=dict(argument_filters) if argument_filters else None,
            from_block=block_range.from_block,
            to_block=block_range.to_block,
        )

        kind = EventKind(event_name)
        events = [ChainEvent.from_event_data(kind, log) for log in logs]
        events.sort(key=lambda event: (event.block_number, event.log_index))

        self.logger.debug(f"{self.name}: {len(events)} {event_name} events in blocks {block_range}")
        return events

    async def call(
        self,
        function_name: str,
        *args: Any,
        transaction: Mapping[str, Any] | None = None,
    ) -> Any:
        """Run a view call against the contract at the latest block."""
        function = getattr(self.contract.functions, function_name)
        return await function(*args).call(dict(transaction) if transaction else None)

    async def get_latest_block(self) -> Mapping[str, Any]:
        """Return the latest block (number, timestamp, ...)."""
        return await self.w3.eth.get_block("latest")

    async def get_block_number(self) -> int:
        return await self.w3.eth.block_number
