#!/usr/bin/env python3
"""Cross-checks of event logs served by redundant RPC providers.

The first provider is canonical. Before its events are trusted, the same
query is run against every other provider and the logs are compared. Any
disagreement halts the poll with ProviderDivergenceError.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Mapping

from .exceptions import ProviderDivergenceError
from .models import BlockRange, ChainEvent
from .utils.chain_reader import ChainReader


class MultiProviderReconciler:
    """Fetches the same event window from several providers and asserts agreement.

    With ``symmetric=True`` (the default) a log present in one provider but
    missing from another, in either direction, is a divergence. With
    ``symmetric=False`` only extra events in secondary providers are flagged.
    """

    def __init__(
        self,
        readers: Sequence[ChainReader],
        symmetric: bool = True,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            readers: One reader per provider, all bound to the same contract
            symmetric: Also flag events missing from secondary providers
            logger: Logger to use, defaults to this module's logger
        """
        if not readers:
            raise ValueError("At least one chain reader is required")

        self.readers = list(readers)
        self.symmetric = symmetric
        self.logger = logger or logging.getLogger(__name__)

    async def reconcile(
        self,
        event_name: str,
        block_range: BlockRange,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[ChainEvent]:
        """Fetch ``event_name`` over ``block_range`` from every provider.

        Returns:
            The canonical (provider 0) events

        Raises:
            ProviderDivergenceError: If the providers disagree
        """
        results = await asyncio.gather(*(
            reader.get_past_events(event_name, block_range, argument_filters)
            for reader in self.readers
        ))
        self.verify_agreement(event_name, results)
        return list(results[0])

    def verify_agreement(self, event_name: str, results: Sequence[Sequence[ChainEvent]]) -> None:
        """Compare per-provider results for one query.

        The forward check matches transaction hashes. The symmetric check
        matches individual logs by ``(transaction_hash, log_index)`` so a
        provider dropping one of several logs from a transaction is caught.

        Raises:
            ProviderDivergenceError: Naming the first mismatching transaction
                hash and the index of the provider that disagrees
        """
        if len(results) < 2:
            return

        canonical_hashes = {event.transaction_hash for event in results[0]}
        canonical_logs = [event.unique_key for event in results[0]]

        for index, events in enumerate(results[1:], start=1):
            for event in events:
                if event.transaction_hash not in canonical_hashes:
                    self._diverged(
                        f"Could not find {event_name} transaction hash {event.transaction_hash} "
                        f"in provider 0 (reported by provider {index})",
                        event_name, event.transaction_hash, index,
                    )

            if not self.symmetric:
                continue

            provider_logs = {event.unique_key for event in events}
            for tx_hash, log_index in canonical_logs:
                if (tx_hash, log_index) not in provider_logs:
                    self._diverged(
                        f"{event_name} log {log_index} of transaction {tx_hash} reported by "
                        f"provider 0 is missing from provider {index}",
                        event_name, tx_hash, index,
                    )
            for tx_hash, log_index in provider_logs.difference(canonical_logs):
                self._diverged(
                    f"{event_name} log {log_index} of transaction {tx_hash} reported by "
                    f"provider {index} is missing from provider 0",
                    event_name, tx_hash, index,
                )

        self.logger.debug(
            f"{len(results)} providers agree on {len(canonical_logs)} {event_name} events"
        )

    def _diverged(self, message: str, event_name: str, tx_hash: str, provider_index: int) -> None:
        self.logger.error(message, extra={"at": "MultiProviderReconciler"})
        raise ProviderDivergenceError(message, event_name, tx_hash, provider_index)
