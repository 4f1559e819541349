#!/usr/bin/env python3
"""Client caching the state of optimistic oracle price requests.

Every poll re-reads the RequestPrice, ProposePrice, DisputePrice and Settle
events in the lookback window, correlates them and publishes the resulting
buckets as one snapshot.
"""

import asyncio
import logging
import math
from collections.abc import Sequence

from web3 import Web3

from ..config import OptimisticOracleConfig
from ..correlator import EventCorrelator, OnChainPriceResolver, PriceResolver
from ..models import (
    BlockRange,
    EventKind,
    OracleSnapshot,
    PriceProposal,
    PriceRequest,
    SettleableDispute,
)
from ..polling import ClientState
from ..reconciler import MultiProviderReconciler
from ..state_cache import StateCache
from ..utils.chain_reader import ChainReader


class OptimisticOracleClient:
    """Read-only view over the optimistic oracle's pending requests.

    Getters are synchronous and serve the last committed snapshot.
    """

    AT = "OptimisticOracleClient"

    def __init__(
        self,
        oracle_readers: Sequence[ChainReader],
        voting_reader: ChainReader,
        config: OptimisticOracleConfig,
        logger: logging.Logger | None = None,
        price_resolver: PriceResolver | None = None,
        symmetric_reconciliation: bool = True,
    ) -> None:
        """
        Initialize the client.

        Args:
            oracle_readers: Readers for the oracle contract, one per provider
            voting_reader: Reader for the voting contract
            config: Oracle client settings
            logger: Logger to use, defaults to this module's logger
            price_resolver: Overrides the on-chain dispute price resolver
            symmetric_reconciliation: Flag events missing from secondary providers too
        """
        if not oracle_readers:
            raise ValueError("At least one oracle reader is required")

        self.oracle = oracle_readers[0]
        self.voting = voting_reader
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self.reconciler = MultiProviderReconciler(
            oracle_readers, symmetric=symmetric_reconciliation, logger=self.logger
        )
        self.correlator = EventCorrelator(logger=self.logger)
        self.price_resolver = price_resolver or OnChainPriceResolver(self.oracle, self.voting)

        self.cache: StateCache[OracleSnapshot] = StateCache(OracleSnapshot())
        self.state = ClientState.IDLE

        # Blocks covered by the lookback window
        self.lookback_blocks = math.ceil(config.lookback / config.average_block_time)

    # Getters

    def get_unproposed_price_requests(self) -> list[PriceRequest]:
        return list(self.cache.snapshot.unproposed)

    def get_undisputed_price_proposals(self) -> list[PriceProposal]:
        return list(self.cache.snapshot.undisputed_proposals)

    def get_expired_proposals(self, proposer: str | None = None) -> list[PriceProposal]:
        """Expired, undisputed proposals, optionally only those made by ``proposer``."""
        proposals = self.cache.snapshot.expired_proposals
        if proposer is None:
            return list(proposals)
        proposer = Web3.to_checksum_address(proposer)
        return [p for p in proposals if Web3.to_checksum_address(p.proposer) == proposer]

    def get_settleable_disputes(self, disputer: str | None = None) -> list[SettleableDispute]:
        """Resolved, unsettled disputes, optionally only those raised by ``disputer``."""
        disputes = self.cache.snapshot.settleable_disputes
        if disputer is None:
            return list(disputes)
        disputer = Web3.to_checksum_address(disputer)
        return [d for d in disputes if Web3.to_checksum_address(d.disputer) == disputer]

    def get_last_update_time(self) -> int | None:
        return self.cache.snapshot.last_update_timestamp

    # Update

    async def update(self) -> None:
        """
        Re-read the lookback window and publish fresh buckets.

        A no-op when no block has been produced since the previous update.
        On failure the previous snapshot and watermark are kept.
        """
        self.state = ClientState.FETCHING
        try:
            latest_block = await self.oracle.get_latest_block()
            to_block = int(latest_block["number"])

            if self.cache.watermark.covers(to_block):
                self.logger.debug(
                    f"No new blocks since {to_block}, skipping update",
                    extra={"at": self.AT},
                )
                return

            block_range = BlockRange(
                from_block=max(to_block - self.lookback_blocks, 0),
                to_block=to_block,
            )

            requests, proposals, disputes, settles, current_time = await asyncio.gather(
                self.reconciler.reconcile(EventKind.REQUEST.value, block_range),
                self.reconciler.reconcile(EventKind.PROPOSAL.value, block_range),
                self.reconciler.reconcile(EventKind.DISPUTE.value, block_range),
                self.reconciler.reconcile(EventKind.SETTLE.value, block_range),
                self.oracle.call("getCurrentTime"),
            )
            current_time = int(current_time)

            self.state = ClientState.RECONCILING
            result = self.correlator.correlate(requests, proposals, disputes, current_time, settles)
            settleable = await self.correlator.correlate_settleable_disputes(
                disputes, self.price_resolver, settles
            )

            self.cache.commit(
                OracleSnapshot(
                    unproposed=result.unproposed,
                    undisputed_proposals=result.undisputed_active,
                    expired_proposals=result.expired,
                    settleable_disputes=tuple(settleable),
                    last_update_timestamp=current_time,
                ),
                to_block=to_block,
            )

            self.logger.debug(
                f"Optimistic Oracle state updated (blocks {block_range}): "
                f"{len(result.unproposed)} unproposed, "
                f"{len(result.undisputed_active)} undisputed, "
                f"{len(result.expired)} expired, "
                f"{len(settleable)} settleable",
                extra={"at": self.AT, "lastUpdateTimestamp": current_time},
            )
        finally:
            self.state = ClientState.IDLE
