#!/usr/bin/env python3
"""Client caching deposits and whitelisted tokens of an L2 deposit box.

Unlike the oracle client this one is incremental: each poll only reads the
blocks after the watermark and merges them into the existing snapshot.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Mapping

from eth_abi import encode
from web3 import Web3

from ..config import BridgeConfig
from ..models import BridgeSnapshot, ChainEvent, Deposit, EventKind
from ..polling import BlockCursor, ClientState
from ..reconciler import MultiProviderReconciler
from ..state_cache import StateCache
from ..utils.chain_reader import ChainReader

DEPOSIT_HASH_TYPES = [
    "uint256", "uint64", "address", "address", "uint256", "uint64", "uint64", "uint32", "address"
]


def generate_deposit_hash(args: Mapping[str, Any]) -> str:
    """Content hash over every immutable field of a FundsDeposited event."""
    encoded = encode(
        DEPOSIT_HASH_TYPES,
        [
            int(args["chainId"]),
            int(args["depositId"]),
            Web3.to_checksum_address(args["l1Recipient"]),
            Web3.to_checksum_address(args["l2Sender"]),
            int(args["amount"]),
            int(args["slowRelayFeePct"]),
            int(args["instantRelayFeePct"]),
            int(args["quoteTimestamp"]),
            Web3.to_checksum_address(args["l1Token"]),
        ],
    )
    return Web3.to_hex(Web3.keccak(encoded))


def deposit_from_event(event: ChainEvent) -> Deposit:
    args = event.args
    return Deposit(
        chain_id=int(args["chainId"]),
        deposit_id=int(args["depositId"]),
        deposit_hash=generate_deposit_hash(args),
        l1_recipient=Web3.to_checksum_address(args["l1Recipient"]),
        l2_sender=Web3.to_checksum_address(args["l2Sender"]),
        l1_token=Web3.to_checksum_address(args["l1Token"]),
        amount=int(args["amount"]),
        slow_relay_fee_pct=int(args["slowRelayFeePct"]),
        instant_relay_fee_pct=int(args["instantRelayFeePct"]),
        quote_timestamp=int(args["quoteTimestamp"]),
        deposit_contract=event.address,
    )


class InsuredBridgeL2Client:
    """Tracks deposits made into an L2 BridgeDepositBox.

    Every poll is cross-checked across all configured L2 providers before
    anything is merged.
    """

    AT = "InsuredBridgeL2Client"

    def __init__(
        self,
        readers: Sequence[ChainReader],
        config: BridgeConfig,
        logger: logging.Logger | None = None,
        symmetric_reconciliation: bool = True,
    ) -> None:
        """
        Initialize the client.

        Args:
            readers: Readers for the deposit box, one per L2 provider
            config: Bridge client settings
            logger: Logger to use, defaults to this module's logger
            symmetric_reconciliation: Flag events missing from secondary providers too
        """
        if not readers:
            raise ValueError("At least one L2 reader is required")

        self.readers = list(readers)
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

        self.reconciler = MultiProviderReconciler(
            self.readers, symmetric=symmetric_reconciliation, logger=self.logger
        )
        self.cache: StateCache[BridgeSnapshot] = StateCache(
            BridgeSnapshot(), start_block=config.starting_block
        )
        self.cursor = BlockCursor(self.cache.watermark)
        self.state = ClientState.IDLE

    # Getters

    def get_all_deposits(self) -> list[Deposit]:
        return list(self.cache.snapshot.deposits.values())

    def get_all_deposits_for_l1_token(self, l1_token: str) -> list[Deposit]:
        l1_token = Web3.to_checksum_address(l1_token)
        return [d for d in self.cache.snapshot.deposits.values() if d.l1_token == l1_token]

    def is_whitelisted_token(self, l1_token: str) -> bool:
        return Web3.to_checksum_address(l1_token) in self.cache.snapshot.whitelisted_tokens

    def get_l2_token_for(self, l1_token: str) -> str | None:
        return self.cache.snapshot.whitelisted_tokens.get(Web3.to_checksum_address(l1_token))

    def get_deposit_by_hash(self, deposit_hash: str) -> Deposit | None:
        return self.cache.snapshot.deposits.get(deposit_hash)

    def get_last_update_block(self) -> int | None:
        return self.cache.watermark.last_queried_block

    # Update

    async def update(self) -> None:
        """
        Merge deposits and whitelist changes from the unsearched blocks.

        On failure nothing is merged and the same range is searched again.
        """
        self.state = ClientState.FETCHING
        try:
            latest_block = (
                self.config.ending_block
                if self.config.ending_block is not None
                else await self.readers[0].get_block_number()
            )
            block_range = self.cursor.next_range(latest_block, self.config.ending_block)

            if block_range.is_empty:
                self.logger.debug(
                    "All blocks are searched, returning early",
                    extra={"at": self.AT, "toBlock": block_range.to_block},
                )
                return

            deposit_events, whitelist_events = await asyncio.gather(
                self.reconciler.reconcile(EventKind.DEPOSIT.value, block_range),
                self.reconciler.reconcile(EventKind.WHITELIST_TOKEN.value, block_range),
            )

            self.state = ClientState.RECONCILING
            snapshot = self.cache.snapshot

            # Oldest to newest, so the latest whitelisting of a token wins
            whitelisted_tokens = dict(snapshot.whitelisted_tokens)
            for event in sorted(whitelist_events, key=lambda e: (e.block_number, e.log_index)):
                l1_token = Web3.to_checksum_address(event.args["l1Token"])
                whitelisted_tokens[l1_token] = Web3.to_checksum_address(event.args["l2Token"])

            deposits = dict(snapshot.deposits)
            new_deposits = 0
            for event in deposit_events:
                deposit = deposit_from_event(event)
                if deposit.deposit_hash not in deposits:
                    deposits[deposit.deposit_hash] = deposit
                    new_deposits += 1

            self.cache.commit(
                BridgeSnapshot(deposits=deposits, whitelisted_tokens=whitelisted_tokens),
                to_block=block_range.to_block,
            )

            self.logger.debug(
                f"InsuredBridgeL2Client updated (blocks {block_range}): "
                f"{new_deposits} new deposits, {len(whitelisted_tokens)} whitelisted tokens",
                extra={"at": self.AT},
            )
        finally:
            self.state = ClientState.IDLE
