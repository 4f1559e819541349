#!/usr/bin/env python3
"""Data models for the UMA bots.

This module provides immutable data classes for the on-chain events the
clients ingest and for the projected views they hand to consumers.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Mapping

from web3 import Web3


class EventKind(str, Enum):
    """On-chain event names consumed by the clients."""
    REQUEST = "RequestPrice"
    PROPOSAL = "ProposePrice"
    DISPUTE = "DisputePrice"
    SETTLE = "Settle"
    DEPOSIT = "FundsDeposited"
    WHITELIST_TOKEN = "WhitelistToken"


class RequestState(IntEnum):
    """Optimistic oracle request states, in contract enum order."""
    INVALID = 0
    REQUESTED = 1
    PROPOSED = 2
    EXPIRED = 3
    DISPUTED = 4
    RESOLVED = 5
    SETTLED = 6


def to_hex_string(value: Any) -> str:
    """Render bytes-like values as 0x hex, leave strings alone."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return str(value)


@dataclass(frozen=True, slots=True)
class ChainEvent:
    """An event log observed on-chain.

    Attributes:
        kind: Which event this is
        args: Decoded event arguments keyed by their ABI names
        block_number: Block the event was emitted in
        transaction_hash: 0x-prefixed hash of the emitting transaction
        log_index: Position of the log within the block
        address: Address of the emitting contract
    """

    kind: EventKind
    args: Mapping[str, Any]
    block_number: int
    transaction_hash: str
    log_index: int = 0
    address: str = ""

    @classmethod
    def from_event_data(cls, kind: EventKind, event: Mapping[str, Any]) -> "ChainEvent":
        """Build a ChainEvent from a web3 ``EventData`` mapping."""
        return cls(
            kind=kind,
            args=dict(event["args"]),
            block_number=int(event["blockNumber"]),
            transaction_hash=to_hex_string(event["transactionHash"]),
            log_index=int(event.get("logIndex", 0)),
            address=str(event.get("address", "")),
        )

    @property
    def unique_key(self) -> tuple[str, int]:
        """Identity of the log itself, independent of its contents."""
        return (self.transaction_hash, self.log_index)


@dataclass(frozen=True, slots=True)
class BlockRange:
    """Inclusive block range for an event query."""
    from_block: int
    to_block: int

    @property
    def is_empty(self) -> bool:
        return self.to_block < self.from_block

    def __str__(self) -> str:
        return f"{self.from_block}-{self.to_block}"


@dataclass(frozen=True, slots=True)
class PriceRequest:
    """A price request that has not received a proposal."""
    key: str
    requester: str
    identifier: str
    raw_identifier: bytes
    timestamp: int
    ancillary_data: bytes
    currency: str
    reward: int
    final_fee: int


@dataclass(frozen=True, slots=True)
class PriceProposal:
    """An undisputed price proposal, either still live or expired."""
    key: str
    requester: str
    proposer: str
    identifier: str
    raw_identifier: bytes
    timestamp: int
    ancillary_data: bytes
    proposed_price: int
    expiration_timestamp: int
    currency: str


@dataclass(frozen=True, slots=True)
class SettleableDispute:
    """A disputed request whose price has been resolved but not settled."""
    key: str
    requester: str
    proposer: str
    disputer: str
    identifier: str
    raw_identifier: bytes
    timestamp: int
    ancillary_data: bytes


@dataclass(frozen=True, slots=True)
class Deposit:
    """A FundsDeposited event on the L2 deposit box.

    Keyed by ``deposit_hash``, which commits to every immutable deposit field.
    """

    chain_id: int
    deposit_id: int
    deposit_hash: str
    l1_recipient: str
    l2_sender: str
    l1_token: str
    amount: int
    slow_relay_fee_pct: int
    instant_relay_fee_pct: int
    quote_timestamp: int
    deposit_contract: str


@dataclass(frozen=True, slots=True)
class PricePeriod:
    """One point of a price history, price scaled to the feed's decimals."""
    timestamp: int
    price: int


@dataclass(frozen=True, slots=True)
class OracleSnapshot:
    """Lifecycle buckets derived from one optimistic oracle poll."""
    unproposed: tuple[PriceRequest, ...] = ()
    undisputed_proposals: tuple[PriceProposal, ...] = ()
    expired_proposals: tuple[PriceProposal, ...] = ()
    settleable_disputes: tuple[SettleableDispute, ...] = ()
    last_update_timestamp: int | None = None


@dataclass(frozen=True, slots=True)
class BridgeSnapshot:
    """Deposits and token whitelist known to an L2 bridge client."""
    deposits: Mapping[str, Deposit] = field(default_factory=dict)
    whitelisted_tokens: Mapping[str, str] = field(default_factory=dict)
