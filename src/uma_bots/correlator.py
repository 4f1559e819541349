#!/usr/bin/env python3
"""Event correlation for the optimistic oracle.

This module turns raw RequestPrice, ProposePrice, DisputePrice and Settle
event streams into lifecycle buckets by joining them on a correlation key derived
from the request-defining fields (requester, identifier, timestamp and
ancillary data).
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from web3 import Web3

from .models import (
    ChainEvent,
    PriceProposal,
    PriceRequest,
    RequestState,
    SettleableDispute,
    to_hex_string,
)
from .utils.chain_reader import ChainReader


def price_request_key(args: Mapping[str, Any]) -> str:
    """Correlation key shared by a request and its proposal and dispute.

    Only immutable request-defining fields take part; price, state and
    expiry never do.
    """
    return (
        f"{args['requester']}-{to_hex_string(args['identifier'])}-"
        f"{args['timestamp']}-{to_hex_string(args['ancillaryData'])}"
    )


def identifier_to_utf8(identifier: bytes | str) -> str:
    """Decode a right-padded bytes32 price identifier."""
    if isinstance(identifier, str):
        if not identifier.startswith("0x"):
            return identifier
        identifier = bytes.fromhex(identifier[2:])
    return bytes(identifier).rstrip(b"\x00").decode("utf-8", errors="replace")


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str) and value.startswith("0x"):
        return Web3.to_bytes(hexstr=value)
    return str(value).encode()


def _request_from_event(event: ChainEvent) -> PriceRequest:
    args = event.args
    return PriceRequest(
        key=price_request_key(args),
        requester=args["requester"],
        identifier=identifier_to_utf8(args["identifier"]),
        raw_identifier=_as_bytes(args["identifier"]),
        timestamp=int(args["timestamp"]),
        ancillary_data=_as_bytes(args["ancillaryData"]),
        currency=args.get("currency", ""),
        reward=int(args.get("reward", 0)),
        final_fee=int(args.get("finalFee", 0)),
    )


def _proposal_from_event(event: ChainEvent) -> PriceProposal:
    args = event.args
    return PriceProposal(
        key=price_request_key(args),
        requester=args["requester"],
        proposer=args["proposer"],
        identifier=identifier_to_utf8(args["identifier"]),
        raw_identifier=_as_bytes(args["identifier"]),
        timestamp=int(args["timestamp"]),
        ancillary_data=_as_bytes(args["ancillaryData"]),
        proposed_price=int(args.get("proposedPrice", 0)),
        expiration_timestamp=int(args["expirationTimestamp"]),
        currency=args.get("currency", ""),
    )


def _dispute_from_event(event: ChainEvent) -> SettleableDispute:
    args = event.args
    return SettleableDispute(
        key=price_request_key(args),
        requester=args["requester"],
        proposer=args["proposer"],
        disputer=args["disputer"],
        identifier=identifier_to_utf8(args["identifier"]),
        raw_identifier=_as_bytes(args["identifier"]),
        timestamp=int(args["timestamp"]),
        ancillary_data=_as_bytes(args["ancillaryData"]),
    )


class PriceResolver(Protocol):
    """Answers whether a disputed request has a resolved price."""

    async def get_resolved_price(self, dispute: ChainEvent) -> int | None: ...

    async def get_request_state(self, dispute: ChainEvent) -> RequestState: ...


class OnChainPriceResolver:
    """Resolves disputes against the oracle and the voting contract.

    The voting contract only answers calls made from the oracle's address,
    with ancillary data stamped by the oracle for the original requester.
    """

    def __init__(self, oracle: ChainReader, voting: ChainReader) -> None:
        self.oracle = oracle
        self.voting = voting

    async def get_resolved_price(self, dispute: ChainEvent) -> int | None:
        args = dispute.args
        stamped = await self.oracle.call(
            "stampAncillaryData",
            _as_bytes(args["ancillaryData"] or b""),
            args["requester"],
        )
        return await self.voting.call(
            "getPrice",
            _as_bytes(args["identifier"]),
            int(args["timestamp"]),
            stamped,
            transaction={"from": self.oracle.address},
        )

    async def get_request_state(self, dispute: ChainEvent) -> RequestState:
        args = dispute.args
        state = await self.oracle.call(
            "getState",
            args["requester"],
            _as_bytes(args["identifier"]),
            int(args["timestamp"]),
            _as_bytes(args["ancillaryData"] or b""),
        )
        return RequestState(int(state))


@dataclass(frozen=True, slots=True)
class CorrelationResult:
    """Buckets produced by one correlation pass."""
    unproposed: tuple[PriceRequest, ...]
    undisputed_active: tuple[PriceProposal, ...]
    expired: tuple[PriceProposal, ...]


class EventCorrelator:
    """Partitions oracle events into lifecycle buckets.

    The correlator holds no state; every call recomputes its result from
    the inputs alone.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def correlate(
        self,
        requests: Sequence[ChainEvent],
        proposals: Sequence[ChainEvent],
        disputes: Sequence[ChainEvent],
        current_time: int,
        settles: Sequence[ChainEvent] = (),
    ) -> CorrelationResult:
        """Split requests and proposals into unproposed, active and expired.

        Requests with a Settle event are finished and land in no bucket.

        Args:
            requests: RequestPrice events in block order
            proposals: ProposePrice events in block order
            disputes: DisputePrice events in block order
            current_time: On-chain time used for the expiry comparison
            settles: Settle events in block order

        Returns:
            CorrelationResult with input order preserved inside each bucket
        """
        proposal_keys = {price_request_key(event.args) for event in proposals}
        dispute_keys = {price_request_key(event.args) for event in disputes}
        settled_keys = {price_request_key(event.args) for event in settles}
        answered_keys = proposal_keys | settled_keys
        closed_keys = dispute_keys | settled_keys

        unproposed = tuple(
            _request_from_event(event)
            for event in requests
            if price_request_key(event.args) not in answered_keys
        )

        candidates = [
            _proposal_from_event(event)
            for event in proposals
            if price_request_key(event.args) not in closed_keys
        ]

        expired = tuple(p for p in candidates if p.expiration_timestamp <= current_time)
        active = tuple(p for p in candidates if p.expiration_timestamp > current_time)

        return CorrelationResult(unproposed=unproposed, undisputed_active=active, expired=expired)

    async def correlate_settleable_disputes(
        self,
        disputes: Sequence[ChainEvent],
        price_resolver: PriceResolver,
        settles: Sequence[ChainEvent] = (),
    ) -> list[SettleableDispute]:
        """Keep the disputes that have a resolved price and are not yet settled.

        Disputes with a Settle event are dropped without querying the resolver.

        A resolver error while fetching the price means the vote has not
        concluded; the dispute is skipped and looked at again next poll.
        Errors from the state lookup propagate.
        """
        async def resolve(dispute: ChainEvent) -> SettleableDispute | None:
            try:
                price = await price_resolver.get_resolved_price(dispute)
            except Exception as e:
                self.logger.debug(
                    f"No resolved price for dispute in {dispute.transaction_hash}: {e}",
                    extra={"at": "EventCorrelator"},
                )
                return None

            if price is None:
                return None

            if await price_resolver.get_request_state(dispute) == RequestState.SETTLED:
                return None

            return _dispute_from_event(dispute)

        settled_keys = {price_request_key(event.args) for event in settles}
        open_disputes = [d for d in disputes if price_request_key(d.args) not in settled_keys]
        resolved = await asyncio.gather(*(resolve(dispute) for dispute in open_disputes))
        return [dispute for dispute in resolved if dispute is not None]
