#!/usr/bin/env python3
"""Tests for the optimistic oracle event correlator."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from uma_bots.correlator import (
    CorrelationResult,
    EventCorrelator,
    OnChainPriceResolver,
    identifier_to_utf8,
    price_request_key,
)
from uma_bots.models import ChainEvent, EventKind, RequestState

REQUESTER = "0x742d35Cc6634C0532925a3b844Bc9e7595f0bEb7"
PROPOSER = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
DISPUTER = "0x1111111111111111111111111111111111111111"
IDENTIFIER = b"YES_OR_NO_QUERY".ljust(32, b"\x00")


def request_args(timestamp: int = 100, ancillary_data: bytes = b"q:A") -> dict:
    return {
        "requester": REQUESTER,
        "identifier": IDENTIFIER,
        "timestamp": timestamp,
        "ancillaryData": ancillary_data,
        "currency": "0x2222222222222222222222222222222222222222",
        "reward": 10,
        "finalFee": 5,
    }


def make_event(kind: EventKind, args: dict, block: int = 1, tx: str = "0x01") -> ChainEvent:
    return ChainEvent(kind=kind, args=args, block_number=block, transaction_hash=tx)


def request_event(**kwargs) -> ChainEvent:
    return make_event(EventKind.REQUEST, request_args(**kwargs))


def proposal_event(expiration: int, **kwargs) -> ChainEvent:
    args = request_args(**kwargs)
    args.update(proposer=PROPOSER, proposedPrice=10**18, expirationTimestamp=expiration)
    return make_event(EventKind.PROPOSAL, args, tx="0x02")


def dispute_event(**kwargs) -> ChainEvent:
    args = request_args(**kwargs)
    args.update(proposer=PROPOSER, disputer=DISPUTER, proposedPrice=10**18)
    return make_event(EventKind.DISPUTE, args, tx="0x03")


def settle_event(**kwargs) -> ChainEvent:
    args = request_args(**kwargs)
    args.update(proposer=PROPOSER, disputer=DISPUTER, price=10**18, payout=15)
    return make_event(EventKind.SETTLE, args, tx="0x04")


@pytest.fixture
def correlator():
    """Create an EventCorrelator with a mock logger."""
    return EventCorrelator(logger=MagicMock())


class TestPriceRequestKey:
    """Tests for the correlation key."""

    def test_key_uses_hex_for_bytes_fields(self):
        """Test that identifier and ancillary data are rendered as hex."""
        key = price_request_key(request_args())
        assert key == f"{REQUESTER}-0x{IDENTIFIER.hex()}-100-0x{b'q:A'.hex()}"

    def test_key_ignores_price_and_expiry(self):
        """Test that non-defining fields do not change the key."""
        proposal = proposal_event(expiration=200).args
        assert price_request_key(proposal) == price_request_key(request_args())

    def test_different_ancillary_data_gives_different_key(self):
        """Test that ancillary data is part of the key."""
        assert price_request_key(request_args(ancillary_data=b"a")) != price_request_key(
            request_args(ancillary_data=b"b")
        )

    def test_identifier_to_utf8(self):
        """Test decoding of padded bytes32 identifiers."""
        assert identifier_to_utf8(IDENTIFIER) == "YES_OR_NO_QUERY"
        assert identifier_to_utf8("0x" + IDENTIFIER.hex()) == "YES_OR_NO_QUERY"
        assert identifier_to_utf8("ETHUSD") == "ETHUSD"


class TestCorrelate:
    """Tests for bucket partitioning."""

    def test_request_without_proposal_is_unproposed(self, correlator):
        """Test that a lone request lands in the unproposed bucket."""
        result = correlator.correlate([request_event()], [], [], current_time=150)

        assert len(result.unproposed) == 1
        assert result.unproposed[0].key == price_request_key(request_args())
        assert result.unproposed[0].identifier == "YES_OR_NO_QUERY"
        assert result.unproposed[0].reward == 10
        assert result.undisputed_active == ()
        assert result.expired == ()

    def test_unexpired_proposal_is_active(self, correlator):
        """Test that a proposal expiring after current time is active."""
        result = correlator.correlate(
            [request_event()], [proposal_event(expiration=200)], [], current_time=150
        )

        assert result.unproposed == ()
        assert [p.key for p in result.undisputed_active] == [price_request_key(request_args())]
        assert result.expired == ()

    def test_expired_proposal(self, correlator):
        """Test that a proposal expiring before current time is expired."""
        result = correlator.correlate(
            [request_event()], [proposal_event(expiration=200)], [], current_time=250
        )

        assert result.undisputed_active == ()
        assert [p.key for p in result.expired] == [price_request_key(request_args())]

    def test_expiration_equal_to_current_time_is_expired(self, correlator):
        """Test the expiry boundary."""
        result = correlator.correlate([], [proposal_event(expiration=200)], [], current_time=200)
        assert len(result.expired) == 1

    def test_disputed_proposal_in_no_bucket(self, correlator):
        """Test that disputed proposals are neither active nor expired."""
        for current_time in (150, 250):
            result = correlator.correlate(
                [request_event()],
                [proposal_event(expiration=200)],
                [dispute_event()],
                current_time=current_time,
            )
            assert result.undisputed_active == ()
            assert result.expired == ()

    def test_buckets_are_independent_per_key(self, correlator):
        """Test that requests are matched only against proposals with their key."""
        requests = [request_event(timestamp=100), request_event(timestamp=101)]
        proposals = [proposal_event(expiration=200, timestamp=101)]

        result = correlator.correlate(requests, proposals, [], current_time=150)

        assert [r.timestamp for r in result.unproposed] == [100]
        assert [p.timestamp for p in result.undisputed_active] == [101]

    def test_input_order_is_preserved(self, correlator):
        """Test that bucket order follows input order."""
        requests = [request_event(timestamp=t) for t in (300, 100, 200)]
        result = correlator.correlate(requests, [], [], current_time=0)
        assert [r.timestamp for r in result.unproposed] == [300, 100, 200]

    def test_correlate_is_idempotent(self, correlator):
        """Test that the same inputs always give the same buckets."""
        requests = [request_event(timestamp=100), request_event(timestamp=101)]
        proposals = [proposal_event(expiration=200, timestamp=101)]
        disputes = [dispute_event(timestamp=102)]

        first = correlator.correlate(requests, proposals, disputes, current_time=150)
        second = correlator.correlate(requests, proposals, disputes, current_time=150)

        assert first == second

    def test_settled_request_in_no_bucket(self, correlator):
        """Test that a settled proposal is neither active nor expired."""
        for current_time in (150, 250):
            result = correlator.correlate(
                [request_event()],
                [proposal_event(expiration=200)],
                [],
                current_time=current_time,
                settles=[settle_event()],
            )
            assert result == CorrelationResult(unproposed=(), undisputed_active=(), expired=())

    def test_settle_only_closes_its_own_request(self, correlator):
        proposals = [proposal_event(expiration=200, timestamp=t) for t in (100, 101)]

        result = correlator.correlate([], proposals, [], current_time=250, settles=[settle_event(timestamp=101)])

        assert [p.timestamp for p in result.expired] == [100]


class TestSettleableDisputes:
    """Tests for settleable dispute resolution."""

    @pytest.mark.asyncio
    async def test_resolver_error_drops_dispute(self, correlator):
        """Test that a resolver exception is not an error."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(side_effect=Exception("vote not concluded"))
        resolver.get_request_state = AsyncMock()

        result = await correlator.correlate_settleable_disputes([dispute_event()], resolver)

        assert result == []
        resolver.get_request_state.assert_not_called()

    @pytest.mark.asyncio
    async def test_none_price_drops_dispute(self, correlator):
        """Test that a missing price drops the dispute."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(return_value=None)
        resolver.get_request_state = AsyncMock()

        assert await correlator.correlate_settleable_disputes([dispute_event()], resolver) == []

    @pytest.mark.asyncio
    async def test_resolved_unsettled_dispute_is_settleable(self, correlator):
        """Test that resolved, unsettled disputes are returned."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(return_value=10**18)
        resolver.get_request_state = AsyncMock(return_value=RequestState.RESOLVED)

        result = await correlator.correlate_settleable_disputes([dispute_event()], resolver)

        assert len(result) == 1
        assert result[0].disputer == DISPUTER
        assert result[0].raw_identifier == IDENTIFIER

    @pytest.mark.asyncio
    async def test_settled_dispute_is_excluded(self, correlator):
        """Test that already settled disputes are skipped."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(return_value=0)
        resolver.get_request_state = AsyncMock(return_value=RequestState.SETTLED)

        assert await correlator.correlate_settleable_disputes([dispute_event()], resolver) == []

    @pytest.mark.asyncio
    async def test_dispute_with_settle_event_is_excluded(self, correlator):
        """Test that a Settle event drops the dispute before any resolver call."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(return_value=10**18)
        resolver.get_request_state = AsyncMock(return_value=RequestState.RESOLVED)

        result = await correlator.correlate_settleable_disputes(
            [dispute_event()], resolver, settles=[settle_event()]
        )

        assert result == []
        resolver.get_resolved_price.assert_not_called()

    @pytest.mark.asyncio
    async def test_state_lookup_failure_propagates(self, correlator):
        """Test that state lookup errors are not swallowed."""
        resolver = MagicMock()
        resolver.get_resolved_price = AsyncMock(return_value=1)
        resolver.get_request_state = AsyncMock(side_effect=RuntimeError("rpc down"))

        with pytest.raises(RuntimeError, match="rpc down"):
            await correlator.correlate_settleable_disputes([dispute_event()], resolver)


class TestOnChainPriceResolver:
    """Tests for the on-chain resolver."""

    @pytest.mark.asyncio
    async def test_get_resolved_price_stamps_ancillary_data(self):
        """Test that the voting call uses stamped data and the oracle as sender."""
        oracle = MagicMock()
        oracle.address = "0x3333333333333333333333333333333333333333"
        oracle.call = AsyncMock(return_value=b"stamped")
        voting = MagicMock()
        voting.call = AsyncMock(return_value=42)

        resolver = OnChainPriceResolver(oracle, voting)
        price = await resolver.get_resolved_price(dispute_event())

        assert price == 42
        oracle.call.assert_awaited_once_with("stampAncillaryData", b"q:A", REQUESTER)
        voting.call.assert_awaited_once_with(
            "getPrice", IDENTIFIER, 100, b"stamped",
            transaction={"from": oracle.address},
        )

    @pytest.mark.asyncio
    async def test_get_request_state(self):
        """Test that the raw state is mapped to RequestState."""
        oracle = MagicMock()
        oracle.call = AsyncMock(return_value=6)

        resolver = OnChainPriceResolver(oracle, MagicMock())

        assert await resolver.get_request_state(dispute_event()) == RequestState.SETTLED
