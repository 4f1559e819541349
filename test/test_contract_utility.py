#!/usr/bin/env python3
"""Tests for ContractUtility and ChainReader."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from hexbytes import HexBytes

from uma_bots.models import BlockRange, EventKind
from uma_bots.utils.chain_reader import ChainReader
from uma_bots.utils.contract_utility import ContractUtility

ORACLE = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"


class TestContractUtility:
    """Test cases for ContractUtility."""

    def test_one_provider_per_url(self):
        utility = ContractUtility(("https://rpc-a.example", "https://rpc-b.example"), request_timeout=5)

        assert len(utility.providers) == 2
        assert utility.w3 is utility.providers[0]

    def test_abi_only_mode(self):
        utility = ContractUtility()

        with pytest.raises(ValueError, match="created without RPC URLs"):
            utility.w3

    def test_websocket_rejected(self):
        with pytest.raises(ValueError, match="WebSocket endpoints are not supported"):
            ContractUtility(("wss://rpc.example",))

    @pytest.mark.parametrize("contract_name", ["OptimisticOracle", "Voting", "BridgeDepositBox", "FinancialContract"])
    def test_bundled_abis_load(self, contract_name):
        abi = ContractUtility().get_contract_abi(contract_name)

        assert isinstance(abi, list)
        assert abi

    def test_oracle_abi_has_lifecycle_events(self):
        abi = ContractUtility().get_contract_abi("OptimisticOracle")
        events = {entry["name"] for entry in abi if entry["type"] == "event"}

        assert {"RequestPrice", "ProposePrice", "DisputePrice", "Settle"} <= events

    def test_missing_abi(self):
        with pytest.raises(FileNotFoundError):
            ContractUtility().get_contract_abi("Missing")

    def test_readers_cover_every_provider(self):
        utility = ContractUtility(("https://rpc-a.example", "https://rpc-b.example"))

        readers = utility.get_readers("OptimisticOracle", ORACLE.lower())

        assert [reader.name for reader in readers] == ["OptimisticOracle[0]", "OptimisticOracle[1]"]
        assert all(reader.address == ORACLE for reader in readers)
        assert readers[1].w3 is utility.providers[1]


class TestChainReader:
    """Test cases for ChainReader."""

    @pytest.mark.asyncio
    async def test_get_past_events_sorted(self):
        contract = MagicMock()
        contract.address = ORACLE
        contract.events.RequestPrice.get_logs = AsyncMock(return_value=[
            {"args": {"timestamp": 2}, "blockNumber": 11, "transactionHash": HexBytes(b"\x02" * 32), "logIndex": 0},
            {"args": {"timestamp": 1}, "blockNumber": 10, "transactionHash": HexBytes(b"\x01" * 32), "logIndex": 3},
        ])
        reader = ChainReader(contract, name="oracle", logger=MagicMock())

        events = await reader.get_past_events("RequestPrice", BlockRange(10, 20))

        contract.events.RequestPrice.get_logs.assert_awaited_once_with(
            argument_filters=None, from_block=10, to_block=20
        )
        assert [event.block_number for event in events] == [10, 11]
        assert events[0].kind == EventKind.REQUEST
        assert events[0].transaction_hash == "0x" + "01" * 32
        assert events[0].log_index == 3

    @pytest.mark.asyncio
    async def test_unknown_event(self):
        contract = MagicMock()
        contract.events = object()
        reader = ChainReader(contract, name="oracle")

        with pytest.raises(ValueError, match="Event Transfer not found in contract ABI"):
            await reader.get_past_events("Transfer", BlockRange(0, 1))

    @pytest.mark.asyncio
    async def test_call(self):
        contract = MagicMock()
        contract.functions.getState.return_value.call = AsyncMock(return_value=6)
        reader = ChainReader(contract, name="oracle")

        assert await reader.call("getState", "0xabc", 1) == 6
        contract.functions.getState.assert_called_once_with("0xabc", 1)
        contract.functions.getState.return_value.call.assert_awaited_once_with(None)
