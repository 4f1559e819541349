#!/usr/bin/env python3
"""Tests for the configuration module."""

import os
from decimal import Decimal

import pytest
from unittest.mock import patch

from uma_bots.config import (
    BalanceAlarmConfig,
    BotConfig,
    BridgeConfig,
    ChainConfig,
    MonitoringConfig,
    OptimisticOracleConfig,
    PriceFeedConfig,
    SignerConfig,
)

ORACLE = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
VOTING = "0x4200000000000000000000000000000000000006"
PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

BASE_ENV = {
    "RPC_URLS": "https://rpc-a.example, https://rpc-b.example",
    "OPTIMISTIC_ORACLE_ADDRESS": ORACLE,
    "VOTING_ADDRESS": VOTING,
}


class TestChainConfig:
    """Tests for ChainConfig."""

    def test_comma_separated_urls(self):
        """Test that a comma separated string is split into endpoints."""
        config = ChainConfig(rpc_urls="https://a.example, wss://b.example,")
        assert config.rpc_urls == ("https://a.example", "wss://b.example")

    def test_list_becomes_tuple(self):
        config = ChainConfig(rpc_urls=["https://a.example"])
        assert config.rpc_urls == ("https://a.example",)

    def test_invalid_rpc_url_scheme(self):
        """Test that invalid RPC URL schemes are rejected."""
        with pytest.raises(ValueError, match="Invalid RPC URL scheme"):
            ChainConfig(rpc_urls=("ftp://invalid.scheme",))

    def test_missing_rpc_url(self):
        with pytest.raises(ValueError, match="At least one RPC URL is required"):
            ChainConfig(rpc_urls="")

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="Request timeout must be positive"):
            ChainConfig(rpc_urls=("https://a.example",), request_timeout=0)


class TestOptimisticOracleConfig:
    """Tests for OptimisticOracleConfig."""

    def test_checksum_address_conversion(self):
        """Test that addresses are converted to checksum format."""
        config = OptimisticOracleConfig(oracle_address=ORACLE.lower(), voting_address=VOTING)
        assert config.oracle_address == ORACLE

    def test_missing_oracle_address(self):
        with pytest.raises(ValueError, match="Optimistic oracle address is required"):
            OptimisticOracleConfig(oracle_address="", voting_address=VOTING)

    def test_invalid_voting_address(self):
        with pytest.raises(ValueError, match="Invalid voting address"):
            OptimisticOracleConfig(oracle_address=ORACLE, voting_address="invalid-address")

    def test_invalid_block_time(self):
        with pytest.raises(ValueError, match="Average block time must be positive"):
            OptimisticOracleConfig(oracle_address=ORACLE, voting_address=VOTING, average_block_time=0)


class TestBridgeConfig:
    """Tests for BridgeConfig."""

    def test_ending_before_starting(self):
        with pytest.raises(ValueError, match="Ending block 5 is before starting block 10"):
            BridgeConfig(
                rpc=ChainConfig(rpc_urls=("https://l2.example",)),
                deposit_box_address=ORACLE,
                starting_block=10,
                ending_block=5,
            )

    def test_negative_starting_block(self):
        with pytest.raises(ValueError, match="Starting block must be non-negative"):
            BridgeConfig(
                rpc=ChainConfig(rpc_urls=("https://l2.example",)),
                deposit_box_address=ORACLE,
                starting_block=-1,
            )


class TestSignerConfig:
    """Tests for SignerConfig."""

    def test_unsupported_mode(self):
        with pytest.raises(ValueError, match="Unsupported signer mode"):
            SignerConfig(mode="ledger")

    def test_kms_requires_key_id(self):
        with pytest.raises(ValueError, match="KMS mode requires KMS_SIGNER"):
            SignerConfig(mode='kms')

    def test_local_requires_key(self):
        with pytest.raises(ValueError, match="Local mode requires LOCAL_PRIVATE_KEY"):
            SignerConfig(mode='local')

    def test_local_key_length(self):
        """Test that private keys of the wrong length are rejected."""
        with pytest.raises(ValueError, match="Invalid private key length"):
            SignerConfig(mode='local', local_private_key="0x1234")

    def test_local_key_format(self):
        with pytest.raises(ValueError, match="Invalid private key format"):
            SignerConfig(mode='local', local_private_key="zz" * 32)

    def test_local_key_without_prefix(self):
        config = SignerConfig(mode='local', local_private_key=PRIVATE_KEY[2:])
        assert config.local_private_key == PRIVATE_KEY[2:]


class TestMonitoringConfig:
    """Tests for MonitoringConfig."""

    def test_defaults(self):
        config = MonitoringConfig()
        assert config.polling_interval == 60
        assert config.request_timeout == 30

    @pytest.mark.parametrize("interval", [0, 3601])
    def test_polling_interval_bounds(self, interval):
        with pytest.raises(ValueError, match="Polling interval"):
            MonitoringConfig(polling_interval=interval)

    def test_request_timeout_bound(self):
        with pytest.raises(ValueError, match="Request timeout too long"):
            MonitoringConfig(request_timeout=121)


class TestPriceFeedConfig:

    def test_decimals_bound(self):
        with pytest.raises(ValueError, match="Price feed decimals must be between 0 and 77"):
            PriceFeedConfig(lookback=3600, price_feed_decimals=78)

    def test_negative_min_time(self):
        with pytest.raises(ValueError, match="Minimum time between updates must be non-negative"):
            PriceFeedConfig(lookback=3600, min_time_between_updates=-1)


class TestBalanceAlarmConfig:

    def test_buffer_is_decimal(self):
        config = BalanceAlarmConfig(financial_contract_address=ORACLE, buffer_percentage="0.5")
        assert config.buffer_percentage == Decimal("0.5")

    def test_invalid_buffer(self):
        with pytest.raises(ValueError, match="Invalid buffer percentage"):
            BalanceAlarmConfig(financial_contract_address=ORACLE, buffer_percentage="lots")

    def test_negative_buffer(self):
        with pytest.raises(ValueError, match="Buffer percentage must be non-negative"):
            BalanceAlarmConfig(financial_contract_address=ORACLE, buffer_percentage="-0.1")


class TestBotConfig:
    """Tests for BotConfig.from_env."""

    @patch.dict(os.environ, BASE_ENV, clear=True)
    def test_read_only_from_env(self):
        config = BotConfig.from_env()

        assert config.chain.rpc_urls == ("https://rpc-a.example", "https://rpc-b.example")
        assert config.oracle.oracle_address == ORACLE
        assert config.oracle.lookback == 604800
        assert config.bridge is None
        assert config.signer is None

    @patch.dict(os.environ, {}, clear=True)
    def test_missing_rpc_urls(self):
        with pytest.raises(ValueError, match="RPC_URLS environment variable is required"):
            BotConfig.from_env()

    @patch.dict(os.environ, {**BASE_ENV, "POLLING_INTERVAL": "15", "REQUEST_TIMEOUT": "10"}, clear=True)
    def test_monitoring_overrides(self):
        config = BotConfig.from_env()

        assert config.monitoring.polling_interval == 15
        assert config.chain.request_timeout == 10

    @patch.dict(os.environ, {
        **BASE_ENV,
        "L2_RPC_URLS": "https://l2.example",
        "BRIDGE_DEPOSIT_BOX_ADDRESS": ORACLE.lower(),
        "L2_STARTING_BLOCK": "100",
    }, clear=True)
    def test_bridge_from_env(self):
        config = BotConfig.from_env()

        assert config.bridge.rpc.rpc_urls == ("https://l2.example",)
        assert config.bridge.deposit_box_address == ORACLE
        assert config.bridge.starting_block == 100
        assert config.bridge.ending_block is None

    @patch.dict(os.environ, {**BASE_ENV, "KMS_SIGNER": "alias/bot", "KMS_REGION": "eu-west-1"}, clear=True)
    def test_kms_signer_from_env(self):
        config = BotConfig.from_env()

        assert config.signer.mode == 'kms'
        assert config.signer.kms_key_id == "alias/bot"
        assert config.signer.kms_region == "eu-west-1"
        assert config.signer.kms_access_key_id is None

    @patch.dict(os.environ, {**BASE_ENV, "LOCAL_PRIVATE_KEY": PRIVATE_KEY, "KMS_SIGNER": "alias/bot"}, clear=True)
    def test_local_mode_wins_over_kms(self):
        config = BotConfig.from_env(local_mode=True)

        assert config.signer.mode == 'local'
        assert config.signer.local_private_key == PRIVATE_KEY

    @patch.dict(os.environ, BASE_ENV, clear=True)
    def test_local_mode_requires_key(self):
        with pytest.raises(ValueError, match="Local mode requires LOCAL_PRIVATE_KEY"):
            BotConfig.from_env(local_mode=True)

    @patch.dict(os.environ, {**BASE_ENV, "KMS_SIGNER": "alias/bot"}, clear=True)
    def test_log_config_hides_secrets(self, caplog):
        config = BotConfig.from_env()

        with caplog.at_level("INFO", logger="uma_bots.config"):
            config.log_config()

        assert "alias/bot" not in caplog.text
        assert "Key Id: [CONFIGURED]" in caplog.text
