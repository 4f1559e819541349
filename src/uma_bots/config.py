#!/usr/bin/env python3
"""Configuration management for the UMA bots.

This module provides type-safe configuration dataclasses with validation
for every component. Each section is validated once at construction and is
immutable afterwards. Configuration is loaded from environment variables
with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import ClassVar
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)


def _checksum(instance: object, attribute: str, label: str, env_name: str) -> None:
    """Validate an address attribute and store its checksummed form."""
    value = getattr(instance, attribute)
    if not value:
        raise ValueError(f"{label} is required ({env_name})")

    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label.lower()}: {value}")

    checksummed = Web3.to_checksum_address(value)
    if checksummed != value:
        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(instance, attribute, checksummed)


def _split_urls(value: str) -> tuple[str, ...]:
    return tuple(url.strip() for url in value.split(",") if url.strip())


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """RPC endpoints backing one logical chain.

    Attributes:
        rpc_urls: One or more redundant RPC endpoints; the first is canonical
        request_timeout: HTTP request timeout in seconds
    """

    rpc_urls: tuple[str, ...]
    request_timeout: int = 30

    SUPPORTED_SCHEMES: ClassVar[set[str]] = {'http', 'https', 'ws', 'wss'}

    def __post_init__(self) -> None:
        """Validate RPC endpoints."""
        if isinstance(self.rpc_urls, str):
            object.__setattr__(self, 'rpc_urls', _split_urls(self.rpc_urls))
        elif not isinstance(self.rpc_urls, tuple):
            object.__setattr__(self, 'rpc_urls', tuple(self.rpc_urls))

        if not self.rpc_urls:
            raise ValueError("At least one RPC URL is required (RPC_URLS)")

        for url in self.rpc_urls:
            parsed = urlparse(url)
            if parsed.scheme not in self.SUPPORTED_SCHEMES:
                raise ValueError(
                    f"Invalid RPC URL scheme: {parsed.scheme}. "
                    "Expected http, https, ws, or wss"
                )

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class OptimisticOracleConfig:
    """Configuration for the optimistic oracle client.

    Attributes:
        oracle_address: OptimisticOracle contract address
        voting_address: Voting (DVM) contract address used to resolve disputes
        lookback: Seconds of history to scan on every poll
        average_block_time: Seconds per block, used to turn lookback into blocks
    """

    oracle_address: str
    voting_address: str
    lookback: int = 604800  # 7 days
    average_block_time: float = 13

    def __post_init__(self) -> None:
        """Validate oracle client configuration."""
        _checksum(self, 'oracle_address', "Optimistic oracle address", "OPTIMISTIC_ORACLE_ADDRESS")
        _checksum(self, 'voting_address', "Voting address", "VOTING_ADDRESS")

        if self.lookback <= 0:
            raise ValueError(f"Lookback must be positive, got {self.lookback}")
        if self.average_block_time <= 0:
            raise ValueError(f"Average block time must be positive, got {self.average_block_time}")


@dataclass(frozen=True, slots=True)
class BridgeConfig:
    """Configuration for the L2 deposit box client.

    Attributes:
        rpc: L2 RPC endpoints; all of them are cross-checked on every poll
        deposit_box_address: BridgeDepositBox contract address on L2
        starting_block: First block to search
        ending_block: Last block to search, or None to follow the chain head
    """

    rpc: ChainConfig
    deposit_box_address: str
    starting_block: int = 0
    ending_block: int | None = None

    def __post_init__(self) -> None:
        """Validate bridge client configuration."""
        _checksum(self, 'deposit_box_address', "Deposit box address", "BRIDGE_DEPOSIT_BOX_ADDRESS")

        if self.starting_block < 0:
            raise ValueError(f"Starting block must be non-negative, got {self.starting_block}")
        if self.ending_block is not None and self.ending_block < self.starting_block:
            raise ValueError(
                f"Ending block {self.ending_block} is before starting block {self.starting_block}"
            )


@dataclass(frozen=True, slots=True)
class PriceFeedConfig:
    """Configuration shared by every HTTP price feed."""
    lookback: int
    price_feed_decimals: int = 18
    min_time_between_updates: int | None = None  # None uses the source default

    MAX_DECIMALS: ClassVar[int] = 77

    def __post_init__(self) -> None:
        """Validate price feed configuration."""
        if self.lookback <= 0:
            raise ValueError(f"Lookback must be positive, got {self.lookback}")
        if not 0 <= self.price_feed_decimals <= self.MAX_DECIMALS:
            raise ValueError(
                f"Price feed decimals must be between 0 and {self.MAX_DECIMALS}, "
                f"got {self.price_feed_decimals}"
            )
        if self.min_time_between_updates is not None and self.min_time_between_updates < 0:
            raise ValueError(
                f"Minimum time between updates must be non-negative, got {self.min_time_between_updates}"
            )


@dataclass(frozen=True, slots=True)
class BalanceAlarmConfig:
    """Configuration for wallet balance alarms."""
    financial_contract_address: str
    buffer_percentage: Decimal = Decimal("1")
    polling_delay: int = 60
    info_log_interval: int = 86400  # one healthy log per day

    def __post_init__(self) -> None:
        """Validate balance alarm configuration."""
        _checksum(self, 'financial_contract_address', "Financial contract address", "FINANCIAL_CONTRACT_ADDRESS")

        try:
            buffer = Decimal(str(self.buffer_percentage))
        except InvalidOperation:
            raise ValueError(f"Invalid buffer percentage: {self.buffer_percentage}") from None
        if buffer < 0:
            raise ValueError(f"Buffer percentage must be non-negative, got {buffer}")
        object.__setattr__(self, 'buffer_percentage', buffer)

        if self.polling_delay < 0:
            raise ValueError(f"Polling delay must be non-negative, got {self.polling_delay}")
        if self.info_log_interval < 0:
            raise ValueError(f"Info log interval must be non-negative, got {self.info_log_interval}")


@dataclass(frozen=True, slots=True)
class SignerConfig:
    """Configuration for the transaction signing credential.

    Attributes:
        mode: 'kms' to sign with an AWS KMS key, 'local' for a raw key (testing)
        kms_key_id: KMS key id or ARN
        kms_region: AWS region hosting the key
        kms_access_key_id: Optional explicit AWS access key id
        kms_secret_access_key: Optional explicit AWS secret key
        local_private_key: Private key for local mode
    """

    mode: str
    kms_key_id: str | None = None
    kms_region: str = "us-east-2"
    kms_access_key_id: str | None = None
    kms_secret_access_key: str | None = None
    local_private_key: str | None = None

    SUPPORTED_MODES: ClassVar[set[str]] = {'kms', 'local'}

    def __post_init__(self) -> None:
        """Validate signer configuration."""
        if self.mode not in self.SUPPORTED_MODES:
            raise ValueError(
                f"Unsupported signer mode: {self.mode}. "
                f"Supported modes: {', '.join(sorted(self.SUPPORTED_MODES))}"
            )

        match self.mode:
            case 'kms':
                if not self.kms_key_id:
                    raise ValueError("KMS mode requires KMS_SIGNER environment variable")
            case 'local':
                if not self.local_private_key:
                    raise ValueError("Local mode requires LOCAL_PRIVATE_KEY environment variable")

                key = self.local_private_key
                if key.startswith('0x'):
                    key = key[2:]

                if len(key) != 64:
                    raise ValueError(
                        f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                    )

                try:
                    int(key, 16)
                except ValueError:
                    raise ValueError(
                        "Invalid private key format. Must be hexadecimal"
                    ) from None


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for the polling loop."""
    polling_interval: int = 60  # seconds between poll cycles
    request_timeout: int = 30  # HTTP request timeout in seconds

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 3600:
            raise ValueError(f"Polling interval too long (max 3600s), got {self.polling_interval}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class BotConfig:
    """Main configuration for the oracle bot.

    Attributes:
        chain: L1 RPC endpoints
        oracle: Optimistic oracle client settings
        monitoring: Polling loop settings
        bridge: Optional L2 deposit box client settings
        signer: Optional signing credential; without it the bot is read-only
    """

    chain: ChainConfig
    oracle: OptimisticOracleConfig
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    bridge: BridgeConfig | None = None
    signer: SignerConfig | None = None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "BotConfig":
        """Load configuration from environment variables.

        Args:
            local_mode: Sign with LOCAL_PRIVATE_KEY instead of KMS

        Returns:
            BotConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        rpc_urls = os.environ.get("RPC_URLS", "")
        if not rpc_urls:
            raise ValueError(
                "RPC_URLS environment variable is required. "
                "Comma separated list of RPC endpoints, the first one is canonical."
            )

        monitoring = MonitoringConfig(
            polling_interval=int(os.environ.get("POLLING_INTERVAL", "60")),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30")),
        )

        chain = ChainConfig(
            rpc_urls=_split_urls(rpc_urls),
            request_timeout=monitoring.request_timeout,
        )

        oracle = OptimisticOracleConfig(
            oracle_address=os.environ.get("OPTIMISTIC_ORACLE_ADDRESS", ""),
            voting_address=os.environ.get("VOTING_ADDRESS", ""),
            lookback=int(os.environ.get("LOOKBACK", "604800")),
            average_block_time=float(os.environ.get("AVERAGE_BLOCK_TIME", "13")),
        )

        # Bridge client is optional
        bridge = None
        if l2_rpc_urls := os.environ.get("L2_RPC_URLS"):
            ending_block = os.environ.get("L2_ENDING_BLOCK")
            bridge = BridgeConfig(
                rpc=ChainConfig(
                    rpc_urls=_split_urls(l2_rpc_urls),
                    request_timeout=monitoring.request_timeout,
                ),
                deposit_box_address=os.environ.get("BRIDGE_DEPOSIT_BOX_ADDRESS", ""),
                starting_block=int(os.environ.get("L2_STARTING_BLOCK", "0")),
                ending_block=int(ending_block) if ending_block else None,
            )

        signer = None
        if local_mode:
            signer = SignerConfig(
                mode='local',
                local_private_key=os.environ.get("LOCAL_PRIVATE_KEY"),
            )
        elif kms_key_id := os.environ.get("KMS_SIGNER"):
            signer = SignerConfig(
                mode='kms',
                kms_key_id=kms_key_id,
                kms_region=os.environ.get("KMS_REGION", "us-east-2"),
                kms_access_key_id=os.environ.get("KMS_ACCESS_KEY_ID"),
                kms_secret_access_key=os.environ.get("KMS_ACCESS_SECRET_KEY"),
            )

        return cls(
            chain=chain,
            oracle=oracle,
            monitoring=monitoring,
            bridge=bridge,
            signer=signer,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (hiding sensitive data)."""
        logger.info("=" * 60)
        logger.info("UMA Bot Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        for index, url in enumerate(self.chain.rpc_urls):
            logger.info(f"  RPC URL [{index}]: {url}")

        logger.info("Optimistic Oracle:")
        logger.info(f"  Oracle: {self.oracle.oracle_address}")
        logger.info(f"  Voting: {self.oracle.voting_address}")
        logger.info(f"  Lookback: {self.oracle.lookback} seconds")
        logger.info(f"  Average Block Time: {self.oracle.average_block_time} seconds")

        if self.bridge:
            logger.info("L2 Bridge:")
            for index, url in enumerate(self.bridge.rpc.rpc_urls):
                logger.info(f"  RPC URL [{index}]: {url}")
            logger.info(f"  Deposit Box: {self.bridge.deposit_box_address}")
            logger.info(f"  Blocks: {self.bridge.starting_block} - {self.bridge.ending_block or 'latest'}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")

        logger.info("Signer:")
        match self.signer:
            case None:
                logger.info("  Mode: READ-ONLY")
            case SignerConfig(mode='kms'):
                logger.info(f"  Mode: KMS ({self.signer.kms_region})")
                logger.info("  Key Id: [CONFIGURED]")
            case _:
                logger.info("  Mode: LOCAL")
                logger.info("  Local Key: [CONFIGURED]")

        logger.info("=" * 60)
