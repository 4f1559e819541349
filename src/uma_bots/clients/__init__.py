"""Event-sourced caches over on-chain contracts."""

from .insured_bridge_l2_client import InsuredBridgeL2Client
from .optimistic_oracle_client import OptimisticOracleClient

__all__ = ["InsuredBridgeL2Client", "OptimisticOracleClient"]
