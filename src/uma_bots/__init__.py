"""
UMA bots package.

Off-chain clients that cache optimistic oracle and L2 bridge state, HTTP
price feeds, wallet balance alarms and externally signed settlement.
"""

from .bot import OracleBot
from .clients import InsuredBridgeL2Client, OptimisticOracleClient
from .config import BotConfig
from .correlator import EventCorrelator
from .reconciler import MultiProviderReconciler

__all__ = [
    "BotConfig",
    "EventCorrelator",
    "InsuredBridgeL2Client",
    "MultiProviderReconciler",
    "OptimisticOracleClient",
    "OracleBot",
]
__version__ = "0.1.0"
