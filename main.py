#!/usr/bin/env python3
"""Entry point for the UMA oracle bot.

This module provides the main entry point for the bot that caches the
optimistic oracle (and optionally an L2 deposit box) and settles the
requests its account owns, signing with AWS KMS or, in local mode, with
a raw private key.
"""

import argparse
import asyncio
import logging
import os
import sys

from uma_bots.bot import OracleBot
from uma_bots.config import BotConfig
from uma_bots.signing.signers import create_signer
from uma_bots.utils.logging_utility import setup_logging

# Get logger for this module
logger = logging.getLogger(__name__)

ENV_HELP = """Environment Variables:
  RPC_URLS                   - Comma separated L1 RPC endpoints (first is canonical)
  OPTIMISTIC_ORACLE_ADDRESS  - OptimisticOracle contract address
  VOTING_ADDRESS             - Voting contract address
  LOOKBACK                   - Seconds of history to scan (default: 604800)
  AVERAGE_BLOCK_TIME         - Seconds per block (default: 13)
  L2_RPC_URLS                - Comma separated L2 RPC endpoints (enables the bridge client)
  BRIDGE_DEPOSIT_BOX_ADDRESS - BridgeDepositBox contract on L2
  L2_STARTING_BLOCK          - First L2 block to scan (default: 0)
  L2_ENDING_BLOCK            - Last L2 block to scan (default: latest)
  KMS_SIGNER                 - KMS key id used for signing
  KMS_REGION                 - KMS key region (default: us-east-2)
  KMS_ACCESS_KEY_ID          - Optional AWS access key id
  KMS_ACCESS_SECRET_KEY      - Optional AWS secret access key
  LOCAL_PRIVATE_KEY          - Private key for local mode (required with --local)
  POLLING_INTERVAL           - Seconds between cycles (default: 60)
  REQUEST_TIMEOUT            - HTTP request timeout (default: 30)
  LOG_LEVEL                  - Logging level (can be overridden with --log-level)
"""


async def main() -> None:
    """Main entry point for the UMA oracle bot.

    Parses startup arguments, loads configuration from environment,
    builds the signer and starts polling.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="UMA Oracle Bot - cache optimistic oracle state and settle requests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=ENV_HELP,
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Sign with LOCAL_PRIVATE_KEY instead of AWS KMS (for testing)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single update and settlement cycle, then exit"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    if mode_msg := ("(LOCAL MODE)" if args.local else ""):
        logger.info(f"=== UMA Oracle Bot Starting {mode_msg} ===")
    else:
        logger.info("=== UMA Oracle Bot Starting ===")

    logger.info("Loading configuration from environment...")

    try:
        config: BotConfig = BotConfig.from_env(local_mode=args.local)
        logger.info("Configuration loaded successfully")

        signer = create_signer(config.signer) if config.signer else None
        if signer is None:
            logger.warning("No signer configured, running read-only")

        bot: OracleBot = OracleBot(config, signer=signer)

        if args.once:
            ok = await bot.run_once()
            sys.exit(0 if ok else 1)

        await bot.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RPC_URLS: Comma separated L1 RPC endpoints")
        logger.error("  - OPTIMISTIC_ORACLE_ADDRESS: OptimisticOracle contract address")
        logger.error("  - VOTING_ADDRESS: Voting contract address")
        logger.error("  - L2_RPC_URLS / BRIDGE_DEPOSIT_BOX_ADDRESS: Optional L2 bridge client")
        if args.local:
            logger.error("  - LOCAL_PRIVATE_KEY: Required for local mode")
        else:
            logger.error("  - KMS_SIGNER: KMS key id (omit to run read-only)")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
