import logging
from typing import Any

from .clients.insured_bridge_l2_client import InsuredBridgeL2Client
from .clients.optimistic_oracle_client import OptimisticOracleClient
from .config import BotConfig
from .dispute_submitter import DisputeSubmitter
from .exceptions import TransactionError
from .models import PriceProposal, SettleableDispute
from .polling import PollingController, Updatable
from .signing.signers import DigestSigner, create_signer
from .signing.transaction_sender import TransactionSender
from .utils.contract_utility import ContractUtility


class OracleBot:
    """
    Bot that keeps the optimistic oracle (and optionally the L2 deposit box)
    state cached and settles the requests its own account can settle.
    """

    AT = "OracleBot"

    def __init__(
        self,
        config: BotConfig,
        signer: DigestSigner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the OracleBot with configuration.

        :param config: Bot configuration object
        :param signer: Signer for settlement transactions, read-only without one
        :param logger: Logger to use, defaults to this module's logger
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.logger.info("Starting OracleBot initialization")

        try:
            self.config.log_config()

            self.logger.debug("Initializing contract utility...")
            self.contract_utility = ContractUtility(
                config.chain.rpc_urls, request_timeout=config.chain.request_timeout
            )

            oracle_readers = self.contract_utility.get_readers(
                "OptimisticOracle", config.oracle.oracle_address
            )
            voting_reader = self.contract_utility.get_readers("Voting", config.oracle.voting_address)[0]
            self.oracle_client = OptimisticOracleClient(
                oracle_readers, voting_reader, config.oracle, logger=self.logger
            )
            targets: list[Updatable] = [self.oracle_client]

            self.bridge_client: InsuredBridgeL2Client | None = None
            if config.bridge:
                self.logger.debug("Initializing L2 bridge client...")
                self.l2_contract_utility = ContractUtility(
                    config.bridge.rpc.rpc_urls, request_timeout=config.bridge.rpc.request_timeout
                )
                self.bridge_client = InsuredBridgeL2Client(
                    self.l2_contract_utility.get_readers(
                        "BridgeDepositBox", config.bridge.deposit_box_address
                    ),
                    config.bridge,
                    logger=self.logger,
                )
                targets.append(self.bridge_client)

            if signer is None and config.signer is not None:
                signer = create_signer(config.signer, logger=self.logger)
            self.signer = signer

            self.submitter: DisputeSubmitter | None = None
            if self.signer is not None:
                self.logger.debug("Initializing dispute submitter...")
                self.submitter = DisputeSubmitter(
                    self.contract_utility.get_contract("OptimisticOracle", config.oracle.oracle_address),
                    TransactionSender(self.contract_utility.w3, self.signer, logger=self.logger),
                    logger=self.logger,
                )

            self.controller = PollingController(
                targets, interval=config.monitoring.polling_interval, logger=self.logger
            )

            self.logger.info(
                f"OracleBot initialized ({'READ-ONLY' if self.submitter is None else 'SIGNING'} mode, "
                f"{len(config.chain.rpc_urls)} L1 providers)"
            )

        except Exception as e:
            self.logger.error(f"OracleBot initialization failed: {e}")
            self.logger.error(f"Exception type: {type(e).__name__}", exc_info=True)
            raise

    async def _transaction_config(self) -> dict[str, Any]:
        return {
            'from': await self.signer.get_address(),
            'gasPrice': await self.contract_utility.w3.eth.gas_price,
        }

    async def _settle_all(self, items: list[PriceProposal] | list[SettleableDispute], label: str) -> int:
        settled = 0
        for item in items:
            try:
                await self.submitter.settle_request(item, await self._transaction_config())
                settled += 1
            except TransactionError as e:
                self.logger.error(
                    f"Failed to settle {label} {item.key} ({e.type}): {e}",
                    extra={"at": self.AT},
                )
        return settled

    async def on_cycle(self) -> None:
        """Settle what the bot's account can settle and log the cached buckets."""
        if self.submitter is not None:
            address = await self.signer.get_address()
            expired = self.oracle_client.get_expired_proposals(proposer=address)
            disputes = self.oracle_client.get_settleable_disputes(disputer=address)

            if expired or disputes:
                settled = await self._settle_all(expired, "proposal")
                settled += await self._settle_all(disputes, "dispute")
                self.logger.info(
                    f"Settled {settled} of {len(expired) + len(disputes)} requests",
                    extra={"at": self.AT},
                )

        self.logger.info(
            f"Oracle state: {len(self.oracle_client.get_unproposed_price_requests())} unproposed, "
            f"{len(self.oracle_client.get_undisputed_price_proposals())} undisputed, "
            f"{len(self.oracle_client.get_expired_proposals())} expired, "
            f"{len(self.oracle_client.get_settleable_disputes())} settleable disputes",
            extra={"at": self.AT},
        )
        if self.bridge_client is not None:
            self.logger.info(
                f"Bridge state: {len(self.bridge_client.get_all_deposits())} deposits "
                f"up to block {self.bridge_client.get_last_update_block()}",
                extra={"at": self.AT},
            )

    async def run_once(self) -> bool:
        """Run a single update and settlement cycle."""
        if ok := await self.controller.poll_once():
            await self.on_cycle()
        return ok

    async def shutdown(self) -> None:
        """Gracefully shutdown the bot."""
        self.logger.info("Shutting down OracleBot...")
        await self.controller.stop()
        self.logger.info("OracleBot shutdown complete")

    async def run(self) -> None:
        """
        Main entry point for the OracleBot.
        Polls every client and settles after each successful cycle.
        """
        self.logger.info("Starting OracleBot...")
        try:
            await self.controller.start(on_cycle=self.on_cycle)
        except Exception as e:
            self.logger.error(f"Fatal error in OracleBot: {e}", exc_info=True)
            raise
        finally:
            await self.shutdown()
