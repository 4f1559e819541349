#!/usr/bin/env python3
"""Settlement and dispute submission to the optimistic oracle.

Transactions are built from cached proposals and disputes and sent through
a TransactionSender, so the same code path works with KMS and local keys.
"""

import logging
from collections.abc import Mapping
from typing import Any

from web3.contract import AsyncContract

from .models import PriceProposal, SettleableDispute
from .signing.transaction_sender import SendResult, TransactionSender


class DisputeSubmitter:
    """Sends ``settle`` and ``disputePrice`` transactions to the oracle contract."""

    def __init__(
        self,
        oracle_contract: AsyncContract,
        sender: TransactionSender,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize the DisputeSubmitter.

        Args:
            oracle_contract: Optimistic oracle contract bound to the sending provider
            sender: Signs and broadcasts the transactions
            logger: Logger to use, defaults to this module's logger
        """
        self.contract = oracle_contract
        self.sender = sender
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info(f"DisputeSubmitter initialized for oracle {oracle_contract.address}")

    @staticmethod
    def _request_args(item: PriceProposal | SettleableDispute) -> tuple[Any, ...]:
        return (item.requester, item.raw_identifier, item.timestamp, item.ancillary_data)

    async def settle_request(
        self,
        item: PriceProposal | SettleableDispute,
        transaction_config: Mapping[str, Any],
    ) -> SendResult:
        """
        Settle an expired proposal or a resolved dispute.

        Args:
            item: Cached proposal or dispute identifying the request
            transaction_config: Sender and fee fields

        Returns:
            SendResult whose ``return_value`` is the payout
        """
        self.logger.info(
            f"Settling request {item.identifier} at {item.timestamp} for {item.requester}",
            extra={"at": "DisputeSubmitter", "key": item.key},
        )
        result = await self.sender.send(
            self.contract, "settle", self._request_args(item), transaction_config
        )
        self.logger.info(
            f"Settled request {item.identifier}: payout {result.return_value}, tx {result.transaction_hash}",
            extra={"at": "DisputeSubmitter", "key": item.key},
        )
        return result

    async def dispute_price(
        self,
        proposal: PriceProposal,
        transaction_config: Mapping[str, Any],
    ) -> SendResult:
        """
        Dispute an active proposal.

        Args:
            proposal: Cached proposal to dispute
            transaction_config: Sender and fee fields

        Returns:
            SendResult whose ``return_value`` is the total bond paid
        """
        self.logger.info(
            f"Disputing proposed price {proposal.proposed_price} for {proposal.identifier} "
            f"at {proposal.timestamp} (proposer {proposal.proposer})",
            extra={"at": "DisputeSubmitter", "key": proposal.key},
        )
        result = await self.sender.send(
            self.contract, "disputePrice", self._request_args(proposal), transaction_config
        )
        self.logger.info(
            f"Disputed {proposal.identifier}: bond {result.return_value}, tx {result.transaction_hash}",
            extra={"at": "DisputeSubmitter", "key": proposal.key},
        )
        return result
