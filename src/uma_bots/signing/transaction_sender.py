#!/usr/bin/env python3
"""Externally signed transaction submission.

This module builds, signs and broadcasts contract transactions using any
DigestSigner, so the same path serves KMS-held keys in production and
in-memory keys in local mode.
"""

import asyncio
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract

from ..exceptions import ConfigurationError, TransactionError
from ..utils.transaction_encoder import (
    DYNAMIC_FEE_TRANSACTION_TYPE,
    LEGACY_TRANSACTION_TYPE,
    TransactionEncoder,
)
from .signers import DigestSigner

GAS_LIMIT_BUFFER = 1.25
RECEIPT_TIMEOUT = 120


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a confirmed transaction."""
    receipt: Mapping[str, Any]
    transaction_hash: str
    return_value: Any
    transaction_config: Mapping[str, Any]


def fee_fields(transaction_config: Mapping[str, Any]) -> dict[str, int]:
    """
    Pick the transaction type and fee fields from a transaction config.

    ``maxFeePerGas`` is doubled so the transaction stays includable when
    the base fee rises before it is mined.

    Raises:
        ConfigurationError: If the config carries no usable fee information
    """
    max_fee = transaction_config.get('maxFeePerGas')
    priority_fee = transaction_config.get('maxPriorityFeePerGas')

    if max_fee and priority_fee:
        return {
            'type': DYNAMIC_FEE_TRANSACTION_TYPE,
            'maxFeePerGas': int(max_fee) * 2,
            'maxPriorityFeePerGas': int(priority_fee),
        }
    elif gas_price := transaction_config.get('gasPrice'):
        return {'type': LEGACY_TRANSACTION_TYPE, 'gasPrice': int(gas_price)}

    raise ConfigurationError("No gas information provided")


class TransactionSender:
    """Sends contract transactions signed by a DigestSigner."""

    def __init__(
        self,
        w3: AsyncWeb3,
        signer: DigestSigner,
        logger: logging.Logger | None = None,
        receipt_timeout: int = RECEIPT_TIMEOUT,
    ):
        """
        Initialize the sender.

        Args:
            w3: Provider to simulate and broadcast through
            signer: Signs transaction digests
            logger: Logger to use, defaults to this module's logger
            receipt_timeout: Seconds to wait for a receipt
        """
        self.w3 = w3
        self.signer = signer
        self.logger = logger or logging.getLogger(__name__)
        self.receipt_timeout = receipt_timeout

    async def resolve_nonce(self, address: str) -> int:
        """
        Next nonce for ``address``.

        When the account has transactions in the mempool the pending count
        is used so the new transaction queues after them.
        """
        pending, confirmed = await asyncio.gather(
            self.w3.eth.get_transaction_count(address, "pending"),
            self.w3.eth.get_transaction_count(address, "latest"),
        )
        if pending > confirmed:
            self.logger.debug(f"{address} has {pending - confirmed} pending transactions")
            return pending
        return confirmed

    async def _sign_and_send(self, tx: dict[str, Any]) -> tuple[str, Mapping[str, Any]]:
        digest = TransactionEncoder.signing_hash(tx)
        signature = await self.signer.sign_digest(digest)
        raw_transaction = TransactionEncoder.encode(tx, signature)

        try:
            tx_hash = await self.w3.eth.send_raw_transaction(HexBytes(raw_transaction))
        except Exception as e:
            raise TransactionError(f"Failed to send transaction: {e}", type="send") from e
        self.logger.info(f"Transaction submitted: {Web3.to_hex(tx_hash)}")

        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            raise TransactionError(
                f"Transaction {Web3.to_hex(tx_hash)} was broadcast but has no receipt: {e}", type="receipt"
            ) from e

        if (status := receipt.get('status', 0)) == 1:
            self.logger.info(f"Transaction confirmed in block {receipt['blockNumber']}")
        else:
            self.logger.error(f"Transaction {Web3.to_hex(tx_hash)} mined with status={status}")

        return Web3.to_hex(tx_hash), receipt

    async def send(
        self,
        contract: AsyncContract,
        function_name: str,
        args: Sequence[Any] = (),
        transaction_config: Mapping[str, Any] | None = None,
    ) -> SendResult:
        """
        Simulate, sign and broadcast a contract call.

        Args:
            contract: Target contract
            function_name: ABI name of the function to call
            args: Positional call arguments
            transaction_config: ``from``, ``value`` and fee fields
                (``maxFeePerGas`` + ``maxPriorityFeePerGas`` or ``gasPrice``)

        Returns:
            SendResult with the receipt and the simulated return value

        Raises:
            ConfigurationError: No fee information in ``transaction_config``
            TransactionError: ``type == "call"`` if simulation failed,
                ``type == "send"`` if the broadcast failed,
                ``type == "receipt"`` if no receipt arrived in time
        """
        config = dict(transaction_config or {})
        fees = fee_fields(config)
        sender = config.get('from') or await self.signer.get_address()
        config['from'] = sender

        function = getattr(contract.functions, function_name)(*args)
        try:
            return_value, estimated_gas = await asyncio.gather(
                function.call({'from': sender}),
                function.estimate_gas({'from': sender}),
            )
        except Exception as e:
            raise TransactionError(f"{function_name} simulation failed: {e}", type="call") from e

        nonce, chain_id = await asyncio.gather(self.resolve_nonce(sender), self.w3.eth.chain_id)
        config['nonce'] = nonce

        tx = {
            **fees,
            'chainId': chain_id,
            'nonce': nonce,
            'gas': math.floor(estimated_gas * GAS_LIMIT_BUFFER),
            'to': contract.address,
            'value': int(config.get('value', 0)),
            'data': contract.encode_abi(function_name, args=list(args)),
        }
        self.logger.debug(f"Sending {function_name} from {sender} with nonce={nonce} gas={tx['gas']}")

        transaction_hash, receipt = await self._sign_and_send(tx)
        return SendResult(
            receipt=receipt,
            transaction_hash=transaction_hash,
            return_value=return_value,
            transaction_config=config,
        )

    async def send_value(
        self,
        to: str,
        amount: int,
        transaction_config: Mapping[str, Any],
    ) -> SendResult:
        """
        Sweep ``amount`` wei to ``to``, paying the worst-case gas fee out of it.

        The recipient receives ``amount - (2 * maxFeePerGas + maxPriorityFeePerGas) * gas``.
        """
        config = dict(transaction_config)
        if not amount or not config.get('maxFeePerGas') or not config.get('maxPriorityFeePerGas'):
            raise ConfigurationError("One or more required values are undefined or incorrect")
        fees = fee_fields(config)
        amount = int(amount)

        sender = config.get('from') or await self.signer.get_address()
        config['from'] = sender
        to = Web3.to_checksum_address(to)

        try:
            estimated_gas = await self.w3.eth.estimate_gas({'from': sender, 'to': to, 'value': amount})
        except Exception as e:
            raise TransactionError(f"Transfer gas estimation failed: {e}", type="call") from e

        gas_limit = math.floor(estimated_gas * GAS_LIMIT_BUFFER)
        max_total_fee = (fees['maxFeePerGas'] + fees['maxPriorityFeePerGas']) * gas_limit
        if amount < max_total_fee:
            raise TransactionError("Insufficient funds to cover gas fee", type="call")

        nonce, chain_id = await asyncio.gather(self.resolve_nonce(sender), self.w3.eth.chain_id)
        config['nonce'] = nonce

        tx = {
            **fees,
            'chainId': chain_id,
            'nonce': nonce,
            'gas': gas_limit,
            'to': to,
            'value': amount - max_total_fee,
            'data': b'',
        }
        self.logger.info(f"Sending {tx['value']} wei from {sender} to {to} (max fee {max_total_fee})")

        transaction_hash, receipt = await self._sign_and_send(tx)
        return SendResult(
            receipt=receipt,
            transaction_hash=transaction_hash,
            return_value=None,
            transaction_config=config,
        )
