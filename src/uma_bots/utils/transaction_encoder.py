"""
Transaction encoding utilities.

This module provides RLP serialization for legacy (EIP-155) and EIP-1559
transactions, so that a transaction can be hashed, signed by an external
signer and re-serialized with its signature.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Union

import rlp
from hexbytes import HexBytes
from web3 import Web3

LEGACY_TRANSACTION_TYPE = 0
DYNAMIC_FEE_TRANSACTION_TYPE = 2


@dataclass(frozen=True, slots=True)
class Signature:
    """secp256k1 signature with a 0/1 recovery id."""
    v: int
    r: int
    s: int


class TransactionEncoder:
    """Utilities for encoding transactions."""

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str, None]) -> bytes:
        """
        Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

        Args:
            value: Value to convert (HexBytes, bytes, hex string or None)

        Returns:
            Bytes representation
        """
        if value is None:
            return b''
        elif isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @staticmethod
    def _common_tail(tx: Mapping[str, Any]) -> list:
        return [
            int(tx['gas']),
            TransactionEncoder.to_bytes_safe(tx.get('to')),
            int(tx.get('value', 0)),
            TransactionEncoder.to_bytes_safe(tx.get('data')),
        ]

    @staticmethod
    def encode_legacy(tx: Mapping[str, Any], signature: Signature | None = None) -> bytes:
        """
        RLP encode a legacy transaction with EIP-155 replay protection.

        Without a signature the chain id takes the place of ``v`` and
        ``r`` and ``s`` are zero, which is the payload that gets signed.
        """
        fields = [int(tx['nonce']), int(tx['gasPrice'])] + TransactionEncoder._common_tail(tx)
        chain_id = int(tx['chainId'])

        if signature is None:
            fields += [chain_id, 0, 0]
        else:
            fields += [signature.v + 35 + 2 * chain_id, signature.r, signature.s]

        return rlp.encode(fields)

    @staticmethod
    def encode_dynamic_fee(tx: Mapping[str, Any], signature: Signature | None = None) -> bytes:
        """
        Encode an EIP-1559 transaction as ``0x02 || rlp(fields)``.

        The access list is always empty.
        """
        fields = [
            int(tx['chainId']),
            int(tx['nonce']),
            int(tx['maxPriorityFeePerGas']),
            int(tx['maxFeePerGas']),
        ] + TransactionEncoder._common_tail(tx) + [[]]

        if signature is not None:
            fields += [signature.v, signature.r, signature.s]

        return bytes([DYNAMIC_FEE_TRANSACTION_TYPE]) + rlp.encode(fields)

    @staticmethod
    def encode(tx: Mapping[str, Any], signature: Signature | None = None) -> bytes:
        """Serialize ``tx`` according to its ``type`` field."""
        match int(tx.get('type', LEGACY_TRANSACTION_TYPE)):
            case 0:
                return TransactionEncoder.encode_legacy(tx, signature)
            case 2:
                return TransactionEncoder.encode_dynamic_fee(tx, signature)
            case tx_type:
                raise ValueError(f"Unsupported transaction type: {tx_type}")

    @staticmethod
    def signing_hash(tx: Mapping[str, Any]) -> bytes:
        """Keccak digest of the unsigned serialization."""
        return bytes(Web3.keccak(TransactionEncoder.encode(tx)))
