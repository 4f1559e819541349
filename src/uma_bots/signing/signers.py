#!/usr/bin/env python3
"""Digest signers.

A signer exposes the address it signs for and signs 32-byte digests. The
KMS signer never sees key material; the local signer exists for testing
against local or test networks.
"""

import asyncio
import logging
from typing import Any, Protocol

import boto3
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from web3 import Web3

from ..config import SignerConfig
from ..exceptions import SigningError
from ..utils.transaction_encoder import Signature

# Order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class DigestSigner(Protocol):
    async def get_address(self) -> str: ...

    async def sign_digest(self, digest: bytes) -> Signature: ...


def public_key_to_address(der_public_key: bytes) -> str:
    """Ethereum address of a DER encoded SubjectPublicKeyInfo."""
    public_key = load_der_public_key(der_public_key)
    point = public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    # Drop the 0x04 uncompressed-point prefix
    return Web3.to_checksum_address(Web3.keccak(point[1:])[-20:])


class KmsSigner:
    """Signs digests with an asymmetric secp256k1 key held in AWS KMS."""

    def __init__(
        self,
        key_id: str,
        kms_client: Any = None,
        region: str = "us-east-2",
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the KMS signer.

        Args:
            key_id: KMS key id or ARN
            kms_client: boto3 KMS client, created for ``region`` if omitted
            region: AWS region of the key
            logger: Logger to use, defaults to this module's logger
        """
        if not key_id:
            raise ValueError("KMS key id is required")

        self.key_id = key_id
        self.kms = kms_client or boto3.client("kms", region_name=region)
        self.logger = logger or logging.getLogger(__name__)
        self._address: str | None = None

    @classmethod
    def from_config(cls, config: SignerConfig, logger: logging.Logger | None = None) -> "KmsSigner":
        client_kwargs: dict[str, Any] = {"region_name": config.kms_region}
        if config.kms_access_key_id and config.kms_secret_access_key:
            client_kwargs["aws_access_key_id"] = config.kms_access_key_id
            client_kwargs["aws_secret_access_key"] = config.kms_secret_access_key
        return cls(
            key_id=config.kms_key_id,
            kms_client=boto3.client("kms", **client_kwargs),
            region=config.kms_region,
            logger=logger,
        )

    async def get_address(self) -> str:
        if self._address is None:
            response = await asyncio.to_thread(self.kms.get_public_key, KeyId=self.key_id)
            self._address = public_key_to_address(response["PublicKey"])
            self.logger.info(f"KMS signer address: {self._address}", extra={"at": "KmsSigner"})
        return self._address

    async def sign_digest(self, digest: bytes) -> Signature:
        """
        Sign a 32-byte digest.

        KMS returns a DER ``(r, s)`` pair without a recovery id. ``s`` is
        normalized to the lower half of the curve order and the recovery id
        is found by recovering each candidate against the key's address.
        """
        if len(digest) != 32:
            raise ValueError(f"Digest must be 32 bytes, got {len(digest)}")

        address = await self.get_address()
        response = await asyncio.to_thread(
            self.kms.sign,
            KeyId=self.key_id,
            Message=digest,
            MessageType="DIGEST",
            SigningAlgorithm="ECDSA_SHA_256",
        )
        r, s = decode_dss_signature(response["Signature"])
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s

        for v in (0, 1):
            recovered = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest)
            if recovered.to_checksum_address() == address:
                return Signature(v=v, r=r, s=s)

        raise SigningError(f"KMS signature does not recover to {address}")


class LocalSigner:
    """Signs digests with a private key held in memory."""

    def __init__(self, private_key: str):
        self.account: LocalAccount = Account.from_key(private_key)
        self._key = keys.PrivateKey(bytes(self.account.key))

    @classmethod
    def from_config(cls, config: SignerConfig) -> "LocalSigner":
        return cls(config.local_private_key)

    async def get_address(self) -> str:
        return self.account.address

    async def sign_digest(self, digest: bytes) -> Signature:
        signature = self._key.sign_msg_hash(digest)
        return Signature(v=signature.v, r=signature.r, s=signature.s)


def create_signer(config: SignerConfig, logger: logging.Logger | None = None) -> DigestSigner:
    """Build the signer described by ``config``."""
    match config.mode:
        case 'kms':
            return KmsSigner.from_config(config, logger=logger)
        case 'local':
            return LocalSigner.from_config(config)
        case mode:
            raise ValueError(f"Unsupported signer mode: {mode}")
