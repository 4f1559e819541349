from .signers import DigestSigner, KmsSigner, LocalSigner, create_signer
from .transaction_sender import SendResult, TransactionSender

__all__ = [
    "DigestSigner",
    "KmsSigner",
    "LocalSigner",
    "SendResult",
    "TransactionSender",
    "create_signer",
]
