"""Encrypted key custody and endpoint-bound signers."""

from .service import (
    CustodyService,
    LocalSigner,
    WalletKeys,
    decrypt,
    encrypt,
    normalize_private_key,
)

__all__ = [
    "CustodyService",
    "LocalSigner",
    "WalletKeys",
    "decrypt",
    "encrypt",
    "normalize_private_key",
]
