"""
Key custody: encrypted private keys at rest and endpoint-bound signers.

Blob layout (base64): salt(16) | nonce(12) | tag(16) | ciphertext.
Key derivation is scrypt (N=2**14, r=8, p=1) into a 32-byte AES-256-GCM key.
"""

import base64
import binascii
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from eth_account import Account
from eth_account.signers.local import LocalAccount

from ..errors import DecryptionError, InvalidPrivateKeyError
from ..rpc.client import ChainClient, FeeData, Receipt
from ..rpc.erc20 import checksum_address
from ..rpc.pool import Endpoint


logger = logging.getLogger(__name__)

SALT_BYTES = 16
NONCE_BYTES = 12
TAG_BYTES = 16
KEY_BYTES = 32
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=KEY_BYTES, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt(plaintext_key: str, passphrase: str) -> str:
    """Encrypt a private key with a fresh salt and nonce."""
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(_derive_key(passphrase, salt)).encrypt(nonce, plaintext_key.encode("utf-8"), None)
    # AESGCM appends the tag; stored blobs keep it ahead of the ciphertext
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return base64.b64encode(salt + nonce + tag + ciphertext).decode("ascii")


def decrypt(blob: str, passphrase: str) -> str:
    """Decrypt a blob; raises DecryptionError instead of returning partial data."""
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecryptionError(f"Malformed key blob: {exc}") from exc

    header = SALT_BYTES + NONCE_BYTES + TAG_BYTES
    if len(raw) <= header:
        raise DecryptionError("Key blob too short")

    salt = raw[:SALT_BYTES]
    nonce = raw[SALT_BYTES:SALT_BYTES + NONCE_BYTES]
    tag = raw[SALT_BYTES + NONCE_BYTES:header]
    ciphertext = raw[header:]

    try:
        plaintext = AESGCM(_derive_key(passphrase, salt)).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptionError("Key blob failed authentication") from exc
    return plaintext.decode("utf-8")


def normalize_private_key(value: str) -> str:
    candidate = (value or "").strip()
    if not _PRIVATE_KEY_RE.match(candidate):
        raise InvalidPrivateKeyError()
    if not candidate.startswith("0x"):
        candidate = "0x" + candidate
    try:
        Account.from_key(candidate)
    except (ValueError, TypeError) as exc:
        # Out of curve range, zero key, etc.
        raise InvalidPrivateKeyError() from exc
    return candidate.lower()


@dataclass(frozen=True)
class WalletKeys:
    """What the persistence layer is allowed to see of a wallet."""

    address: str
    encrypted_private_key: str


class LocalSigner:
    """Signs locally and broadcasts on the one endpoint it was bound to."""

    def __init__(
        self,
        account: LocalAccount,
        chain: ChainClient,
        endpoint: Endpoint,
        *,
        gas_multiplier: float = 1.1,
    ) -> None:
        self._account = account
        self.chain = chain
        self.endpoint = endpoint
        self.gas_multiplier = gas_multiplier

    @property
    def address(self) -> str:
        return self._account.address

    async def send_transaction(
        self,
        tx: Dict[str, Any],
        fee_overrides: Optional[FeeData] = None,
    ) -> str:
        """Fill nonce, gas and fees, sign and broadcast. Returns the tx hash."""
        nonce = await self.chain.get_transaction_count(self.address, "pending", endpoint=self.endpoint)

        value = int(tx.get("value") or 0)
        data = tx.get("data") or "0x"
        to = checksum_address(tx["to"])

        gas = int(tx.get("gas") or 0)
        if not gas:
            estimate = await self.chain.estimate_gas(
                {"from": self.address, "to": to, "data": data, "value": value}
            )
            gas = int(estimate * self.gas_multiplier)

        fees = fee_overrides or await self.chain.fee_data()

        unsigned: Dict[str, Any] = {
            "chainId": self.chain.chain_id,
            "nonce": nonce,
            "to": to,
            "value": value,
            "data": data,
            "gas": gas,
            **fees.to_tx_fields(),
        }
        signed = self._account.sign_transaction(unsigned)
        raw = "0x" + bytes(signed.raw_transaction).hex()

        logger.info("Sending tx from %s nonce=%d gas=%d to=%s", self.address, nonce, gas, to)
        return await self.chain.send_raw_transaction(raw, self.endpoint)

    async def wait(self, tx_hash: str, timeout_s: Optional[float] = None) -> Receipt:
        return await self.chain.wait_for_receipt(tx_hash, timeout_s)


class CustodyService:
    """Creates, imports and unlocks wallets under the process-wide passphrase.

    Rotating the passphrase invalidates every stored blob; there is no
    automatic re-encryption.
    """

    def __init__(
        self,
        passphrase: str,
        chain: Optional[ChainClient] = None,
        *,
        gas_multiplier: float = 1.1,
    ) -> None:
        if not passphrase:
            raise ValueError("Custody passphrase must not be empty")
        self._passphrase = passphrase
        self.chain = chain
        self.gas_multiplier = gas_multiplier

    def encrypt(self, plaintext_key: str) -> str:
        return encrypt(plaintext_key, self._passphrase)

    def decrypt(self, blob: str) -> str:
        return decrypt(blob, self._passphrase)

    def create_wallet(self) -> WalletKeys:
        account = Account.create()
        blob = self.encrypt("0x" + bytes(account.key).hex())
        logger.info("Created wallet %s", account.address)
        return WalletKeys(address=account.address, encrypted_private_key=blob)

    def import_private_key(self, private_key: str) -> WalletKeys:
        normalized = normalize_private_key(private_key)
        account = Account.from_key(normalized)
        logger.info("Imported wallet %s", account.address)
        return WalletKeys(address=account.address, encrypted_private_key=self.encrypt(normalized))

    def address_of(self, blob: str) -> str:
        return Account.from_key(self.decrypt(blob)).address

    def signer(self, blob: str, endpoint: Optional[Endpoint] = None) -> LocalSigner:
        """Unlock a blob into a signer bound to one endpoint (the pool's current by default)."""
        if self.chain is None:
            raise RuntimeError("CustodyService was built without a chain client")
        account = Account.from_key(self.decrypt(blob))
        bound = endpoint or self.chain.pool.write_endpoint()
        return LocalSigner(account, self.chain, bound, gas_multiplier=self.gas_multiplier)
