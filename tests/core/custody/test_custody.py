"""
Tests for encrypted key custody.
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

from tradebot.core.custody.service import (
    CustodyService,
    LocalSigner,
    decrypt,
    encrypt,
    normalize_private_key,
)
from tradebot.core.errors import DecryptionError, InvalidPrivateKeyError
from tradebot.core.rpc.client import FeeData, Receipt
from tradebot.core.rpc.pool import Endpoint


KEY = "0x" + "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"


@pytest.mark.parametrize("passphrase", ["pass", "a much longer passphrase with spaces", "ünïcödé"])
def test_round_trip(passphrase):
    assert decrypt(encrypt(KEY, passphrase), passphrase) == KEY


def test_wrong_passphrase_fails():
    blob = encrypt(KEY, "pass1")
    with pytest.raises(DecryptionError):
        decrypt(blob, "pass2")


def test_each_encryption_uses_fresh_salt_and_nonce():
    assert encrypt(KEY, "pass") != encrypt(KEY, "pass")


@pytest.mark.parametrize("blob", ["not base64!!", base64.b64encode(b"short").decode(), ""])
def test_malformed_blob_fails(blob):
    with pytest.raises(DecryptionError):
        decrypt(blob, "pass")


def test_tampered_ciphertext_fails():
    raw = bytearray(base64.b64decode(encrypt(KEY, "pass")))
    raw[-1] ^= 0x01
    with pytest.raises(DecryptionError):
        decrypt(base64.b64encode(bytes(raw)).decode(), "pass")


@pytest.mark.parametrize("value", [KEY, KEY[2:], "  " + KEY.upper().replace("0X", "0x") + "\n"])
def test_normalize_private_key_accepts_variants(value):
    assert normalize_private_key(value) == KEY


@pytest.mark.parametrize("value", ["", "0x1234", "g" * 64, "0x" + "f" * 64])
def test_normalize_private_key_rejects(value):
    with pytest.raises(InvalidPrivateKeyError) as exc_info:
        normalize_private_key(value)
    assert exc_info.value.user_message.startswith("Invalid private key")


def test_create_and_import_wallet():
    custody = CustodyService("secret")

    created = custody.create_wallet()
    assert custody.address_of(created.encrypted_private_key) == created.address

    imported = custody.import_private_key(KEY[2:])
    assert imported.address == Account.from_key(KEY).address
    assert custody.decrypt(imported.encrypted_private_key) == KEY


def test_empty_passphrase_rejected():
    with pytest.raises(ValueError):
        CustodyService("")


@pytest.mark.asyncio
async def test_signer_pins_nonce_and_broadcast_to_one_endpoint():
    endpoint = Endpoint(url="https://rpc.example", rank=0)
    chain = MagicMock()
    chain.chain_id = 8453
    chain.get_transaction_count = AsyncMock(return_value=5)
    chain.estimate_gas = AsyncMock(return_value=100_000)
    chain.fee_data = AsyncMock(return_value=FeeData(gas_price=10, max_fee_per_gas=20, max_priority_fee_per_gas=1))
    chain.send_raw_transaction = AsyncMock(return_value="0x" + "aa" * 32)
    chain.wait_for_receipt = AsyncMock(return_value=Receipt(tx_hash="0x" + "aa" * 32, status=1))

    signer = LocalSigner(Account.from_key(KEY), chain, endpoint, gas_multiplier=1.5)
    tx_hash = await signer.send_transaction({"to": "0x" + "22" * 20, "data": "0x", "value": 1})

    assert tx_hash == "0x" + "aa" * 32
    chain.get_transaction_count.assert_awaited_once_with(signer.address, "pending", endpoint=endpoint)
    raw, used_endpoint = chain.send_raw_transaction.await_args.args
    assert used_endpoint is endpoint
    assert raw.startswith("0x02")  # EIP-1559 typed transaction

    receipt = await signer.wait(tx_hash)
    assert receipt.succeeded
