"""
Tests for ERC-20 calldata and return-value helpers.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode as abi_encode

from tradebot.core.errors import InvalidAddressError, NotATokenError
from tradebot.core.rpc.erc20 import (
    ERC20,
    MAX_UINT256,
    checksum_address,
    decode_bytes32_string,
    decode_string,
    decode_uint,
    encode_approve,
    encode_transfer,
    topic_to_address,
)


SPENDER = "0xdef1c0ded9bec7f1a1670819833240f027b25eff"


def test_encode_approve_layout():
    data = encode_approve(SPENDER, 1_000)
    assert data.startswith("0x095ea7b3")
    assert len(data) == 2 + 8 + 64 + 64
    assert data[10:74].endswith(SPENDER[2:])
    assert int(data[74:], 16) == 1_000


def test_encode_transfer_max_amount():
    data = encode_transfer(SPENDER, MAX_UINT256)
    assert data.startswith("0xa9059cbb")
    assert data.endswith("f" * 64)


def test_checksum_address_accepts_lowercase():
    assert checksum_address(SPENDER) == "0xDef1C0ded9bec7F1a1670819833240f027b25EfF"


@pytest.mark.parametrize("value", ["", "0x123", "not an address", "0x" + "zz" * 20])
def test_checksum_address_rejects_garbage(value):
    with pytest.raises(InvalidAddressError):
        checksum_address(value)


def test_decode_uint():
    assert decode_uint("0x" + format(42, "064x")) == 42
    with pytest.raises(ValueError):
        decode_uint("0x")


def test_decode_string_and_bytes32():
    assert decode_string("0x" + abi_encode(["string"], ["Degen"]).hex()) == "Degen"
    assert decode_string("0x") is None
    assert decode_bytes32_string("0x" + b"MKR".ljust(32, b"\x00").hex()) == "MKR"


def test_topic_to_address():
    topic = "0x" + "0" * 24 + SPENDER[2:]
    assert topic_to_address(topic) == checksum_address(SPENDER)


@pytest.mark.asyncio
async def test_balance_of_address_without_code():
    chain = MagicMock()
    chain.call = AsyncMock(return_value="0x")
    erc20 = ERC20(chain)

    with pytest.raises(NotATokenError) as exc_info:
        await erc20.balance_of(SPENDER, SPENDER)
    assert exc_info.value.http_status == 400
    assert "not an ERC-20 contract" in exc_info.value.user_message

    with pytest.raises(NotATokenError):
        await erc20.allowance(SPENDER, SPENDER, SPENDER)


@pytest.mark.asyncio
async def test_balance_of_decodes_word():
    chain = MagicMock()
    chain.call = AsyncMock(return_value="0x" + format(7, "064x"))

    assert await ERC20(chain).balance_of(SPENDER, SPENDER) == 7
