"""
Minimal ERC-20 access: calldata encoding, return decoding and reads.
"""

import logging
from typing import Optional

from eth_abi import decode as abi_decode
from eth_utils import is_address, to_checksum_address

from ..errors import InvalidAddressError, NotATokenError
from .client import ChainClient


logger = logging.getLogger(__name__)

ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_TRANSFER_SELECTOR = "0xa9059cbb"  # transfer(address,uint256)
ERC20_BALANCE_OF_SELECTOR = "0x70a08231"  # balanceOf(address)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)
ERC20_DECIMALS_SELECTOR = "0x313ce567"  # decimals()
ERC20_SYMBOL_SELECTOR = "0x95d89b41"  # symbol()
ERC20_NAME_SELECTOR = "0x06fdde03"  # name()

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

MAX_UINT256 = 2**256 - 1

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def checksum_address(value: str) -> str:
    """Validate and checksum an address, raising InvalidAddressError."""
    candidate = (value or "").strip()
    if not is_address(candidate):
        raise InvalidAddressError(candidate)
    return to_checksum_address(candidate)


def encode_approve(spender: str, amount: int) -> str:
    return ERC20_APPROVE_SELECTOR + _encode_address(spender) + _encode_uint256(amount)


def encode_transfer(recipient: str, amount: int) -> str:
    return ERC20_TRANSFER_SELECTOR + _encode_address(recipient) + _encode_uint256(amount)


def _payload(result: str) -> bytes:
    text = result or "0x"
    if text.startswith("0x"):
        text = text[2:]
    return bytes.fromhex(text)


def decode_uint(result: str) -> int:
    payload = _payload(result)
    if not payload:
        raise ValueError("empty return data")
    return int.from_bytes(payload[:32], "big")


def decode_string(result: str) -> Optional[str]:
    """Decode an ABI ``string`` return value."""
    payload = _payload(result)
    if len(payload) < 64:
        return None
    (value,) = abi_decode(["string"], payload)
    value = value.strip("\x00").strip()
    return value or None


def decode_bytes32_string(result: str) -> Optional[str]:
    """Decode a ``bytes32`` return value holding right-padded text (older tokens)."""
    payload = _payload(result)
    if len(payload) < 32:
        return None
    (raw,) = abi_decode(["bytes32"], payload[:32])
    value = raw.rstrip(b"\x00").decode("utf-8", errors="ignore").strip()
    return value or None


def topic_to_address(topic: str) -> str:
    return to_checksum_address("0x" + topic[-40:])


class ERC20:
    """Reads against ERC-20 contracts through the chain client."""

    def __init__(self, chain: ChainClient) -> None:
        self.chain = chain

    async def _token_uint(self, token: str, data: str) -> int:
        result = await self.chain.call(token, data)
        # eth_call against an address without code succeeds with "0x"
        if not _payload(result):
            raise NotATokenError(token)
        return decode_uint(result)

    async def balance_of(self, token: str, owner: str) -> int:
        return await self._token_uint(token, ERC20_BALANCE_OF_SELECTOR + _encode_address(owner))

    async def allowance(self, token: str, owner: str, spender: str) -> int:
        data = ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)
        return await self._token_uint(token, data)

    async def decimals(self, token: str) -> int:
        return decode_uint(await self.chain.call(token, ERC20_DECIMALS_SELECTOR))

    async def raw_call(self, token: str, selector: str) -> str:
        return await self.chain.call(token, selector)
