"""
Token metadata resolution.

Resolvers are tried in order and merged left to right: for each field the
first non-null value wins. Defaults fill whatever is still missing.
A resolver that hits a contract-level problem (revert, undecodable return)
contributes nothing; an RPC outage (GatewayExhausted) propagates.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from eth_abi.exceptions import DecodingError

from ...db.repository import Repository
from ..errors import RpcResponseError
from ..rpc.erc20 import (
    ERC20,
    ERC20_NAME_SELECTOR,
    ERC20_SYMBOL_SELECTOR,
    decode_bytes32_string,
    decode_string,
)


logger = logging.getLogger(__name__)

DEFAULT_NAME = "Unknown"
DEFAULT_SYMBOL = "TOKEN"
DEFAULT_DECIMALS = 18

CONTRACT_ERRORS = (RpcResponseError, DecodingError, ValueError, OverflowError)


@dataclass(frozen=True)
class TokenMetadata:
    """Partial metadata; None means "this source does not know"."""

    address: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimals: Optional[int] = None

    @property
    def complete(self) -> bool:
        return self.name is not None and self.symbol is not None and self.decimals is not None

    def merge(self, other: "TokenMetadata") -> "TokenMetadata":
        return replace(
            self,
            name=self.name if self.name is not None else other.name,
            symbol=self.symbol if self.symbol is not None else other.symbol,
            decimals=self.decimals if self.decimals is not None else other.decimals,
        )

    def with_defaults(self) -> "TokenInfo":
        return TokenInfo(
            address=self.address,
            name=self.name if self.name is not None else DEFAULT_NAME,
            symbol=self.symbol if self.symbol is not None else DEFAULT_SYMBOL,
            decimals=self.decimals if self.decimals is not None else DEFAULT_DECIMALS,
        )


@dataclass(frozen=True)
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int


class TokenResolver(ABC):
    name: str = "resolver"

    @abstractmethod
    async def resolve(self, address: str) -> TokenMetadata:
        pass


class CachedTokenResolver(TokenResolver):
    """Reads the cached token record, if any."""

    name = "cache"

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    async def resolve(self, address: str) -> TokenMetadata:
        row = await self.repository.get_token(address)
        if row is None:
            return TokenMetadata(address=address)
        return TokenMetadata(address=address, name=row.name, symbol=row.symbol, decimals=row.decimals)


class OnChainStringResolver(TokenResolver):
    """Standard ERC-20: string name/symbol plus uint8 decimals."""

    name = "onchain-string"

    def __init__(self, erc20: ERC20) -> None:
        self.erc20 = erc20

    async def _string(self, address: str, selector: str) -> Optional[str]:
        try:
            return decode_string(await self.erc20.raw_call(address, selector))
        except CONTRACT_ERRORS as exc:
            logger.debug("String call %s on %s failed: %r", selector, address, exc)
            return None

    async def resolve(self, address: str) -> TokenMetadata:
        decimals: Optional[int]
        try:
            decimals = await self.erc20.decimals(address)
        except CONTRACT_ERRORS as exc:
            logger.debug("decimals() on %s failed: %r", address, exc)
            decimals = None
        if decimals is not None and decimals > 255:
            decimals = None

        return TokenMetadata(
            address=address,
            name=await self._string(address, ERC20_NAME_SELECTOR),
            symbol=await self._string(address, ERC20_SYMBOL_SELECTOR),
            decimals=decimals,
        )


class OnChainBytes32Resolver(TokenResolver):
    """Legacy tokens that return bytes32 for name/symbol."""

    name = "onchain-bytes32"

    def __init__(self, erc20: ERC20) -> None:
        self.erc20 = erc20

    async def _bytes32(self, address: str, selector: str) -> Optional[str]:
        try:
            return decode_bytes32_string(await self.erc20.raw_call(address, selector))
        except CONTRACT_ERRORS as exc:
            logger.debug("bytes32 call %s on %s failed: %r", selector, address, exc)
            return None

    async def resolve(self, address: str) -> TokenMetadata:
        return TokenMetadata(
            address=address,
            name=await self._bytes32(address, ERC20_NAME_SELECTOR),
            symbol=await self._bytes32(address, ERC20_SYMBOL_SELECTOR),
        )


class TokenMetadataService:
    def __init__(self, resolvers: Sequence[TokenResolver]) -> None:
        self.resolvers = list(resolvers)

    async def resolve_partial(self, address: str) -> TokenMetadata:
        merged = TokenMetadata(address=address)
        for resolver in self.resolvers:
            if merged.complete:
                break
            merged = merged.merge(await resolver.resolve(address))
        return merged

    async def resolve(self, address: str) -> TokenInfo:
        return (await self.resolve_partial(address)).with_defaults()
