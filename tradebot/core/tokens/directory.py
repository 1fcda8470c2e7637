"""Symbol/address lookup and cached metadata for tradable tokens."""

from __future__ import annotations

import logging

from ...db.repository import Repository
from ..errors import UnknownTokenError
from ..rpc.erc20 import checksum_address
from .resolvers import TokenInfo, TokenMetadataService


logger = logging.getLogger(__name__)


class TokenDirectory:
    def __init__(
        self,
        repository: Repository,
        metadata: TokenMetadataService,
        *,
        stable_symbol: str,
        stable_address: str,
        stable_decimals: int,
    ) -> None:
        self.repository = repository
        self.metadata = metadata
        self.stable = TokenInfo(
            address=checksum_address(stable_address),
            name=stable_symbol,
            symbol=stable_symbol,
            decimals=stable_decimals,
        )

    def is_stable(self, address: str) -> bool:
        return address.lower() == self.stable.address.lower()

    async def resolve_address(self, symbol_or_address: str) -> str:
        """Accept a 0x address or a known symbol; unknown symbols are rejected."""
        value = (symbol_or_address or "").strip()
        if not value:
            raise UnknownTokenError(value)
        if value.lower().startswith("0x"):
            return checksum_address(value)
        if value.upper() == self.stable.symbol.upper():
            return self.stable.address

        row = await self.repository.find_token_by_symbol(value)
        if row is None:
            raise UnknownTokenError(value.upper())
        return checksum_address(row.address)

    async def info(self, address: str) -> TokenInfo:
        if self.is_stable(address):
            return self.stable

        partial = await self.metadata.resolve_partial(address)
        info = partial.with_defaults()

        # Only remember what a source actually reported, never the defaults
        if partial.name is not None or partial.symbol is not None or partial.decimals is not None:
            await self.repository.upsert_token(
                address,
                name=partial.name,
                symbol=partial.symbol,
                decimals=partial.decimals,
            )
        return info

    async def decimals(self, address: str) -> int:
        return (await self.info(address)).decimals
