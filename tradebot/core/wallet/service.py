"""
Wallet lifecycle for custodial users.

One wallet per user. Creating is idempotent, importing replaces (switches)
the stored key, disconnecting deletes it. Cached balances are a convenience
for display only; trades always read balances from chain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ...db.models import WalletRow
from ...db.repository import Repository
from ..custody.service import CustodyService
from ..errors import WalletNotConnected
from ..rpc.client import ChainClient
from ..rpc.erc20 import ERC20, checksum_address
from ..tokens.directory import TokenDirectory
from ..trading.amounts import format_units

logger = logging.getLogger(__name__)


@dataclass
class WalletBalances:
    address: str
    native_wei: int
    stable: int
    stable_decimals: int
    token_address: Optional[str] = None
    token_balance: Optional[int] = None
    token_decimals: Optional[int] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "address": self.address,
            "eth": format_units(self.native_wei, 18),
            "nativeWei": str(self.native_wei),
            "stable": format_units(self.stable, self.stable_decimals),
        }
        if self.token_address is not None and self.token_balance is not None:
            data["token"] = {
                "address": self.token_address,
                "balance": format_units(self.token_balance, self.token_decimals or 18),
            }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at.isoformat()
        return data


class WalletService:
    def __init__(
        self,
        repository: Repository,
        custody: CustodyService,
        chain: ChainClient,
        erc20: ERC20,
        tokens: TokenDirectory,
    ) -> None:
        self.repository = repository
        self.custody = custody
        self.chain = chain
        self.erc20 = erc20
        self.tokens = tokens

    async def get_wallet(self, user_id: str) -> Optional[WalletRow]:
        return await self.repository.get_wallet(user_id)

    async def ensure_wallet(self, user_id: str, username: str = "") -> WalletRow:
        """Return the user's wallet, generating one on first use."""
        await self.repository.get_or_create_user(user_id, username)
        existing = await self.repository.get_wallet(user_id)
        if existing is not None:
            return existing

        keys = self.custody.create_wallet()
        logger.info("Generated wallet %s for user %s", keys.address, user_id)
        return await self.repository.save_wallet(user_id, keys.address, keys.encrypted_private_key)

    async def import_wallet(self, user_id: str, private_key: str, username: str = "") -> WalletRow:
        """Replace the user's key with an imported one.

        The previous key is overwritten, not archived. Raises
        InvalidPrivateKeyError before touching storage when the key is bad.
        """
        keys = self.custody.import_private_key(private_key)
        await self.repository.get_or_create_user(user_id, username)

        previous = await self.repository.get_wallet(user_id)
        if previous is not None and previous.address.lower() != keys.address.lower():
            logger.info("User %s switching wallet %s -> %s", user_id, previous.address, keys.address)
        return await self.repository.save_wallet(user_id, keys.address, keys.encrypted_private_key)

    async def disconnect(self, user_id: str) -> bool:
        removed = await self.repository.delete_wallet(user_id)
        if removed:
            logger.info("Disconnected wallet for user %s", user_id)
        return removed

    async def refresh_balances(self, user_id: str, token: Optional[str] = None) -> WalletBalances:
        wallet = await self.repository.get_wallet(user_id)
        if wallet is None:
            raise WalletNotConnected()

        address = checksum_address(wallet.address)
        stable = self.tokens.stable
        native = await self.chain.get_balance(address)
        stable_balance = await self.erc20.balance_of(stable.address, address)

        balances = WalletBalances(
            address=address,
            native_wei=native,
            stable=stable_balance,
            stable_decimals=stable.decimals,
        )
        if token:
            token_address = await self.tokens.resolve_address(token)
            info = await self.tokens.info(token_address)
            balances.token_address = token_address
            balances.token_balance = await self.erc20.balance_of(token_address, address)
            balances.token_decimals = info.decimals

        row = await self.repository.update_balances(
            user_id,
            native_balance_wei=native,
            stable_balance=format_units(stable_balance, stable.decimals),
            token_address=balances.token_address,
            token_balance=(
                format_units(balances.token_balance, balances.token_decimals or 18)
                if balances.token_balance is not None
                else None
            ),
        )
        balances.updated_at = row.balances_updated_at if row is not None else None
        return balances
