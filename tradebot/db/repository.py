from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tradebot.db.models import PriceAlertRow, TokenRow, TradeRow, UserRow, WalletRow


class Repository:
    """Async persistence for users, wallets, trades, tokens and alerts.

    Each method runs in its own session and commits before returning, so a
    read issued after a write in the same process always sees it.
    """

    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    # ------------------------------------------------------------------ users

    async def get_user(self, user_id: str) -> Optional[UserRow]:
        async with self._sessions() as session:
            stmt = select(UserRow).where(UserRow.user_id == user_id).limit(1)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_or_create_user(self, user_id: str, username: str = "") -> UserRow:
        async with self._sessions() as session:
            stmt = select(UserRow).where(UserRow.user_id == user_id).limit(1)
            user = (await session.execute(stmt)).scalar_one_or_none()
            if user is None:
                user = UserRow(user_id=user_id, username=username or "", gas_boost_bps=0)
                session.add(user)
                await session.commit()
                await session.refresh(user)
            return user

    async def update_user_settings(
        self,
        user_id: str,
        *,
        slippage_bps: Optional[int] = None,
        gas_boost_bps: Optional[int] = None,
    ) -> UserRow:
        async with self._sessions() as session:
            stmt = select(UserRow).where(UserRow.user_id == user_id).limit(1)
            user = (await session.execute(stmt)).scalar_one_or_none()
            if user is None:
                user = UserRow(user_id=user_id, username="", gas_boost_bps=0)
                session.add(user)
            if slippage_bps is not None:
                user.slippage_bps = slippage_bps
            if gas_boost_bps is not None:
                user.gas_boost_bps = gas_boost_bps
            await session.commit()
            await session.refresh(user)
            return user

    # ---------------------------------------------------------------- wallets

    async def get_wallet(self, user_id: str) -> Optional[WalletRow]:
        async with self._sessions() as session:
            stmt = select(WalletRow).where(WalletRow.user_id == user_id).limit(1)
            return (await session.execute(stmt)).scalar_one_or_none()

    async def find_wallet_by_address(self, address: str) -> Optional[WalletRow]:
        async with self._sessions() as session:
            stmt = (
                select(WalletRow)
                .where(func.lower(WalletRow.address) == address.lower())
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none()

    async def save_wallet(self, user_id: str, address: str, encrypted_private_key: str) -> WalletRow:
        """Create or replace the user's wallet; cached balances are reset."""
        async with self._sessions() as session:
            stmt = select(WalletRow).where(WalletRow.user_id == user_id).limit(1)
            wallet = (await session.execute(stmt)).scalar_one_or_none()
            if wallet is None:
                wallet = WalletRow(user_id=user_id, address=address, encrypted_private_key=encrypted_private_key)
                session.add(wallet)
            else:
                wallet.address = address
                wallet.encrypted_private_key = encrypted_private_key
                wallet.created_at = datetime.utcnow()
            wallet.native_balance_wei = "0"
            wallet.stable_balance = "0"
            wallet.token_address = None
            wallet.token_balance = "0"
            wallet.balances_updated_at = None
            await session.commit()
            await session.refresh(wallet)
            return wallet

    async def delete_wallet(self, user_id: str) -> bool:
        async with self._sessions() as session:
            stmt = select(WalletRow).where(WalletRow.user_id == user_id).limit(1)
            wallet = (await session.execute(stmt)).scalar_one_or_none()
            if wallet is None:
                return False
            await session.delete(wallet)
            await session.commit()
            return True

    async def update_balances(
        self,
        user_id: str,
        *,
        native_balance_wei: int,
        stable_balance: str,
        token_address: Optional[str] = None,
        token_balance: Optional[str] = None,
    ) -> Optional[WalletRow]:
        async with self._sessions() as session:
            stmt = select(WalletRow).where(WalletRow.user_id == user_id).limit(1)
            wallet = (await session.execute(stmt)).scalar_one_or_none()
            if wallet is None:
                return None
            wallet.native_balance_wei = str(native_balance_wei)
            wallet.stable_balance = stable_balance
            if token_address is not None:
                wallet.token_address = token_address
                wallet.token_balance = token_balance or "0"
            wallet.balances_updated_at = datetime.utcnow()
            await session.commit()
            await session.refresh(wallet)
            return wallet

    # ----------------------------------------------------------------- trades

    async def append_trade(self, trade: TradeRow) -> TradeRow:
        async with self._sessions() as session:
            session.add(trade)
            await session.commit()
            await session.refresh(trade)
            return trade

    async def list_trades(self, user_id: str, limit: int = 20) -> List[TradeRow]:
        async with self._sessions() as session:
            stmt = (
                select(TradeRow)
                .where(TradeRow.user_id == user_id)
                .order_by(TradeRow.id.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ----------------------------------------------------------------- tokens

    async def get_token(self, address: str) -> Optional[TokenRow]:
        async with self._sessions() as session:
            stmt = select(TokenRow).where(func.lower(TokenRow.address) == address.lower()).limit(1)
            return (await session.execute(stmt)).scalar_one_or_none()

    async def find_token_by_symbol(self, symbol: str) -> Optional[TokenRow]:
        async with self._sessions() as session:
            stmt = (
                select(TokenRow)
                .where(func.upper(TokenRow.symbol) == symbol.upper())
                .order_by(TokenRow.id)
                .limit(1)
            )
            return (await session.execute(stmt)).scalar_one_or_none()

    async def list_tokens(self, symbol: Optional[str] = None, limit: int = 200) -> List[TokenRow]:
        """Known tokens, most recently refreshed first."""
        async with self._sessions() as session:
            stmt = select(TokenRow)
            if symbol:
                stmt = stmt.where(func.upper(TokenRow.symbol) == symbol.upper())
            stmt = stmt.order_by(TokenRow.updated_at.desc(), TokenRow.id.desc()).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def upsert_token(
        self,
        address: str,
        *,
        symbol: Optional[str] = None,
        name: Optional[str] = None,
        decimals: Optional[int] = None,
        price_usd: Optional[float] = None,
    ) -> TokenRow:
        """Insert or update; None fields leave stored values untouched."""
        async with self._sessions() as session:
            stmt = select(TokenRow).where(func.lower(TokenRow.address) == address.lower()).limit(1)
            token = (await session.execute(stmt)).scalar_one_or_none()
            if token is None:
                token = TokenRow(address=address)
                session.add(token)
            if symbol is not None:
                token.symbol = symbol
            if name is not None:
                token.name = name
            if decimals is not None:
                token.decimals = decimals
            if price_usd is not None:
                token.price_usd = price_usd
            await session.commit()
            await session.refresh(token)
            return token

    # ----------------------------------------------------------------- alerts

    async def add_alert(
        self,
        user_id: str,
        token_address: str,
        direction: str,
        target_price: float,
    ) -> PriceAlertRow:
        alert = PriceAlertRow(
            user_id=user_id,
            token_address=token_address,
            direction=direction,
            target_price=target_price,
            active=True,
        )
        async with self._sessions() as session:
            session.add(alert)
            await session.commit()
            await session.refresh(alert)
            return alert

    async def active_alerts(self) -> List[PriceAlertRow]:
        async with self._sessions() as session:
            stmt = select(PriceAlertRow).where(PriceAlertRow.active.is_(True)).order_by(PriceAlertRow.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_alerts(self, user_id: str) -> List[PriceAlertRow]:
        async with self._sessions() as session:
            stmt = select(PriceAlertRow).where(PriceAlertRow.user_id == user_id).order_by(PriceAlertRow.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def mark_alert_triggered(self, alert_id: int) -> None:
        async with self._sessions() as session:
            alert = await session.get(PriceAlertRow, alert_id)
            if alert is None:
                return
            alert.active = False
            alert.triggered_at = datetime.utcnow()
            await session.commit()
