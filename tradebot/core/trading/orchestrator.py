"""
Trade orchestrator.

Composes token resolution, quoting, allowance, gas policy and signing into
buy/sell executions and withdrawals. These are the only entry points that
touch a live signer; ``quote`` is side-effect free and safe to repeat.

Everything raised out of this module is a TradeError.
"""

import logging
from decimal import Decimal
from typing import AsyncContextManager, Dict, Optional, Tuple, Union

from ...db.models import TradeRow, UserRow
from ...db.repository import Repository
from ..custody.service import CustodyService, LocalSigner
from ..errors import (
    ConfirmationTimeout,
    InsufficientFundsError,
    InvalidAmountError,
    MinimumAmountError,
    TradeError,
    TransactionReverted,
    WalletNotConnected,
    translate_error,
)
from ..gas.policy import AllowanceManager, GasPolicy, apply_boost
from ..interfaces import EventBroadcaster, Notifier, NullBroadcaster, NullNotifier
from ..locks import UserLocks
from ..rpc.client import ChainClient, Receipt
from ..rpc.erc20 import ERC20, checksum_address, encode_transfer
from ..swap.aggregator import QuoteAggregator
from ..swap.models import Quote, QuoteRequest
from ..tokens.directory import TokenDirectory
from ..tokens.resolvers import TokenInfo
from .amounts import format_units, parse_amount, to_base_units
from .models import (
    QuotePreview,
    TradeAttempt,
    TradeResult,
    TradeSide,
    TradeStage,
    TradeStatus,
    WithdrawResult,
)
from .receipts import parse_executed_amounts


logger = logging.getLogger(__name__)

Amount = Union[str, int, float, Decimal]

NATIVE_SYMBOLS = {"ETH", "NATIVE"}
NATIVE_DECIMALS = 18


class TradeOrchestrator:
    def __init__(
        self,
        *,
        chain: ChainClient,
        erc20: ERC20,
        aggregator: QuoteAggregator,
        custody: CustodyService,
        gas_policy: GasPolicy,
        allowances: AllowanceManager,
        tokens: TokenDirectory,
        repository: Repository,
        notifier: Optional[Notifier] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        stable_min_buy: Decimal = Decimal("3"),
        default_slippage_bps: int = 100,
        max_slippage_bps: int = 2000,
        max_gas_boost_bps: int = 10_000,
    ) -> None:
        self.chain = chain
        self.erc20 = erc20
        self.aggregator = aggregator
        self.custody = custody
        self.gas_policy = gas_policy
        self.allowances = allowances
        self.tokens = tokens
        self.repository = repository
        self.notifier = notifier or NullNotifier()
        self.broadcaster = broadcaster or NullBroadcaster()
        self.stable_min_buy = Decimal(stable_min_buy)
        self.default_slippage_bps = default_slippage_bps
        self.max_slippage_bps = max_slippage_bps
        self.max_gas_boost_bps = max_gas_boost_bps
        self._locks = UserLocks()

    # ------------------------------------------------------------------ helpers

    def user_lock(self, user_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(user_id)

    def check_minimum(self, side: TradeSide, amount: Decimal) -> None:
        if side is TradeSide.BUY and amount < self.stable_min_buy:
            raise MinimumAmountError(self.stable_min_buy, self.tokens.stable.symbol)

    def _slippage(self, requested: Optional[int], user: Optional[UserRow]) -> int:
        if requested is None:
            if user is not None and user.slippage_bps is not None:
                return user.slippage_bps
            return self.default_slippage_bps
        if requested < 0 or requested > self.max_slippage_bps:
            raise InvalidAmountError(f"Slippage must be between 0 and {self.max_slippage_bps} bps")
        return requested

    def _boost(self, requested: Optional[int], user: Optional[UserRow]) -> int:
        if requested is None:
            return (user.gas_boost_bps or 0) if user is not None else 0
        if requested < 0 or requested > self.max_gas_boost_bps:
            raise InvalidAmountError(f"Gas boost must be between 0 and {self.max_gas_boost_bps} bps")
        return requested

    def _legs(self, side: TradeSide, token: TokenInfo) -> Tuple[TokenInfo, TokenInfo]:
        stable = self.tokens.stable
        return (stable, token) if side is TradeSide.BUY else (token, stable)

    async def _signer_for(self, user_id: str) -> LocalSigner:
        wallet = await self.repository.get_wallet(user_id)
        if wallet is None or not wallet.encrypted_private_key:
            raise WalletNotConnected()
        return self.custody.signer(wallet.encrypted_private_key)

    async def _publish(self, event: str, payload: Dict) -> None:
        try:
            await self.broadcaster.publish(event, payload)
        except Exception as exc:
            # Subscribers must never break a trade that already happened
            logger.warning("Event publish failed for %s: %r", event, exc)

    async def _notify(self, user_id: str, text: str) -> None:
        try:
            await self.notifier.notify(user_id, text)
        except Exception as exc:
            logger.warning("Notification to %s failed: %r", user_id, exc)

    # -------------------------------------------------------------------- quote

    async def quote(
        self,
        side: Union[TradeSide, str],
        token: str,
        amount: Amount,
        slippage_bps: Optional[int] = None,
        *,
        user_id: Optional[str] = None,
    ) -> QuotePreview:
        """Preview a trade. No signer, no transaction, no record."""
        side = TradeSide(side)
        human = parse_amount(amount)
        self.check_minimum(side, human)

        try:
            user = await self.repository.get_user(user_id) if user_id else None
            slippage = self._slippage(slippage_bps, user)

            token_address = await self.tokens.resolve_address(token)
            info = await self.tokens.info(token_address)
            sell, buy = self._legs(side, info)

            quote = await self.aggregator.quote(
                QuoteRequest(
                    sell_token=sell.address,
                    buy_token=buy.address,
                    sell_amount=to_base_units(human, sell.decimals),
                    taker=None,
                    slippage_bps=slippage,
                )
            )
            self._check_quote_decimals(quote, buy)

            fee = None
            wallet = await self.repository.get_wallet(user_id) if user_id else None
            if wallet is not None:
                native = await self.chain.get_balance(wallet.address)
                fee = await self.gas_policy.estimate_fee(quote, native)

            return QuotePreview(
                side=side,
                token=info,
                amount=human,
                sell_decimals=sell.decimals,
                buy_decimals=buy.decimals,
                quote=quote,
                fee=fee,
            )
        except TradeError:
            raise
        except Exception as exc:
            logger.exception("Quote failed for %s %s", side.value, token)
            raise translate_error(exc) from exc

    @staticmethod
    def _check_quote_decimals(quote: Quote, buy: TokenInfo) -> None:
        if quote.buy_token_decimals is not None and quote.buy_token_decimals != buy.decimals:
            logger.warning(
                "%s reported %d decimals for %s, token declares %d",
                quote.provider,
                quote.buy_token_decimals,
                buy.address,
                buy.decimals,
            )

    # ------------------------------------------------------------------ execute

    async def execute_buy(self, user_id: str, token: str, amount: Amount, **kwargs) -> TradeResult:
        return await self.execute(TradeSide.BUY, user_id, token, amount, **kwargs)

    async def execute_sell(self, user_id: str, token: str, amount: Amount, **kwargs) -> TradeResult:
        return await self.execute(TradeSide.SELL, user_id, token, amount, **kwargs)

    async def execute(
        self,
        side: Union[TradeSide, str],
        user_id: str,
        token: str,
        amount: Amount,
        slippage_bps: Optional[int] = None,
        gas_boost_bps: Optional[int] = None,
    ) -> TradeResult:
        side = TradeSide(side)
        human = parse_amount(amount)
        # Fail fast: no wallet lookup, no RPC
        self.check_minimum(side, human)

        attempt = TradeAttempt(side, user_id)
        async with self.user_lock(user_id):
            try:
                return await self._execute(attempt, user_id, token, human, slippage_bps, gas_boost_bps)
            except TradeError:
                attempt.fail()
                raise
            except Exception as exc:
                attempt.fail()
                logger.exception("Trade %s failed for user %s", side.value, user_id)
                raise translate_error(exc) from exc

    async def _execute(
        self,
        attempt: TradeAttempt,
        user_id: str,
        token: str,
        human: Decimal,
        slippage_bps: Optional[int],
        gas_boost_bps: Optional[int],
    ) -> TradeResult:
        side = attempt.side
        user = await self.repository.get_user(user_id)
        slippage = self._slippage(slippage_bps, user)
        boost = self._boost(gas_boost_bps, user)
        signer = await self._signer_for(user_id)

        attempt.advance(TradeStage.RESOLVING)
        token_address = await self.tokens.resolve_address(token)
        info = await self.tokens.info(token_address)
        sell, buy = self._legs(side, info)
        sell_amount = to_base_units(human, sell.decimals)

        balance = await self.erc20.balance_of(sell.address, signer.address)
        if balance < sell_amount:
            raise InsufficientFundsError(
                f"Insufficient {sell.symbol}: have {format_units(balance, sell.decimals)}, "
                f"need {format_units(sell_amount, sell.decimals)}",
                shortfall=sell_amount - balance,
                asset=sell.symbol,
            )

        attempt.advance(TradeStage.QUOTING)
        quote = await self.aggregator.quote(
            QuoteRequest(
                sell_token=sell.address,
                buy_token=buy.address,
                sell_amount=sell_amount,
                taker=signer.address,
                slippage_bps=slippage,
            )
        )
        self._check_quote_decimals(quote, buy)

        attempt.advance(TradeStage.ALLOWANCE_CHECK)
        approval_hash = await self.aggregator.ensure_allowance(quote, signer, self.allowances)
        if approval_hash:
            attempt.advance(TradeStage.APPROVING)
            logger.info("Approval %s confirmed for user %s", approval_hash, user_id)

        attempt.advance(TradeStage.GAS_CHECK)
        fee_data = await self.chain.fee_data()
        native = await self.chain.get_balance(signer.address)
        estimate = await self.gas_policy.estimate_fee(quote, native, fee_data)
        if not estimate.sufficient:
            raise InsufficientFundsError(
                f"Not enough ETH for gas: short by {format_units(estimate.shortfall_wei, NATIVE_DECIMALS)} ETH",
                shortfall=estimate.shortfall_wei,
            )
        overrides = apply_boost(fee_data, boost)

        attempt.advance(TradeStage.SENDING)
        # Anything raised before this returns means nothing was broadcast: no record
        tx_hash = await self.aggregator.send(quote, signer, overrides)

        def result(status: TradeStatus, receipt: Optional[Receipt] = None) -> TradeResult:
            return TradeResult(
                side=side,
                user_id=user_id,
                token=info,
                amount=human,
                tx_hash=tx_hash,
                status=status,
                provider=quote.provider,
                sell_decimals=sell.decimals,
                buy_decimals=buy.decimals,
                receipt=receipt,
                approval_tx_hash=approval_hash,
                stages=list(attempt.history),
            )

        try:
            receipt = await signer.wait(tx_hash)
        except ConfirmationTimeout:
            pending = result(TradeStatus.PENDING)
            await self._record(pending)
            await self._publish("trade", pending.to_dict())
            raise

        if not receipt.succeeded:
            failed = result(TradeStatus.FAILED, receipt)
            await self._record(failed)
            await self._publish("trade", failed.to_dict())
            error = TransactionReverted(tx_hash, receipt.status)
            await self._notify(user_id, error.user_message)
            raise error

        attempt.advance(TradeStage.CONFIRMED)
        done = result(TradeStatus.COMPLETED, receipt)
        done.executed = parse_executed_amounts(receipt, signer.address, sell.address, buy.address)
        await self._record(done)
        await self._publish("trade", done.to_dict())
        await self._notify(
            user_id,
            f"{side.value.capitalize()} of {info.symbol} confirmed: {tx_hash}",
        )
        return done

    async def _record(self, result: TradeResult) -> None:
        executed = result.executed
        await self.repository.append_trade(
            TradeRow(
                user_id=result.user_id,
                side=result.side.value,
                token_address=result.token.address,
                token_symbol=result.token.symbol,
                amount=str(result.amount),
                tx_hash=result.tx_hash,
                status=result.status.value,
                provider=result.provider,
                approval_tx_hash=result.approval_tx_hash,
                amount_in=str(executed.amount_in) if executed else None,
                amount_out=str(executed.amount_out) if executed else None,
            )
        )

    # ----------------------------------------------------------------- withdraw

    async def withdraw(
        self,
        user_id: str,
        amount: Amount,
        token_symbol_or_address: str,
        destination: str,
    ) -> WithdrawResult:
        """Send the native asset or an ERC-20 from the user's wallet to ``destination``."""
        recipient = checksum_address(destination)
        human = parse_amount(amount)

        async with self.user_lock(user_id):
            try:
                return await self._withdraw(user_id, human, token_symbol_or_address, recipient)
            except TradeError:
                raise
            except Exception as exc:
                logger.exception("Withdraw failed for user %s", user_id)
                raise translate_error(exc) from exc

    async def _withdraw(self, user_id: str, human: Decimal, token: str, recipient: str) -> WithdrawResult:
        signer = await self._signer_for(user_id)

        if token.strip().upper() in NATIVE_SYMBOLS:
            symbol, token_address = "ETH", "native"
            units = to_base_units(human, NATIVE_DECIMALS)
            balance = await self.chain.get_balance(signer.address)
            if balance < units:
                raise InsufficientFundsError(
                    f"Insufficient ETH: have {format_units(balance, NATIVE_DECIMALS)}, need {human}",
                    shortfall=units - balance,
                )
            tx = {"to": recipient, "value": units, "data": "0x"}
        else:
            token_address = await self.tokens.resolve_address(token)
            info = await self.tokens.info(token_address)
            symbol = info.symbol
            units = to_base_units(human, info.decimals)
            balance = await self.erc20.balance_of(token_address, signer.address)
            if balance < units:
                raise InsufficientFundsError(
                    f"Insufficient {symbol}: have {format_units(balance, info.decimals)}, need {human}",
                    shortfall=units - balance,
                    asset=symbol,
                )
            tx = {"to": token_address, "value": 0, "data": encode_transfer(recipient, units)}

        tx_hash = await signer.send_transaction(tx)

        async def record(status: TradeStatus) -> None:
            await self.repository.append_trade(
                TradeRow(
                    user_id=user_id,
                    side="withdraw",
                    token_address=token_address,
                    token_symbol=symbol,
                    amount=str(human),
                    tx_hash=tx_hash,
                    status=status.value,
                    provider="",
                )
            )

        try:
            receipt = await signer.wait(tx_hash)
        except ConfirmationTimeout:
            await record(TradeStatus.PENDING)
            raise

        await record(TradeStatus.COMPLETED if receipt.succeeded else TradeStatus.FAILED)
        if not receipt.succeeded:
            raise TransactionReverted(tx_hash, receipt.status, stage="withdraw")

        result = WithdrawResult(
            user_id=user_id,
            token=token_address,
            symbol=symbol,
            amount=human,
            destination=recipient,
            tx_hash=tx_hash,
            receipt=receipt,
        )
        await self._publish("withdraw", result.to_dict())
        return result
