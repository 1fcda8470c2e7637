"""
Step handlers for the chat flows.

Each handler receives the pending flow and the user's reply (free text or a
button verb) and returns a FlowOutcome. Validation problems are raised as
TradeError so the engine re-prompts with the error's user message.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from ..errors import ConfirmationTimeout, TransactionReverted
from ..interfaces import Action, Prompter
from ..rpc.erc20 import checksum_address
from ..tokens.directory import TokenDirectory
from ..trading.amounts import parse_amount
from ..trading.models import QuotePreview, TradeResult, TradeSide
from ..trading.orchestrator import NATIVE_SYMBOLS, TradeOrchestrator
from ..wallet.service import WalletService
from .engine import FlowCategory, FlowEngine, FlowOutcome, PendingFlow, action_data

logger = logging.getLogger(__name__)


def confirm_actions(category: FlowCategory):
    return (
        Action("✅ Confirm", action_data(category, "confirm")),
        Action("❌ Cancel", action_data(category, "cancel")),
    )


def format_preview(preview: QuotePreview, stable_symbol: str = "USDC") -> str:
    data = preview.to_dict()
    human = data["humanReadable"]
    stable_first = preview.side is TradeSide.BUY
    sell_symbol = stable_symbol if stable_first else preview.token.symbol
    buy_symbol = preview.token.symbol if stable_first else stable_symbol
    lines = [
        f"{'🟢 Buy' if stable_first else '🔴 Sell'} quote via {preview.quote.provider}",
        f"Spend: {human['sell']} {sell_symbol}",
        f"Receive: ~{human['buy']} {buy_symbol} (min {human['minBuy']})",
        f"Slippage: {preview.quote.slippage_bps / 100:.2f}%",
    ]
    if preview.fee is not None:
        lines.append(f"Network fee: ~{data['gasEstimate']['costEth']} ETH")
        if not preview.fee.sufficient:
            lines.append("⚠️ Not enough ETH in your wallet to cover gas.")
    return "\n".join(lines)


def format_result(result: TradeResult) -> str:
    lines = [f"✅ {result.side.value.capitalize()} {result.token.symbol} confirmed", f"Tx: {result.tx_hash}"]
    if result.approval_tx_hash:
        lines.append(f"Approval: {result.approval_tx_hash}")
    return "\n".join(lines)


class FlowHandlers:
    """Binds the four flow categories to wallet, token and trade services."""

    def __init__(
        self,
        engine: FlowEngine,
        prompter: Prompter,
        orchestrator: TradeOrchestrator,
        wallets: WalletService,
        tokens: TokenDirectory,
    ) -> None:
        self.engine = engine
        self.prompter = prompter
        self.orchestrator = orchestrator
        self.wallets = wallets
        self.tokens = tokens

    def register(self) -> None:
        self.engine.register(FlowCategory.IMPORT_KEY, on_text=self.on_import_key)
        self.engine.register(FlowCategory.CONTRACT_ADDRESS, on_text=self.on_contract_address)
        self.engine.register(
            FlowCategory.BUY_AMOUNT,
            on_text=self.on_trade_amount,
            on_action=self.on_trade_action,
        )
        self.engine.register(
            FlowCategory.WITHDRAW,
            on_text=self.on_withdraw_text,
            on_action=self.on_withdraw_action,
        )

    async def say(self, user_id: str, text: str) -> None:
        await self.prompter.send_message(user_id, text)

    # ------------------------------------------------------------- entrypoints

    async def begin_import(self, user_id: str) -> None:
        await self.engine.start(
            user_id,
            FlowCategory.IMPORT_KEY,
            "key",
            prompt="Send the private key to import (64 hex characters). It replaces your current wallet.",
        )

    async def begin_buy(self, user_id: str) -> None:
        await self.engine.start(
            user_id,
            FlowCategory.CONTRACT_ADDRESS,
            "address",
            prompt="Send the token contract address (or a known symbol) to buy.",
        )

    async def begin_trade(self, user_id: str, side: TradeSide, token: str, amount: str) -> None:
        """One-shot /buy or /sell with arguments: preview now, confirm with a button."""
        async with self.engine.lock(user_id):
            address = await self.tokens.resolve_address(token)
            preview = await self.orchestrator.quote(side, address, amount, user_id=user_id)
            self.engine.open(
                user_id,
                FlowCategory.BUY_AMOUNT,
                "confirm",
                {"side": side.value, "token": address, "symbol": preview.token.symbol, "amount": str(preview.amount)},
            )
            await self.prompter.request_confirmation(
                user_id, format_preview(preview, self.tokens.stable.symbol), *confirm_actions(FlowCategory.BUY_AMOUNT)
            )

    async def begin_withdraw(self, user_id: str) -> None:
        await self.engine.start(
            user_id,
            FlowCategory.WITHDRAW,
            "token",
            prompt="Which token do you want to withdraw? Send ETH, a symbol or a contract address.",
        )

    # ---------------------------------------------------------------- handlers

    async def on_import_key(self, flow: PendingFlow, text: str) -> FlowOutcome:
        wallet = await self.wallets.import_wallet(flow.user_id, text.strip())
        await self.say(flow.user_id, f"🔑 Wallet imported: {wallet.address}")
        return FlowOutcome.DONE

    async def on_contract_address(self, flow: PendingFlow, text: str) -> FlowOutcome:
        address = await self.tokens.resolve_address(text)
        info = await self.tokens.info(address)
        self.engine.open(
            flow.user_id,
            FlowCategory.BUY_AMOUNT,
            "amount",
            {"side": TradeSide.BUY.value, "token": address, "symbol": info.symbol},
        )
        stable = self.tokens.stable.symbol
        await self.say(
            flow.user_id,
            f"{info.name} ({info.symbol})\n{address}\n\nHow much {stable} do you want to spend?",
        )
        return FlowOutcome.DONE

    async def on_trade_amount(self, flow: PendingFlow, text: str) -> FlowOutcome:
        if flow.step != "amount":
            await self.say(flow.user_id, "Use the buttons above to confirm or cancel.")
            return FlowOutcome.RETRY

        side = TradeSide(flow.data.get("side", TradeSide.BUY.value))
        amount = parse_amount(text.strip())
        preview = await self.orchestrator.quote(side, flow.data["token"], amount, user_id=flow.user_id)
        self.engine.advance(flow, "confirm", amount=str(amount))
        await self.prompter.request_confirmation(
            flow.user_id, format_preview(preview, self.tokens.stable.symbol), *confirm_actions(FlowCategory.BUY_AMOUNT)
        )
        return FlowOutcome.ADVANCE

    async def on_trade_action(self, flow: PendingFlow, verb: str) -> FlowOutcome:
        if verb != "confirm" or flow.step != "confirm":
            return FlowOutcome.RETRY

        side = TradeSide(flow.data.get("side", TradeSide.BUY.value))
        await self.say(flow.user_id, "⏳ Submitting trade...")
        try:
            result = await self.orchestrator.execute(
                side, flow.user_id, flow.data["token"], Decimal(flow.data["amount"])
            )
        except (TransactionReverted, ConfirmationTimeout) as exc:
            # Something was broadcast: never offer the same confirm button again
            await self.say(flow.user_id, exc.user_message)
            return FlowOutcome.DONE
        await self.say(flow.user_id, format_result(result))
        return FlowOutcome.DONE

    async def on_withdraw_text(self, flow: PendingFlow, text: str) -> FlowOutcome:
        value = text.strip()
        if flow.step == "token":
            if value.upper() in NATIVE_SYMBOLS:
                token, symbol = "ETH", "ETH"
            else:
                token = await self.tokens.resolve_address(value)
                symbol = (await self.tokens.info(token)).symbol
            self.engine.advance(flow, "amount", token=token, symbol=symbol)
            await self.say(flow.user_id, f"How much {symbol} do you want to withdraw?")
            return FlowOutcome.ADVANCE

        if flow.step == "amount":
            amount = parse_amount(value)
            self.engine.advance(flow, "destination", amount=str(amount))
            await self.say(flow.user_id, "Send the destination address.")
            return FlowOutcome.ADVANCE

        if flow.step == "destination":
            destination = checksum_address(value)
            self.engine.advance(flow, "confirm", destination=destination)
            await self.prompter.request_confirmation(
                flow.user_id,
                f"Withdraw {flow.data['amount']} {flow.data['symbol']} to {destination}?",
                *confirm_actions(FlowCategory.WITHDRAW),
            )
            return FlowOutcome.ADVANCE

        await self.say(flow.user_id, "Use the buttons above to confirm or cancel.")
        return FlowOutcome.RETRY

    async def on_withdraw_action(self, flow: PendingFlow, verb: str) -> FlowOutcome:
        if verb != "confirm" or flow.step != "confirm":
            return FlowOutcome.RETRY

        await self.say(flow.user_id, "⏳ Sending withdrawal...")
        try:
            result = await self.orchestrator.withdraw(
                flow.user_id, flow.data["amount"], flow.data["token"], flow.data["destination"]
            )
        except (TransactionReverted, ConfirmationTimeout) as exc:
            await self.say(flow.user_id, exc.user_message)
            return FlowOutcome.DONE
        await self.say(flow.user_id, f"✅ Sent {result.amount} {result.symbol} to {result.destination}\nTx: {result.tx_hash}")
        return FlowOutcome.DONE


def parse_trade_args(args: List[str]) -> Optional[Tuple[str, str]]:
    """``/buy <amount> <token>`` -> (amount, token), or None when incomplete."""
    if len(args) < 2:
        return None
    return args[0], args[1]
