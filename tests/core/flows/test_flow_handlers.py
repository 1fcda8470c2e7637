"""
Tests for the chat flow step handlers, driven through the flow engine.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradebot.core.errors import InvalidPrivateKeyError, TransactionReverted
from tradebot.core.flows import FlowCategory, FlowEngine, FlowHandlers, action_data, format_preview, parse_trade_args
from fakes import RecordingPrompter
from tradebot.core.swap.models import Quote, SwapTx
from tradebot.core.tokens import TokenInfo
from tradebot.core.trading import QuotePreview, TradeResult, TradeSide, TradeStatus, WithdrawResult
from tradebot.core.rpc.client import Receipt


USDC = TokenInfo(address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", name="USDC", symbol="USDC", decimals=6)
DEGEN = TokenInfo(address="0x" + "44" * 20, name="Degen", symbol="DEGEN", decimals=18)
DEST = "0x" + "dd" * 20


def preview(side=TradeSide.BUY, amount="10"):
    quote = Quote(
        sell_token=USDC.address,
        buy_token=DEGEN.address,
        sell_amount=10_000_000,
        buy_amount=2 * 10**18,
        min_buy_amount=198 * 10**16,
        provider="0x",
        tx=SwapTx(to="0x" + "cc" * 20, data="0x"),
        slippage_bps=100,
    )
    return QuotePreview(side=side, token=DEGEN, amount=Decimal(amount), sell_decimals=6, buy_decimals=18, quote=quote)


def make_handlers():
    prompter = RecordingPrompter()
    engine = FlowEngine(prompter, timeout_s=60)

    tokens = MagicMock()
    tokens.stable = USDC
    tokens.resolve_address = AsyncMock(return_value=DEGEN.address)
    tokens.info = AsyncMock(return_value=DEGEN)

    orchestrator = MagicMock()
    orchestrator.quote = AsyncMock(side_effect=lambda side, token, amount, **kw: preview(TradeSide(side), str(amount)))
    orchestrator.execute = AsyncMock(
        return_value=TradeResult(
            side=TradeSide.BUY, user_id="u1", token=DEGEN, amount=Decimal("10"), tx_hash="0xswap",
            status=TradeStatus.COMPLETED, provider="0x", sell_decimals=6, buy_decimals=18,
        )
    )
    orchestrator.withdraw = AsyncMock(
        return_value=WithdrawResult(
            user_id="u1", token="native", symbol="ETH", amount=Decimal("0.1"), destination=DEST,
            tx_hash="0xwithdraw", receipt=Receipt(tx_hash="0xwithdraw", status=1),
        )
    )

    wallets = MagicMock()
    wallets.import_wallet = AsyncMock(return_value=MagicMock(address="0x" + "aa" * 20))

    handlers = FlowHandlers(engine, prompter, orchestrator, wallets, tokens)
    handlers.register()
    return handlers, engine, prompter


# =============================================================================
# Import
# =============================================================================

@pytest.mark.asyncio
async def test_import_key_flow():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_import("u1")

    assert await engine.handle_text("u1", "  0x" + "ab" * 32 + " ") is True
    handlers.wallets.import_wallet.assert_awaited_once_with("u1", "0x" + "ab" * 32)
    assert prompter.texts("u1")[-1].startswith("🔑 Wallet imported")
    assert engine.active("u1") == []


@pytest.mark.asyncio
async def test_bad_key_reprompts_without_echo():
    handlers, engine, prompter = make_handlers()
    handlers.wallets.import_wallet.side_effect = InvalidPrivateKeyError()
    await handlers.begin_import("u1")

    await engine.handle_text("u1", "not-a-key")
    assert "not-a-key" not in prompter.texts("u1")[-1]
    assert engine.active("u1") == [FlowCategory.IMPORT_KEY]


# =============================================================================
# Buy and sell
# =============================================================================

@pytest.mark.asyncio
async def test_buy_by_contract_address_then_amount_then_confirm():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_buy("u1")

    await engine.handle_text("u1", DEGEN.address)
    assert engine.active("u1") == [FlowCategory.BUY_AMOUNT]
    assert "How much USDC" in prompter.texts("u1")[-1]

    await engine.handle_text("u1", "10")
    flow = engine.get("u1", FlowCategory.BUY_AMOUNT)
    assert flow.step == "confirm" and flow.data["amount"] == "10"
    confirm = prompter.messages[-1]
    assert [a.data for a in confirm["actions"]] == ["buy_amount:confirm", "buy_amount:cancel"]

    await engine.handle_action("u1", action_data(FlowCategory.BUY_AMOUNT, "confirm"))
    handlers.orchestrator.execute.assert_awaited_once_with(TradeSide.BUY, "u1", DEGEN.address, Decimal("10"))
    assert "0xswap" in prompter.texts("u1")[-1]
    assert engine.active("u1") == []


@pytest.mark.asyncio
async def test_text_during_confirmation_points_to_buttons():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_trade("u1", TradeSide.SELL, "DEGEN", "5")

    await engine.handle_text("u1", "5")
    assert prompter.texts("u1")[-1] == "Use the buttons above to confirm or cancel."
    assert engine.get("u1", FlowCategory.BUY_AMOUNT).data["side"] == "sell"
    handlers.orchestrator.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_revert_ends_flow_without_offering_retry():
    handlers, engine, prompter = make_handlers()
    handlers.orchestrator.execute.side_effect = TransactionReverted("0xswap", 0)
    await handlers.begin_trade("u1", TradeSide.BUY, "DEGEN", "10")

    await engine.handle_action("u1", "buy_amount:confirm")
    assert "reverted" in prompter.texts("u1")[-1]
    assert engine.active("u1") == []


@pytest.mark.asyncio
async def test_cancel_button_prevents_execution():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_trade("u1", TradeSide.BUY, "DEGEN", "10")

    await engine.handle_action("u1", "buy_amount:cancel")
    handlers.orchestrator.execute.assert_not_awaited()
    assert prompter.texts("u1")[-1] == "Cancelled."


# =============================================================================
# Withdraw
# =============================================================================

@pytest.mark.asyncio
async def test_withdraw_flow():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_withdraw("u1")

    await engine.handle_text("u1", "eth")
    await engine.handle_text("u1", "0.1")
    await engine.handle_text("u1", DEST)
    assert prompter.texts("u1")[-1].startswith("Withdraw 0.1 ETH to 0x")

    await engine.handle_action("u1", "withdraw:confirm")
    handlers.orchestrator.withdraw.assert_awaited_once()
    args = handlers.orchestrator.withdraw.await_args.args
    assert args[0] == "u1" and args[1] == "0.1" and args[2] == "ETH"
    assert "0xwithdraw" in prompter.texts("u1")[-1]


@pytest.mark.asyncio
async def test_withdraw_bad_destination_reprompts():
    handlers, engine, prompter = make_handlers()
    await handlers.begin_withdraw("u1")
    await engine.handle_text("u1", "ETH")
    await engine.handle_text("u1", "1")

    await engine.handle_text("u1", "nowhere")
    assert prompter.texts("u1")[-1] == "That doesn't look like a valid address."
    assert engine.get("u1", FlowCategory.WITHDRAW).step == "destination"


# =============================================================================
# Formatting
# =============================================================================

def test_format_preview_buy():
    text = format_preview(preview())
    assert "Spend: 10 USDC" in text
    assert "Receive: ~2 DEGEN (min 1.98)" in text
    assert "Slippage: 1.00%" in text


def test_parse_trade_args():
    assert parse_trade_args(["10", "DEGEN"]) == ("10", "DEGEN")
    assert parse_trade_args(["10"]) is None
