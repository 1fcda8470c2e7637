"""
Tests for the command-line entry points.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradebot.cli import run
from tradebot.core.errors import NoRoute


def make_runtime():
    preview = MagicMock()
    preview.quote.provider = "0x"
    preview.to_dict.return_value = {"humanReadable": {"sell": "10", "buy": "5", "minBuy": "4.95"}}
    orchestrator = MagicMock()
    orchestrator.quote = AsyncMock(return_value=preview)
    orchestrator.execute = AsyncMock(return_value=SimpleNamespace(tx_hash="0xswap", approval_tx_hash=None))
    wallets = MagicMock()
    wallets.ensure_wallet = AsyncMock(return_value=SimpleNamespace(address="0x" + "aa" * 20))
    return SimpleNamespace(orchestrator=orchestrator, wallets=wallets)


@pytest.mark.asyncio
async def test_quote_command(capsys):
    runtime = make_runtime()
    code = await run(["quote", "buy", "DEGEN", "10", "--slippage-bps", "50"], runtime=runtime)

    assert code == 0
    runtime.orchestrator.quote.assert_awaited_once_with("buy", "DEGEN", "10", 50, user_id=None)
    out = capsys.readouterr().out
    assert "BUY quote via 0x" in out
    assert "min 4.95" in out


@pytest.mark.asyncio
async def test_swap_command(capsys):
    runtime = make_runtime()
    code = await run(["swap", "sell", "u1", "DEGEN", "5"], runtime=runtime)

    assert code == 0
    assert "SELL confirmed: 0xswap" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_new_wallet_command(capsys):
    runtime = make_runtime()
    assert await run(["new-wallet", "u1"], runtime=runtime) == 0
    assert "u1: 0x" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_trade_error_exit_code(capsys):
    runtime = make_runtime()
    runtime.orchestrator.quote.side_effect = NoRoute(["0x: no liquidity"])

    assert await run(["quote", "sell", "DEGEN", "1"], runtime=runtime) == 2
    assert capsys.readouterr().out.startswith("❌ No route found")


@pytest.mark.asyncio
async def test_no_command_prints_help():
    assert await run([], runtime=make_runtime()) == 1
