"""
Tests for the async SQLAlchemy repository (in-memory SQLite).
"""

import pytest

from tradebot.db import Repository, TradeRow, build_engine, build_session_factory, init_db


async def make_repository() -> Repository:
    engine = build_engine("sqlite+aiosqlite://")
    await init_db(engine)
    return Repository(build_session_factory(engine))


@pytest.mark.asyncio
async def test_get_or_create_user_is_idempotent():
    repo = await make_repository()

    first = await repo.get_or_create_user("42", "alice")
    second = await repo.get_or_create_user("42", "ignored")

    assert first.id == second.id
    assert second.username == "alice"
    assert second.slippage_bps is None
    assert second.gas_boost_bps == 0


@pytest.mark.asyncio
async def test_update_user_settings_partial():
    repo = await make_repository()
    await repo.update_user_settings("42", slippage_bps=150)
    user = await repo.update_user_settings("42", gas_boost_bps=2000)

    assert user.slippage_bps == 150
    assert user.gas_boost_bps == 2000


@pytest.mark.asyncio
async def test_save_wallet_replaces_key_and_resets_balances():
    repo = await make_repository()
    await repo.save_wallet("42", "0xAbC0000000000000000000000000000000000001", "blob-1")
    await repo.update_balances("42", native_balance_wei=10, stable_balance="5")

    replaced = await repo.save_wallet("42", "0xAbC0000000000000000000000000000000000002", "blob-2")

    assert replaced.encrypted_private_key == "blob-2"
    assert replaced.native_balance_wei == "0"
    assert replaced.balances_updated_at is None
    assert (await repo.get_wallet("42")).address.endswith("2")


@pytest.mark.asyncio
async def test_find_wallet_by_address_ignores_case():
    repo = await make_repository()
    await repo.save_wallet("42", "0xAbC0000000000000000000000000000000000001", "blob")

    found = await repo.find_wallet_by_address("0xabc0000000000000000000000000000000000001")
    assert found is not None and found.user_id == "42"


@pytest.mark.asyncio
async def test_delete_wallet():
    repo = await make_repository()
    await repo.save_wallet("42", "0x" + "11" * 20, "blob")

    assert await repo.delete_wallet("42") is True
    assert await repo.delete_wallet("42") is False
    assert await repo.get_wallet("42") is None


@pytest.mark.asyncio
async def test_trades_are_appended_and_listed_newest_first():
    repo = await make_repository()
    for i in range(3):
        await repo.append_trade(
            TradeRow(
                user_id="42",
                side="buy",
                token_address="0x" + "22" * 20,
                amount=str(i + 1),
                tx_hash=f"0x{i:064x}",
                status="completed",
            )
        )

    trades = await repo.list_trades("42")
    assert [t.amount for t in trades] == ["3", "2", "1"]
    assert await repo.list_trades("other") == []


@pytest.mark.asyncio
async def test_upsert_token_keeps_existing_fields():
    repo = await make_repository()
    address = "0x4ed4E862860beD51a9570b96d89aF5E1B0Efefed"
    await repo.upsert_token(address, symbol="DEGEN", decimals=18)
    await repo.upsert_token(address.lower(), name="Degen", price_usd=0.01)

    token = await repo.get_token(address)
    assert (token.symbol, token.name, token.decimals, token.price_usd) == ("DEGEN", "Degen", 18, 0.01)
    assert (await repo.find_token_by_symbol("degen")).address == address


@pytest.mark.asyncio
async def test_list_tokens_newest_first_with_symbol_filter():
    repo = await make_repository()
    await repo.upsert_token("0x" + "44" * 20, symbol="DEGEN", name="Degen")
    await repo.upsert_token("0x" + "55" * 20, symbol="BRETT", name="Brett")

    assert [t.symbol for t in await repo.list_tokens()] == ["BRETT", "DEGEN"]
    assert [t.symbol for t in await repo.list_tokens(symbol="degen")] == ["DEGEN"]
    assert len(await repo.list_tokens(limit=1)) == 1


@pytest.mark.asyncio
async def test_alerts_lifecycle():
    repo = await make_repository()
    alert = await repo.add_alert("42", "0x" + "22" * 20, "above", 1.5)

    assert [a.id for a in await repo.active_alerts()] == [alert.id]
    await repo.mark_alert_triggered(alert.id)

    assert await repo.active_alerts() == []
    stored = (await repo.list_alerts("42"))[0]
    assert stored.active is False
    assert stored.triggered_at is not None
