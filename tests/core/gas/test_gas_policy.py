"""
Tests for slippage floors, gas boost, fee estimation and allowances.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tradebot.core.errors import InvalidAmountError, TransactionReverted
from tradebot.core.gas.policy import (
    AllowanceManager,
    GasPolicy,
    apply_boost,
    guaranteed_price,
    minimum_output,
)
from tradebot.core.rpc.client import FeeData, Receipt
from tradebot.core.rpc.erc20 import MAX_UINT256
from tradebot.core.swap.models import Quote, SwapTx


TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
SPENDER = "0xDef1C0ded9bec7F1a1670819833240f027b25EfF"
OWNER = "0x1111111111111111111111111111111111111111"


# =============================================================================
# Slippage
# =============================================================================

@pytest.mark.parametrize("buy_amount", [0, 1, 999, 10**6, 123456789012345678901234567890])
def test_minimum_output_is_monotonic_in_slippage(buy_amount):
    floors = [minimum_output(buy_amount, bps) for bps in range(0, 10_001, 250)]

    assert all(f >= 0 for f in floors)
    assert all(f <= buy_amount for f in floors)
    # Looser tolerance never raises the floor; tighter never lowers it
    assert all(a >= b for a, b in zip(floors, floors[1:]))


def test_minimum_output_exact_values():
    assert minimum_output(10_000, 0) == 10_000
    assert minimum_output(10_000, 100) == 9_900
    assert minimum_output(10_000, 10_000) == 0


@pytest.mark.parametrize("bps", [-1, 10_001])
def test_minimum_output_rejects_out_of_range(bps):
    with pytest.raises(InvalidAmountError):
        minimum_output(1000, bps)


def test_guaranteed_price():
    assert guaranteed_price(Decimal("2"), 500) == Decimal("1.9")
    assert guaranteed_price(None, 500) is None


# =============================================================================
# Gas boost
# =============================================================================

def test_apply_boost_scales_fee_fields():
    fees = FeeData(gas_price=1000, max_fee_per_gas=2000, max_priority_fee_per_gas=100, base_fee=900)
    boosted = apply_boost(fees, 2_000)

    assert boosted.gas_price == 1200
    assert boosted.max_fee_per_gas == 2400
    assert boosted.max_priority_fee_per_gas == 120
    assert boosted.base_fee == 900


def test_apply_boost_zero_is_identity():
    fees = FeeData(gas_price=1000)
    assert apply_boost(fees, 0) is fees


def test_apply_boost_negative_rejected():
    with pytest.raises(InvalidAmountError):
        apply_boost(FeeData(gas_price=1), -5)


# =============================================================================
# Fee estimate
# =============================================================================

def make_quote(gas=None, value=0) -> Quote:
    return Quote(
        sell_token=TOKEN,
        buy_token="0x" + "33" * 20,
        sell_amount=5_000_000,
        buy_amount=10**18,
        min_buy_amount=99 * 10**16,
        provider="0x",
        tx=SwapTx(to=SPENDER, data="0x", value=value),
        gas=gas,
    )


@pytest.mark.asyncio
async def test_estimate_fee_uses_base_fee_and_quote_gas():
    policy = GasPolicy(chain=MagicMock(), default_gas_limit=300_000)
    fees = FeeData(gas_price=50, max_fee_per_gas=100, max_priority_fee_per_gas=1, base_fee=40)

    estimate = await policy.estimate_fee(make_quote(gas=200_000), native_balance=10**18, fee_data=fees)

    assert estimate.gas_limit == 200_000
    assert estimate.cost_wei == 200_000 * 40
    assert estimate.sufficient
    assert estimate.shortfall_wei == 0


@pytest.mark.asyncio
async def test_estimate_fee_reports_shortfall_including_value():
    chain = MagicMock()
    chain.fee_data = AsyncMock(return_value=FeeData(gas_price=10))
    policy = GasPolicy(chain, default_gas_limit=300_000)

    estimate = await policy.estimate_fee(make_quote(value=1_000_000), native_balance=1_000_000)

    assert estimate.gas_limit == 300_000
    assert estimate.cost_wei == 3_000_000
    assert not estimate.sufficient
    assert estimate.shortfall_wei == 3_000_000
    assert estimate.to_dict()["sufficient"] is False


# =============================================================================
# Allowances
# =============================================================================

def make_signer(status=1):
    signer = MagicMock()
    signer.address = OWNER
    signer.send_transaction = AsyncMock(return_value="0xapprove")
    signer.wait = AsyncMock(return_value=Receipt(tx_hash="0xapprove", status=status))
    return signer


@pytest.mark.asyncio
async def test_sufficient_allowance_sends_nothing():
    erc20 = MagicMock()
    erc20.allowance = AsyncMock(return_value=10**9)
    signer = make_signer()

    result = await AllowanceManager(erc20).ensure_allowance(
        token=TOKEN, owner=OWNER, spender=SPENDER, amount=5_000_000, signer=signer
    )

    assert result is None
    signer.send_transaction.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("use_max, expected", [(False, 5_000_000), (True, MAX_UINT256)])
async def test_missing_allowance_approves_and_waits(use_max, expected):
    erc20 = MagicMock()
    erc20.allowance = AsyncMock(return_value=0)
    signer = make_signer()

    result = await AllowanceManager(erc20, use_max=use_max).ensure_allowance(
        token=TOKEN, owner=OWNER, spender=SPENDER, amount=5_000_000, signer=signer
    )

    assert result == "0xapprove"
    tx = signer.send_transaction.await_args.args[0]
    assert tx["to"] == TOKEN
    assert int(tx["data"][74:], 16) == expected
    signer.wait.assert_awaited_once_with("0xapprove")


@pytest.mark.asyncio
async def test_reverted_approval_raises():
    erc20 = MagicMock()
    erc20.allowance = AsyncMock(return_value=0)

    with pytest.raises(TransactionReverted) as exc_info:
        await AllowanceManager(erc20).ensure_allowance(
            token=TOKEN, owner=OWNER, spender=SPENDER, amount=1, signer=make_signer(status=0)
        )
    assert exc_info.value.stage == "approval"
