"""
Tests for amount parsing/scaling and receipt Transfer-log parsing.
"""

from decimal import Decimal

import pytest

from tradebot.core.errors import InvalidAmountError
from tradebot.core.rpc.client import Receipt
from tradebot.core.rpc.erc20 import TRANSFER_TOPIC
from tradebot.core.trading import format_units, parse_amount, parse_executed_amounts, to_base_units


OWNER = "0x" + "aa" * 20
POOL = "0x" + "bb" * 20
TOKEN_IN = "0x" + "11" * 20
TOKEN_OUT = "0x" + "22" * 20


def transfer_log(token, sender, recipient, amount):
    return {
        "address": token,
        "topics": [TRANSFER_TOPIC, "0x" + sender[2:].rjust(64, "0"), "0x" + recipient[2:].rjust(64, "0")],
        "data": hex(amount),
    }


@pytest.mark.parametrize("raw,expected", [("10", Decimal("10")), (" 1,000.5 ", Decimal("1000.5")), (3, Decimal("3"))])
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "0", "-1", "NaN", "Infinity"])
def test_parse_amount_rejects(raw):
    with pytest.raises(InvalidAmountError):
        parse_amount(raw)


def test_to_base_units_truncates():
    assert to_base_units(Decimal("1.5"), 6) == 1_500_000
    assert to_base_units(Decimal("0.1234567"), 6) == 123_456
    assert to_base_units(Decimal("1"), 18) == 10**18


def test_to_base_units_below_smallest_unit():
    with pytest.raises(InvalidAmountError):
        to_base_units(Decimal("0.0000001"), 6)


def test_format_units():
    assert format_units(0, 18) == "0"
    assert format_units(1_500_000, 6) == "1.5"
    assert format_units(10**18, 18) == "1"
    assert format_units(2**256 - 1, 18).startswith("115792089237316195423570985008687907853269984665640564039457.")


def test_parse_executed_amounts_sums_owner_legs():
    receipt = Receipt(
        tx_hash="0x01",
        status=1,
        logs=[
            transfer_log(TOKEN_IN, OWNER, POOL, 1_000),
            transfer_log(TOKEN_OUT, POOL, OWNER, 700),
            transfer_log(TOKEN_OUT, POOL, OWNER, 50),
            # Unrelated movements are ignored
            transfer_log(TOKEN_OUT, POOL, POOL, 9_999),
            {"address": TOKEN_IN, "topics": ["0xdeadbeef"], "data": "0x10"},
        ],
    )

    executed = parse_executed_amounts(receipt, OWNER, TOKEN_IN, TOKEN_OUT)
    assert (executed.amount_in, executed.amount_out) == (1_000, 750)


def test_parse_executed_amounts_without_logs():
    executed = parse_executed_amounts(Receipt(tx_hash="0x01", status=1), OWNER, TOKEN_IN, TOKEN_OUT)
    assert (executed.amount_in, executed.amount_out) == (0, 0)
