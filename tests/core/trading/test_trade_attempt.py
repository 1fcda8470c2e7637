"""
Tests for the trade attempt stage table.
"""

import pytest

from tradebot.core.trading import TradeAttempt, TradeSide, TradeStage
from tradebot.core.trading.models import InvalidStageTransition


def test_happy_path_with_approval():
    attempt = TradeAttempt(TradeSide.SELL, "u1")
    for stage in (
        TradeStage.RESOLVING,
        TradeStage.QUOTING,
        TradeStage.ALLOWANCE_CHECK,
        TradeStage.APPROVING,
        TradeStage.GAS_CHECK,
        TradeStage.SENDING,
        TradeStage.CONFIRMED,
    ):
        attempt.advance(stage)

    assert attempt.is_terminal
    assert attempt.history[-1] == TradeStage.CONFIRMED


def test_approval_is_optional():
    attempt = TradeAttempt(TradeSide.BUY, "u1")
    for stage in (TradeStage.RESOLVING, TradeStage.QUOTING, TradeStage.ALLOWANCE_CHECK, TradeStage.GAS_CHECK):
        attempt.advance(stage)
    assert attempt.stage == TradeStage.GAS_CHECK


def test_skipping_a_stage_is_rejected():
    attempt = TradeAttempt(TradeSide.BUY, "u1")
    attempt.advance(TradeStage.RESOLVING)
    with pytest.raises(InvalidStageTransition):
        attempt.advance(TradeStage.SENDING)


def test_fail_from_any_stage_and_terminal_is_final():
    attempt = TradeAttempt(TradeSide.BUY, "u1")
    attempt.advance(TradeStage.RESOLVING)
    attempt.fail()
    attempt.fail()

    assert attempt.history == [TradeStage.RESOLVING, TradeStage.FAILED]
    with pytest.raises(InvalidStageTransition):
        attempt.advance(TradeStage.QUOTING)
