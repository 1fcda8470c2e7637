"""Trade execution: amounts, stage tracking and the orchestrator."""

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
from .orchestrator import TradeOrchestrator
from .receipts import ExecutedAmounts, parse_executed_amounts

__all__ = [
    "ExecutedAmounts",
    "QuotePreview",
    "TradeAttempt",
    "TradeOrchestrator",
    "TradeResult",
    "TradeSide",
    "TradeStage",
    "TradeStatus",
    "WithdrawResult",
    "format_units",
    "parse_amount",
    "parse_executed_amounts",
    "to_base_units",
]
