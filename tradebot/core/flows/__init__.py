from .engine import (
    TEXT_PRECEDENCE,
    FlowCategory,
    FlowEngine,
    FlowOutcome,
    PendingFlow,
    action_data,
    parse_action,
)
from .handlers import FlowHandlers, format_preview, parse_trade_args

__all__ = [
    "TEXT_PRECEDENCE",
    "FlowCategory",
    "FlowEngine",
    "FlowHandlers",
    "FlowOutcome",
    "PendingFlow",
    "action_data",
    "format_preview",
    "parse_action",
    "parse_trade_args",
]
