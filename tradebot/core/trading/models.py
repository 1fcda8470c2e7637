"""
Trade attempt state and results.

Each execute call is one attempt that walks the stage table below. A stage
error ends the attempt; callers retry by starting a new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..gas.policy import FeeEstimate
from ..rpc.client import Receipt
from ..swap.models import Quote
from ..tokens.resolvers import TokenInfo
from .amounts import format_units
from .receipts import ExecutedAmounts


logger = logging.getLogger(__name__)


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PENDING = "pending"


class TradeStage(str, Enum):
    RESOLVING = "resolving"
    QUOTING = "quoting"
    ALLOWANCE_CHECK = "allowance_check"
    APPROVING = "approving"
    GAS_CHECK = "gas_check"
    SENDING = "sending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


TRANSITIONS: Dict[Optional[TradeStage], Set[TradeStage]] = {
    None: {TradeStage.RESOLVING, TradeStage.FAILED},
    TradeStage.RESOLVING: {TradeStage.QUOTING, TradeStage.FAILED},
    TradeStage.QUOTING: {TradeStage.ALLOWANCE_CHECK, TradeStage.FAILED},
    TradeStage.ALLOWANCE_CHECK: {TradeStage.APPROVING, TradeStage.GAS_CHECK, TradeStage.FAILED},
    TradeStage.APPROVING: {TradeStage.GAS_CHECK, TradeStage.FAILED},
    TradeStage.GAS_CHECK: {TradeStage.SENDING, TradeStage.FAILED},
    TradeStage.SENDING: {TradeStage.CONFIRMED, TradeStage.FAILED},
    TradeStage.CONFIRMED: set(),
    TradeStage.FAILED: set(),
}


class InvalidStageTransition(Exception):
    pass


class TradeAttempt:
    """Tracks one attempt's walk through the stage table."""

    def __init__(self, side: TradeSide, user_id: str) -> None:
        self.side = side
        self.user_id = user_id
        self.stage: Optional[TradeStage] = None
        self.history: List[TradeStage] = []

    @property
    def is_terminal(self) -> bool:
        return self.stage in (TradeStage.CONFIRMED, TradeStage.FAILED)

    def advance(self, stage: TradeStage) -> None:
        if stage not in TRANSITIONS[self.stage]:
            raise InvalidStageTransition(f"{self.stage} -> {stage}")
        logger.info(
            "trade %s user=%s: %s -> %s",
            self.side.value,
            self.user_id,
            self.stage.value if self.stage else "start",
            stage.value,
        )
        self.stage = stage
        self.history.append(stage)

    def fail(self) -> None:
        if not self.is_terminal:
            self.advance(TradeStage.FAILED)


@dataclass
class QuotePreview:
    side: TradeSide
    token: TokenInfo
    amount: Decimal
    sell_decimals: int
    buy_decimals: int
    quote: Quote
    fee: Optional[FeeEstimate] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.quote.to_payload()
        payload.update(
            {
                "side": self.side.value,
                "source": self.quote.provider,
                "token": {
                    "address": self.token.address,
                    "symbol": self.token.symbol,
                    "name": self.token.name,
                    "decimals": self.token.decimals,
                },
                "decimals": {"sell": self.sell_decimals, "buy": self.buy_decimals},
                "humanReadable": {
                    "sell": format_units(self.quote.sell_amount, self.sell_decimals),
                    "buy": format_units(self.quote.buy_amount, self.buy_decimals),
                    "minBuy": format_units(self.quote.min_buy_amount, self.buy_decimals),
                },
                "gasEstimate": self.fee.to_dict() if self.fee else None,
            }
        )
        return payload


@dataclass
class TradeResult:
    side: TradeSide
    user_id: str
    token: TokenInfo
    amount: Decimal
    tx_hash: str
    status: TradeStatus
    provider: str
    sell_decimals: int
    buy_decimals: int
    receipt: Optional[Receipt] = None
    approval_tx_hash: Optional[str] = None
    executed: Optional[ExecutedAmounts] = None
    stages: List[TradeStage] = field(default_factory=list)
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "side": self.side.value,
            "userId": self.user_id,
            "token": self.token.address,
            "symbol": self.token.symbol,
            "amount": str(self.amount),
            "txHash": self.tx_hash,
            "approvalTxHash": self.approval_tx_hash,
            "status": self.status.value,
            "provider": self.provider,
            "stages": [s.value for s in self.stages],
            "completedAt": self.completed_at.isoformat(),
        }
        if self.receipt is not None:
            gas_cost = self.receipt.gas_used * self.receipt.effective_gas_price
            data["receipt"] = {
                "status": "success" if self.receipt.succeeded else "failed",
                "blockNumber": self.receipt.block_number,
                "gasUsed": str(self.receipt.gas_used),
                "effectiveGasPrice": str(self.receipt.effective_gas_price),
            }
            data["gasCost"] = {"gasCostWei": str(gas_cost), "gasCostEth": format_units(gas_cost, 18)}
        if self.executed is not None:
            data["executed"] = {
                "inAmount": str(self.executed.amount_in),
                "outAmount": str(self.executed.amount_out),
            }
            data["executedHuman"] = {
                "in": format_units(self.executed.amount_in, self.sell_decimals),
                "out": format_units(self.executed.amount_out, self.buy_decimals),
            }
        return data


@dataclass
class WithdrawResult:
    user_id: str
    token: str
    symbol: str
    amount: Decimal
    destination: str
    tx_hash: str
    receipt: Receipt

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "token": self.token,
            "symbol": self.symbol,
            "amount": str(self.amount),
            "destination": self.destination,
            "txHash": self.tx_hash,
            "blockNumber": self.receipt.block_number,
        }
