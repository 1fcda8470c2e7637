"""
Normalized quote shapes shared by every swap provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass
class QuoteRequest:
    sell_token: str
    buy_token: str
    sell_amount: int
    taker: Optional[str]
    slippage_bps: int


@dataclass
class SwapTx:
    """Prebuilt swap call: target, calldata, native value."""

    to: str
    data: str
    value: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"to": self.to, "data": self.data, "value": str(self.value)}


@dataclass
class Quote:
    """A provider quote, in smallest units of each token.

    ``min_buy_amount`` and ``guaranteed_price`` reflect the requested slippage
    tolerance. The provider's calldata enforces the floor on-chain.
    """

    sell_token: str
    buy_token: str
    sell_amount: int
    buy_amount: int
    min_buy_amount: int
    provider: str
    tx: SwapTx
    price: Optional[Decimal] = None
    guaranteed_price: Optional[Decimal] = None
    allowance_target: Optional[str] = None
    gas: Optional[int] = None
    slippage_bps: int = 0
    buy_token_decimals: Optional[int] = None
    sources: List[Any] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "to": self.tx.to,
            "data": self.tx.data,
            "value": str(self.tx.value),
            "gas": self.gas,
            "allowanceTarget": self.allowance_target,
            "sellToken": self.sell_token,
            "buyToken": self.buy_token,
            "sellAmount": str(self.sell_amount),
            "buyAmount": str(self.buy_amount),
            "minBuyAmount": str(self.min_buy_amount),
            "price": str(self.price) if self.price is not None else None,
            "guaranteedPrice": str(self.guaranteed_price) if self.guaranteed_price is not None else None,
            "sources": self.sources,
            "provider": self.provider,
        }
