"""
Gas and slippage policy.

- minimum_output / guaranteed_price: slippage floor derived from a quote
- apply_boost: opt-in fee scaling for faster inclusion
- GasPolicy.estimate_fee: worst-case native cost vs. wallet balance
- AllowanceManager: one blocking approval before spending an ERC-20
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..errors import InvalidAmountError, TransactionReverted
from ..rpc.client import ChainClient, FeeData
from ..rpc.erc20 import ERC20, MAX_UINT256, encode_approve

if TYPE_CHECKING:
    from ..custody.service import LocalSigner
    from ..swap.models import Quote


logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
WEI_PER_ETH = Decimal(10) ** 18


def _check_slippage(slippage_bps: int) -> None:
    if slippage_bps < 0 or slippage_bps > BPS_DENOMINATOR:
        raise InvalidAmountError(f"Slippage must be between 0 and {BPS_DENOMINATOR} bps")


def minimum_output(buy_amount: int, slippage_bps: int) -> int:
    """Smallest acceptable output for a quoted amount under a slippage tolerance."""
    _check_slippage(slippage_bps)
    if buy_amount <= 0:
        return 0
    return buy_amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def guaranteed_price(price: Optional[Decimal], slippage_bps: int) -> Optional[Decimal]:
    _check_slippage(slippage_bps)
    if price is None:
        return None
    return price * (BPS_DENOMINATOR - slippage_bps) / BPS_DENOMINATOR


def apply_boost(fee_data: FeeData, boost_bps: int) -> FeeData:
    """Scale fee fields by (10000 + boost_bps) / 10000; 0 passes through unchanged."""
    if boost_bps < 0:
        raise InvalidAmountError("Gas boost cannot be negative")
    if boost_bps == 0:
        return fee_data

    factor = BPS_DENOMINATOR + boost_bps

    def scale(value: Optional[int]) -> Optional[int]:
        if value is None:
            return None
        return value * factor // BPS_DENOMINATOR

    return FeeData(
        gas_price=scale(fee_data.gas_price) or 0,
        max_fee_per_gas=scale(fee_data.max_fee_per_gas),
        max_priority_fee_per_gas=scale(fee_data.max_priority_fee_per_gas),
        base_fee=fee_data.base_fee,
    )


@dataclass
class FeeEstimate:
    gas_limit: int
    fee_per_gas: int
    cost_wei: int
    value_wei: int
    balance_wei: int
    sufficient: bool
    shortfall_wei: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gasLimit": self.gas_limit,
            "feePerGasWei": str(self.fee_per_gas),
            "costWei": str(self.cost_wei),
            "costEth": str(Decimal(self.cost_wei) / WEI_PER_ETH),
            "balanceWei": str(self.balance_wei),
            "sufficient": self.sufficient,
            "shortfallWei": str(self.shortfall_wei),
        }


class GasPolicy:
    """Fee estimation against the wallet's native balance."""

    def __init__(self, chain: ChainClient, *, default_gas_limit: int = 300_000) -> None:
        self.chain = chain
        self.default_gas_limit = default_gas_limit

    async def estimate_fee(
        self,
        quote: "Quote",
        native_balance: int,
        fee_data: Optional[FeeData] = None,
    ) -> FeeEstimate:
        fees = fee_data or await self.chain.fee_data()
        fee_per_gas = fees.base_fee if fees.base_fee is not None else fees.gas_price
        gas_limit = int(quote.gas or self.default_gas_limit)

        cost = gas_limit * fee_per_gas
        value = int(quote.tx.value or 0)
        required = cost + value
        shortfall = max(0, required - native_balance)

        return FeeEstimate(
            gas_limit=gas_limit,
            fee_per_gas=fee_per_gas,
            cost_wei=cost,
            value_wei=value,
            balance_wei=native_balance,
            sufficient=shortfall == 0,
            shortfall_wei=shortfall,
        )


class AllowanceManager:
    """Checks ERC-20 allowances and submits at most one approval per call."""

    def __init__(self, erc20: ERC20, *, use_max: bool = False) -> None:
        self.erc20 = erc20
        self.use_max = use_max

    async def ensure_allowance(
        self,
        *,
        token: str,
        owner: str,
        spender: str,
        amount: int,
        signer: "LocalSigner",
    ) -> Optional[str]:
        """Returns the approval tx hash, or None when the allowance already covers ``amount``."""
        current = await self.erc20.allowance(token, owner, spender)
        if current >= amount:
            return None

        approve_amount = MAX_UINT256 if self.use_max else amount
        logger.info(
            "Approving %s for spender %s (current=%d, required=%d, mode=%s)",
            token,
            spender,
            current,
            amount,
            "max" if self.use_max else "exact",
        )
        tx_hash = await signer.send_transaction(
            {"to": token, "data": encode_approve(spender, approve_amount), "value": 0}
        )

        # Blocking prerequisite: the swap must not be sent before this is mined
        receipt = await signer.wait(tx_hash)
        if not receipt.succeeded:
            raise TransactionReverted(tx_hash, receipt.status, stage="approval")
        return tx_hash
