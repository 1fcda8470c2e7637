"""Gas and slippage policy."""

from .policy import (
    BPS_DENOMINATOR,
    AllowanceManager,
    FeeEstimate,
    GasPolicy,
    apply_boost,
    guaranteed_price,
    minimum_output,
)

__all__ = [
    "BPS_DENOMINATOR",
    "AllowanceManager",
    "FeeEstimate",
    "GasPolicy",
    "apply_boost",
    "guaranteed_price",
    "minimum_output",
]
