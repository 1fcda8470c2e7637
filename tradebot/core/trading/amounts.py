"""Human-readable amounts <-> integer base units."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Union

from ..errors import InvalidAmountError


def parse_amount(value: Union[str, int, float, Decimal]) -> Decimal:
    """Parse a user-supplied positive amount."""
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError("Amount must be a positive number")
    return amount


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale to integer units, truncating precision the token cannot hold."""
    with localcontext() as ctx:
        # uint256 needs 78 digits
        ctx.prec = 80
        units = int((amount * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN))
    if units <= 0:
        raise InvalidAmountError(f"Amount {amount} is below the token's smallest unit")
    return units


def format_units(units: int, decimals: int) -> str:
    if units == 0:
        return "0"
    with localcontext() as ctx:
        ctx.prec = 80
        return format(Decimal(units).scaleb(-decimals).normalize(), "f")
