"""Executed amounts from ERC-20 Transfer logs in a swap receipt."""

from dataclasses import dataclass

from ..rpc.client import Receipt
from ..rpc.erc20 import TRANSFER_TOPIC, topic_to_address


@dataclass(frozen=True)
class ExecutedAmounts:
    amount_in: int
    amount_out: int


def parse_executed_amounts(receipt: Receipt, owner: str, token_in: str, token_out: str) -> ExecutedAmounts:
    """Sum what left ``owner`` in ``token_in`` and what reached it in ``token_out``."""
    owner_l = owner.lower()
    token_in_l = token_in.lower()
    token_out_l = token_out.lower()
    amount_in = 0
    amount_out = 0

    for log in receipt.logs:
        topics = log.get("topics") or []
        if len(topics) < 3 or str(topics[0]).lower() != TRANSFER_TOPIC:
            continue
        contract = str(log.get("address", "")).lower()
        sender = topic_to_address(topics[1]).lower()
        recipient = topic_to_address(topics[2]).lower()
        data = log.get("data") or "0x0"
        amount = int(data, 16) if data not in ("0x", "") else 0

        if contract == token_in_l and sender == owner_l:
            amount_in += amount
        if contract == token_out_l and recipient == owner_l:
            amount_out += amount

    return ExecutedAmounts(amount_in=amount_in, amount_out=amount_out)
