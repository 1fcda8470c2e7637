from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..core.rpc.client import FeeData
from ..core.swap.models import Quote, QuoteRequest

if TYPE_CHECKING:
    from ..core.custody.service import LocalSigner
    from ..core.gas.policy import AllowanceManager


class ProviderError(Exception):
    """Provider failed for a reason other than missing liquidity."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderNoRoute(ProviderError):
    """Provider answered but has no route (404/400 or an empty quote)."""


class SwapProvider(ABC):
    """Swap aggregator interface.

    A provider quotes, builds the swap call, sends it with a signer and
    makes sure its spender may move the sell token.
    """

    name: str
    timeout_s: float = 10.0

    @abstractmethod
    async def quote(self, request: QuoteRequest) -> Quote:
        """Return a normalized quote or raise ProviderNoRoute / ProviderError."""

    def build_transaction(self, quote: Quote) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "to": quote.tx.to,
            "data": quote.tx.data,
            "value": quote.tx.value,
        }
        if quote.gas:
            tx["gas"] = quote.gas
        return tx

    async def send_transaction(
        self,
        quote: Quote,
        signer: "LocalSigner",
        fee_overrides: Optional[FeeData] = None,
    ) -> str:
        return await signer.send_transaction(self.build_transaction(quote), fee_overrides)

    async def ensure_allowance(
        self,
        quote: Quote,
        signer: "LocalSigner",
        allowances: "AllowanceManager",
    ) -> Optional[str]:
        """Approve this provider's spender for the sell amount if needed."""
        spender = quote.allowance_target or quote.tx.to
        return await allowances.ensure_allowance(
            token=quote.sell_token,
            owner=signer.address,
            spender=spender,
            amount=quote.sell_amount,
            signer=signer,
        )
