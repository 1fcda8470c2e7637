"""
Quote aggregation across swap providers.

Providers are tried in priority order; the first quote wins. When every
provider fails the caller gets a single NoRoute carrying each provider's
message. Quotes are never cached: liquidity moves, so execution re-quotes.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from ...providers.base import ProviderError, SwapProvider
from ..errors import NoRoute
from ..rpc.client import FeeData
from .models import Quote, QuoteRequest

if TYPE_CHECKING:
    from ..custody.service import LocalSigner
    from ..gas.policy import AllowanceManager


logger = logging.getLogger(__name__)


class QuoteAggregator:
    def __init__(self, providers: Sequence[SwapProvider]) -> None:
        self.providers: List[SwapProvider] = list(providers)

    async def quote(self, request: QuoteRequest) -> Quote:
        attempts: List[str] = []

        for provider in self.providers:
            try:
                quote = await provider.quote(request)
            except ProviderError as exc:
                attempts.append(str(exc))
            except Exception as exc:
                # RPC errors from gas lookups and malformed bodies count against this provider only
                attempts.append(f"{provider.name}: {exc!r}")
            else:
                if attempts:
                    logger.info("Quote served by fallback provider %s after: %s", provider.name, attempts)
                return quote

            logger.warning("Provider %s could not quote: %s", provider.name, attempts[-1])

        raise NoRoute(attempts)

    def provider_for(self, quote: Quote) -> SwapProvider:
        for provider in self.providers:
            if provider.name == quote.provider:
                return provider
        raise KeyError(f"No provider registered as {quote.provider!r}")

    async def ensure_allowance(
        self,
        quote: Quote,
        signer: "LocalSigner",
        allowances: "AllowanceManager",
    ) -> Optional[str]:
        return await self.provider_for(quote).ensure_allowance(quote, signer, allowances)

    async def send(
        self,
        quote: Quote,
        signer: "LocalSigner",
        fee_overrides: Optional[FeeData] = None,
    ) -> str:
        return await self.provider_for(quote).send_transaction(quote, signer, fee_overrides)
