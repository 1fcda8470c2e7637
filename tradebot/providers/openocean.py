"""Async client for the OpenOcean v4 swap_quote API."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..config import settings
from ..core.gas.policy import guaranteed_price, minimum_output
from ..core.rpc.erc20 import ZERO_ADDRESS
from ..core.swap.models import Quote, QuoteRequest, SwapTx
from .base import ProviderError, ProviderNoRoute, SwapProvider


logger = logging.getLogger(__name__)

MIN_SLIPPAGE_BPS = 10


class OpenOceanProvider(SwapProvider):
    """Secondary aggregator: GET <base>/<chain>/swap_quote."""

    name = "openocean"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        chain: Optional[str] = None,
        gas_price: Optional[Callable[[], Awaitable[int]]] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.openocean_base_url).rstrip("/")
        self.chain = chain or settings.openocean_chain
        self._gas_price = gas_price
        self.timeout_s = timeout_s or settings.aggregator_timeout_seconds
        self._transport = transport

    async def _request(self, params: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            return await client.get(
                f"/{self.chain}/swap_quote",
                params=params,
                headers={"accept": "application/json"},
            )

    async def quote(self, request: QuoteRequest) -> Quote:
        slippage_bps = max(request.slippage_bps, MIN_SLIPPAGE_BPS)
        params: Dict[str, Any] = {
            "chain": self.chain,
            "inTokenAddress": request.sell_token,
            "outTokenAddress": request.buy_token,
            "amount": str(request.sell_amount),
            # OpenOcean takes slippage as a percentage (1 == 1%)
            "slippage": str(Decimal(slippage_bps) / 100),
            "account": request.taker or ZERO_ADDRESS,
        }
        if self._gas_price is not None:
            params["gasPrice"] = str(await self._gas_price())

        response = await self._request(params)

        if response.status_code in (400, 404):
            raise ProviderNoRoute(self.name, "no route for this pair/amount")
        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {response.status_code}")

        body = response.json()
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("to") or not data.get("data"):
            raise ProviderNoRoute(self.name, "invalid swap_quote response")

        return self._normalize(data, request, slippage_bps)

    def _normalize(self, data: Dict[str, Any], request: QuoteRequest, slippage_bps: int) -> Quote:
        buy_amount = int(data.get("outAmount") or 0)
        min_out = data.get("minOutAmount")
        out_token = data.get("outToken") or {}
        decimals = out_token.get("decimals")

        try:
            price = Decimal(str(data["price"])) if data.get("price") not in (None, "") else None
        except InvalidOperation:
            price = None

        gas = data.get("estimatedGas")
        return Quote(
            sell_token=request.sell_token,
            buy_token=request.buy_token,
            sell_amount=request.sell_amount,
            buy_amount=buy_amount,
            min_buy_amount=int(min_out) if min_out else minimum_output(buy_amount, slippage_bps),
            provider=self.name,
            tx=SwapTx(to=data["to"], data=data["data"], value=int(data.get("value") or 0)),
            price=price,
            guaranteed_price=guaranteed_price(price, slippage_bps),
            allowance_target=data.get("approveSpender") or data["to"],
            gas=int(gas) if gas else None,
            slippage_bps=slippage_bps,
            buy_token_decimals=int(decimals) if decimals is not None else None,
            sources=[self.name],
        )
