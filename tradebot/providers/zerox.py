"""Async client for the 0x swap quote API (Base)."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.gas.policy import BPS_DENOMINATOR, minimum_output
from ..core.rpc.erc20 import ZERO_ADDRESS
from ..core.swap.models import Quote, QuoteRequest, SwapTx
from .base import ProviderError, ProviderNoRoute, SwapProvider


logger = logging.getLogger(__name__)

# 0x rejects tolerances below 0.1%
MIN_SLIPPAGE_BPS = 10


def _decimal(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class ZeroXProvider(SwapProvider):
    """Primary aggregator: GET <quote_url>?sellToken=..&buyToken=..&sellAmount=.."""

    name = "0x"

    def __init__(
        self,
        *,
        quote_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.quote_url = quote_url or settings.zerox_quote_url
        self.api_key = settings.zerox_api_key if api_key is None else api_key
        self.timeout_s = timeout_s or settings.aggregator_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["0x-api-key"] = self.api_key
        return headers

    async def _request(self, params: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            return await client.get(self.quote_url, params=params, headers=self._headers())

    async def quote(self, request: QuoteRequest) -> Quote:
        slippage_bps = max(request.slippage_bps, MIN_SLIPPAGE_BPS)
        params = {
            "sellToken": request.sell_token,
            "buyToken": request.buy_token,
            "sellAmount": str(request.sell_amount),
            "takerAddress": request.taker or ZERO_ADDRESS,
            "slippagePercentage": str(Decimal(slippage_bps) / BPS_DENOMINATOR),
        }

        response = await self._request(params)

        if response.status_code == 404:
            raise ProviderNoRoute(self.name, "no liquidity quote available for this pair/amount")
        if response.status_code == 400:
            raise ProviderNoRoute(self.name, f"quote error: {self._validation_reason(response)}")
        if response.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {response.status_code}")

        data = response.json()
        if not isinstance(data, dict) or not data.get("to") or not data.get("data"):
            raise ProviderNoRoute(self.name, "quote response has no transaction")

        return self._normalize(data, request, slippage_bps)

    @staticmethod
    def _validation_reason(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or "bad request"
        if not isinstance(body, dict):
            return "bad request"
        errors: List[Dict[str, Any]] = body.get("validationErrors") or []
        if errors and errors[0].get("reason"):
            return str(errors[0]["reason"])
        return str(body.get("reason") or "bad request")

    def _normalize(self, data: Dict[str, Any], request: QuoteRequest, slippage_bps: int) -> Quote:
        buy_amount = int(data.get("buyAmount") or 0)
        sell_amount = int(data.get("sellAmount") or request.sell_amount)
        gas = data.get("gas") or data.get("estimatedGas")

        return Quote(
            sell_token=request.sell_token,
            buy_token=request.buy_token,
            sell_amount=sell_amount,
            buy_amount=buy_amount,
            min_buy_amount=minimum_output(buy_amount, slippage_bps),
            provider=self.name,
            tx=SwapTx(to=data["to"], data=data["data"], value=int(data.get("value") or 0)),
            price=_decimal(data.get("price")),
            guaranteed_price=_decimal(data.get("guaranteedPrice")),
            allowance_target=data.get("allowanceTarget") or None,
            gas=int(gas) if gas else None,
            slippage_bps=slippage_bps,
            sources=list(data.get("sources") or []),
        )
