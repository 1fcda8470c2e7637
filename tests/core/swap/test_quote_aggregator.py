"""
Tests for quote aggregation with provider fallback.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from tradebot.core.errors import NoRoute, RpcResponseError
from tradebot.core.swap.aggregator import QuoteAggregator
from tradebot.core.swap.models import Quote, QuoteRequest, SwapTx
from tradebot.providers.base import ProviderError, ProviderNoRoute, SwapProvider


REQUEST = QuoteRequest(
    sell_token="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    buy_token="0x4ed4E862860beD51a9570b96d89aF5E1B0Efefed",
    sell_amount=5_000_000,
    taker=None,
    slippage_bps=100,
)


class StubProvider(SwapProvider):
    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    async def quote(self, request: QuoteRequest) -> Quote:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def make_quote(provider: str) -> Quote:
    return Quote(
        sell_token=REQUEST.sell_token,
        buy_token=REQUEST.buy_token,
        sell_amount=REQUEST.sell_amount,
        buy_amount=1000,
        min_buy_amount=990,
        provider=provider,
        tx=SwapTx(to="0x" + "22" * 20, data="0x1234"),
    )


@pytest.mark.asyncio
async def test_primary_404_falls_back_to_secondary():
    primary = StubProvider("0x", error=ProviderNoRoute("0x", "no liquidity"))
    fallback_quote = make_quote("openocean")
    secondary = StubProvider("openocean", result=fallback_quote)

    quote = await QuoteAggregator([primary, secondary]).quote(REQUEST)

    # Returned unchanged in shape
    assert quote is fallback_quote
    assert primary.calls == 1 and secondary.calls == 1


@pytest.mark.asyncio
async def test_primary_success_skips_secondary():
    primary = StubProvider("0x", result=make_quote("0x"))
    secondary = StubProvider("openocean", result=make_quote("openocean"))

    quote = await QuoteAggregator([primary, secondary]).quote(REQUEST)

    assert quote.provider == "0x"
    assert secondary.calls == 0


@pytest.mark.asyncio
async def test_transport_error_falls_back():
    primary = StubProvider("0x", error=httpx.ConnectTimeout("timed out"))
    secondary = StubProvider("openocean", result=make_quote("openocean"))

    assert (await QuoteAggregator([primary, secondary]).quote(REQUEST)).provider == "openocean"


@pytest.mark.asyncio
async def test_all_providers_failing_raises_no_route_with_attempts():
    primary = StubProvider("0x", error=ProviderNoRoute("0x", "no liquidity"))
    secondary = StubProvider("openocean", error=ProviderError("openocean", "HTTP 500"))

    with pytest.raises(NoRoute) as exc_info:
        await QuoteAggregator([primary, secondary]).quote(REQUEST)

    assert exc_info.value.attempts == ["0x: no liquidity", "openocean: HTTP 500"]
    assert exc_info.value.http_status == 409
    assert "No route" in exc_info.value.user_message


@pytest.mark.asyncio
async def test_node_error_from_gas_lookup_counts_as_provider_failure():
    primary = StubProvider("0x", error=ProviderNoRoute("0x", "HTTP 404"))
    secondary = StubProvider("openocean", error=RpcResponseError(-32000, "header not found"))

    with pytest.raises(NoRoute) as exc_info:
        await QuoteAggregator([primary, secondary]).quote(REQUEST)

    assert len(exc_info.value.attempts) == 2
    assert "header not found" in exc_info.value.attempts[1]


@pytest.mark.asyncio
async def test_malformed_body_falls_back():
    primary = StubProvider("0x", error=TypeError("'NoneType' object is not subscriptable"))
    secondary = StubProvider("openocean", result=make_quote("openocean"))

    assert (await QuoteAggregator([primary, secondary]).quote(REQUEST)).provider == "openocean"


@pytest.mark.asyncio
async def test_send_and_allowance_delegate_to_quoting_provider():
    zerox = StubProvider("0x")
    openocean = StubProvider("openocean")
    openocean.send_transaction = AsyncMock(return_value="0xswap")
    openocean.ensure_allowance = AsyncMock(return_value=None)
    aggregator = QuoteAggregator([zerox, openocean])
    quote = make_quote("openocean")

    assert await aggregator.send(quote, signer=object()) == "0xswap"
    assert await aggregator.ensure_allowance(quote, signer=object(), allowances=object()) is None
    openocean.send_transaction.assert_awaited_once()
