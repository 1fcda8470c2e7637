"""
Tests for ChainClient receipt polling and fee data.
"""

import json

import httpx
import pytest

from tradebot.core.errors import ConfirmationTimeout
from tradebot.core.rpc.client import ChainClient, FeeData
from tradebot.core.rpc.pool import EndpointPool


TX_HASH = "0x" + "ab" * 32


def rpc_transport(results):
    """results: method -> value or callable(params) -> value"""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        value = results[body["method"]]
        if callable(value):
            value = value(body["params"])
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": value})

    return httpx.MockTransport(handler)


def make_client(results, **kwargs) -> ChainClient:
    pool = EndpointPool(["https://rpc.example"], transport=rpc_transport(results))
    return ChainClient(pool, chain_id=8453, **kwargs)


@pytest.mark.asyncio
async def test_wait_for_receipt_polls_until_mined():
    polls = {"n": 0}

    def receipt(params):
        polls["n"] += 1
        if polls["n"] < 3:
            return None
        return {
            "transactionHash": params[0],
            "status": "0x1",
            "blockNumber": "0x64",
            "gasUsed": "0x5208",
            "effectiveGasPrice": "0x3b9aca00",
            "logs": [],
        }

    client = make_client({"eth_getTransactionReceipt": receipt}, poll_interval_s=0.01)
    result = await client.wait_for_receipt(TX_HASH, timeout_s=2)

    assert result.succeeded
    assert result.block_number == 100
    assert result.gas_used == 21000
    assert polls["n"] == 3


@pytest.mark.asyncio
async def test_wait_for_receipt_is_bounded():
    client = make_client({"eth_getTransactionReceipt": None}, poll_interval_s=0.01)

    with pytest.raises(ConfirmationTimeout) as exc_info:
        await client.wait_for_receipt(TX_HASH, timeout_s=0.05)

    assert exc_info.value.tx_hash == TX_HASH
    assert TX_HASH in exc_info.value.user_message


@pytest.mark.asyncio
async def test_fee_data_uses_fee_history():
    client = make_client(
        {
            "eth_gasPrice": hex(5_000_000),
            "eth_feeHistory": {"baseFeePerGas": ["0x0", hex(2_000_000)], "reward": [[hex(100_000)]]},
        }
    )
    fees = await client.fee_data()

    assert fees.base_fee == 2_000_000
    assert fees.max_priority_fee_per_gas == 100_000
    assert fees.max_fee_per_gas == 2 * 2_000_000 + 100_000
    assert fees.supports_eip1559


@pytest.mark.asyncio
async def test_fee_data_falls_back_to_legacy():
    client = make_client({"eth_gasPrice": "0x64", "eth_feeHistory": {}})
    fees = await client.fee_data()

    assert fees == FeeData(gas_price=100)
    assert fees.to_tx_fields() == {"gasPrice": 100}


@pytest.mark.asyncio
async def test_pinned_nonce_read_uses_given_endpoint():
    client = make_client({"eth_getTransactionCount": "0x7"})
    endpoint = client.pool.write_endpoint()

    assert await client.get_transaction_count("0x" + "11" * 20, endpoint=endpoint) == 7
