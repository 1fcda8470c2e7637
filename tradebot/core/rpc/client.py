"""
JSON-RPC chain client built on the endpoint pool.

Reads go through ``EndpointPool.read`` (failover). ``send_raw_transaction``
and the nonce lookup that precedes it are pinned to one endpoint.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ConfirmationTimeout, GatewayExhausted
from .pool import Endpoint, EndpointPool


logger = logging.getLogger(__name__)

# Used when the node returns no reward percentile (empty blocks)
DEFAULT_PRIORITY_FEE_WEI = 1_000_000


def _to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    return int(text, 16) if text.startswith("0x") else int(text)


@dataclass
class FeeData:
    """Current network fee parameters, in wei."""

    gas_price: int
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    base_fee: Optional[int] = None

    @property
    def supports_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None and self.max_priority_fee_per_gas is not None

    def to_tx_fields(self) -> Dict[str, int]:
        if self.supports_eip1559:
            return {
                "maxFeePerGas": int(self.max_fee_per_gas),
                "maxPriorityFeePerGas": int(self.max_priority_fee_per_gas),
            }
        return {"gasPrice": int(self.gas_price)}


@dataclass
class Receipt:
    tx_hash: str
    status: int
    block_number: int = 0
    gas_used: int = 0
    effective_gas_price: int = 0
    logs: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "Receipt":
        return cls(
            tx_hash=raw.get("transactionHash", ""),
            status=_to_int(raw.get("status")),
            block_number=_to_int(raw.get("blockNumber")),
            gas_used=_to_int(raw.get("gasUsed")),
            effective_gas_price=_to_int(raw.get("effectiveGasPrice")),
            logs=list(raw.get("logs") or []),
        )


class ChainClient:
    """Typed JSON-RPC calls for a single EVM chain."""

    def __init__(
        self,
        pool: EndpointPool,
        *,
        chain_id: int,
        confirmation_timeout_s: float = 180.0,
        poll_interval_s: float = 2.0,
    ) -> None:
        self.pool = pool
        self.chain_id = chain_id
        self.confirmation_timeout_s = confirmation_timeout_s
        self.poll_interval_s = poll_interval_s

    async def block_number(self) -> int:
        return _to_int(await self.pool.read("eth_blockNumber", []))

    async def get_balance(self, address: str, block: str = "latest") -> int:
        return _to_int(await self.pool.read("eth_getBalance", [address, block]))

    async def get_code(self, address: str) -> str:
        return await self.pool.read("eth_getCode", [address, "latest"]) or "0x"

    async def call(self, to: str, data: str, from_address: Optional[str] = None) -> str:
        call_obj: Dict[str, Any] = {"to": to, "data": data}
        if from_address:
            call_obj["from"] = from_address
        return await self.pool.read("eth_call", [call_obj, "latest"]) or "0x"

    async def get_transaction_count(
        self,
        address: str,
        block: str = "pending",
        endpoint: Optional[Endpoint] = None,
    ) -> int:
        if endpoint is not None:
            return _to_int(await self._pinned(endpoint, "eth_getTransactionCount", [address, block]))
        return _to_int(await self.pool.read("eth_getTransactionCount", [address, block]))

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        call_obj = {k: v for k, v in tx.items() if k in ("from", "to", "data", "value")}
        if isinstance(call_obj.get("value"), int):
            call_obj["value"] = hex(call_obj["value"])
        return _to_int(await self.pool.read("eth_estimateGas", [call_obj]))

    async def gas_price(self) -> int:
        return _to_int(await self.pool.read("eth_gasPrice", []))

    async def fee_data(self) -> FeeData:
        """EIP-1559 fee data from the latest block, falling back to legacy gas price."""
        gas_price = await self.gas_price()

        fee_history = await self.pool.read("eth_feeHistory", [1, "latest", [50]])
        base_fees = (fee_history or {}).get("baseFeePerGas") or []
        if not base_fees:
            return FeeData(gas_price=gas_price)

        base_fee = _to_int(base_fees[-1])
        rewards = fee_history.get("reward") or []
        priority_fee = _to_int(rewards[0][0]) if rewards and rewards[0] else DEFAULT_PRIORITY_FEE_WEI

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
            base_fee=base_fee,
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        raw = await self.pool.read("eth_getTransactionReceipt", [tx_hash])
        if not raw:
            return None
        return Receipt.from_rpc(raw)

    async def wait_for_receipt(self, tx_hash: str, timeout_s: Optional[float] = None) -> Receipt:
        """Poll for a receipt until it exists or the bounded wait expires."""
        timeout = self.confirmation_timeout_s if timeout_s is None else timeout_s
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
            except GatewayExhausted as exc:
                # Keep waiting through a transient outage; the deadline still applies
                logger.warning("Receipt poll for %s failed: %s", tx_hash, exc)
                receipt = None

            if receipt is not None:
                logger.info(
                    "Transaction %s mined in block %d (status=%d)",
                    tx_hash,
                    receipt.block_number,
                    receipt.status,
                )
                return receipt

            if loop.time() >= deadline:
                raise ConfirmationTimeout(tx_hash, timeout)
            await asyncio.sleep(self.poll_interval_s)

    async def send_raw_transaction(self, raw_tx: str, endpoint: Endpoint) -> str:
        """Broadcast on exactly one endpoint; never retried across the pool."""
        tx_hash = await self._pinned(endpoint, "eth_sendRawTransaction", [raw_tx])
        logger.info("Broadcast transaction %s via %s", tx_hash, endpoint.url)
        return tx_hash

    async def _pinned(self, endpoint: Endpoint, method: str, params: List[Any]) -> Any:
        return await asyncio.wait_for(
            self.pool.request(endpoint, method, params),
            timeout=self.pool.timeout_s,
        )
