"""
Endpoint pool for chain RPC access.

Every read is tried against the ranked endpoints starting from the last one
that answered. The first success becomes the new starting point (sticky
routing). Broadcasts never go through the failover loop: callers pick one
endpoint with ``write_endpoint()`` and stay on it.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

import httpx

from ..errors import GatewayExhausted, RpcResponseError


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Endpoint:
    url: str
    rank: int


class MalformedRpcResponse(ValueError):
    """Body was not a JSON-RPC envelope."""


# Anything in here marks the endpoint as unhealthy for this call
FAILOVER_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, ValueError)


class EndpointPool:
    """Ranked RPC endpoints with per-attempt timeout and sticky routing."""

    def __init__(
        self,
        urls: Sequence[str],
        *,
        timeout_s: float = 4.0,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not urls:
            raise ValueError("EndpointPool needs at least one RPC URL")
        self._endpoints: List[Endpoint] = [Endpoint(url=url, rank=i) for i, url in enumerate(urls)]
        self._current = 0
        self.timeout_s = timeout_s
        self._client = client or httpx.AsyncClient(timeout=timeout_s, transport=transport)
        self._request_id = 0

    @property
    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints)

    @property
    def current(self) -> Endpoint:
        return self._endpoints[self._current]

    def write_endpoint(self) -> Endpoint:
        """Single endpoint used for a broadcast and its nonce read."""
        return self.current

    def _rotation(self) -> List[Endpoint]:
        start = self._current
        return self._endpoints[start:] + self._endpoints[:start]

    async def call(
        self,
        operation: Callable[[Endpoint], Awaitable[T]],
        *,
        label: str = "rpc",
    ) -> T:
        """Run ``operation`` against endpoints in rank order until one succeeds."""
        last_error: Optional[BaseException] = None
        attempts = 0

        for endpoint in self._rotation():
            attempts += 1
            try:
                result = await asyncio.wait_for(operation(endpoint), timeout=self.timeout_s)
            except RpcResponseError:
                raise
            except FAILOVER_ERRORS as exc:
                last_error = exc
                logger.warning(
                    "RPC %s failed on %s (rank %d): %r", label, endpoint.url, endpoint.rank, exc
                )
                continue

            if endpoint.rank != self._current:
                logger.info("RPC endpoint promoted to %s (rank %d)", endpoint.url, endpoint.rank)
            # Concurrent promotions race harmlessly; the pointer is only a hint
            self._current = endpoint.rank
            return result

        raise GatewayExhausted(last_error=last_error, attempts=attempts, label=label)

    async def request(self, endpoint: Endpoint, method: str, params: List[Any]) -> Any:
        """One JSON-RPC round trip against a specific endpoint."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        response = await self._client.post(endpoint.url, json=payload)
        response.raise_for_status()
        body = response.json()

        if not isinstance(body, dict):
            raise MalformedRpcResponse(f"Unexpected RPC body from {endpoint.url}: {body!r}")
        if body.get("error"):
            error = body["error"]
            if isinstance(error, dict):
                raise RpcResponseError(error.get("code"), str(error.get("message", "")), error.get("data"))
            raise RpcResponseError(None, str(error))
        if "result" not in body:
            raise MalformedRpcResponse(f"RPC body from {endpoint.url} has no result")

        return body["result"]

    async def read(self, method: str, params: List[Any]) -> Any:
        """Failover-wrapped JSON-RPC read."""
        return await self.call(lambda endpoint: self.request(endpoint, method, params), label=method)

    async def close(self) -> None:
        await self._client.aclose()
