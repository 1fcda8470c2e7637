"""
Chain RPC access layer.

- EndpointPool: ranked endpoints, per-attempt timeout, sticky failover
- ChainClient: typed JSON-RPC reads plus pinned broadcasts
- ERC20: token reads and calldata helpers
"""

from ..errors import RpcResponseError
from .client import ChainClient, FeeData, Receipt
from .erc20 import (
    ERC20,
    MAX_UINT256,
    TRANSFER_TOPIC,
    ZERO_ADDRESS,
    checksum_address,
    encode_approve,
    encode_transfer,
)
from .pool import Endpoint, EndpointPool, MalformedRpcResponse

__all__ = [
    "ChainClient",
    "ERC20",
    "Endpoint",
    "EndpointPool",
    "FeeData",
    "MAX_UINT256",
    "MalformedRpcResponse",
    "Receipt",
    "RpcResponseError",
    "TRANSFER_TOPIC",
    "ZERO_ADDRESS",
    "checksum_address",
    "encode_approve",
    "encode_transfer",
]
