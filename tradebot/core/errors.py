"""
Error Classification

Every failure that leaves the trading core is one of the categories below.
Component errors are translated at the orchestrator boundary so that chat and
HTTP layers only ever see a TradeError with a user-facing message.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


class ErrorCategory(str, Enum):
    """Categories of errors surfaced to users."""

    VALIDATION = "validation"       # Bad input, rejected before any network call
    LIQUIDITY = "liquidity"         # No aggregator could route the trade
    NETWORK = "network"             # RPC / infrastructure failure
    AUTHORIZATION = "authorization" # No wallet, or key material unusable
    ON_CHAIN = "on_chain"           # Transaction reverted
    UNKNOWN = "unknown"


HTTP_STATUS_BY_CATEGORY: Dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.LIQUIDITY: 409,
    ErrorCategory.NETWORK: 503,
    ErrorCategory.AUTHORIZATION: 401,
    ErrorCategory.ON_CHAIN: 422,
    ErrorCategory.UNKNOWN: 500,
}


class TradeError(Exception):
    """Base class for errors raised by the trading core."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    default_user_message = "Something went wrong. Please try again."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.default_user_message)
        self.message = message or self.default_user_message
        self._user_message = user_message

    @property
    def user_message(self) -> str:
        # Only validation messages are safe to echo verbatim
        if self._user_message:
            return self._user_message
        if self.category == ErrorCategory.VALIDATION:
            return self.message
        return self.default_user_message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CATEGORY[self.category]

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.user_message, "category": self.category.value}


# =============================================================================
# Input validation
# =============================================================================

class InputValidationError(TradeError):
    category = ErrorCategory.VALIDATION


class InvalidAddressError(InputValidationError):
    def __init__(self, value: str):
        super().__init__(f"Invalid address: {value!r}", "That doesn't look like a valid address.")
        self.value = value


class InvalidAmountError(InputValidationError):
    def __init__(self, message: str = "Invalid amount"):
        super().__init__(message)


class MinimumAmountError(InputValidationError):
    def __init__(self, minimum: Any, symbol: str):
        super().__init__(f"Minimum buy is {minimum} {symbol}")
        self.minimum = minimum
        self.symbol = symbol


class InvalidPrivateKeyError(InputValidationError):
    def __init__(self) -> None:
        # Never echo the submitted value
        super().__init__("Invalid private key. Expected 64 hex characters.")


class UnknownTokenError(InputValidationError):
    def __init__(self, token: str):
        super().__init__(f"Unknown token: {token}")
        self.token = token


class NotATokenError(InputValidationError):
    """The address answered an ERC-20 read with no data: it has no contract code."""

    def __init__(self, token: str):
        super().__init__(f"{token} is not an ERC-20 contract")
        self.token = token


class InsufficientFundsError(InputValidationError):
    """Balance too low for the trade or its gas."""

    def __init__(self, message: str, shortfall: int = 0, asset: str = "ETH"):
        super().__init__(message)
        self.shortfall = shortfall
        self.asset = asset

    @property
    def http_status(self) -> int:
        return 402


# =============================================================================
# Liquidity
# =============================================================================

class NoRoute(TradeError):
    """Every aggregator failed to produce a quote."""

    category = ErrorCategory.LIQUIDITY

    def __init__(self, attempts: Optional[List[str]] = None):
        self.attempts = list(attempts or [])
        detail = "; ".join(self.attempts) if self.attempts else "no providers configured"
        super().__init__(
            f"No route found ({detail})",
            "No route found for this trade. Try a smaller amount or try again later.",
        )


# =============================================================================
# Network
# =============================================================================

class GatewayExhausted(TradeError):
    """Every RPC endpoint failed for a single call."""

    category = ErrorCategory.NETWORK

    def __init__(self, last_error: Optional[BaseException] = None, attempts: int = 0, label: str = "rpc"):
        self.last_error = last_error
        self.attempts = attempts
        self.label = label
        super().__init__(
            f"All {attempts} RPC endpoints failed for {label}: {last_error!r}",
            "The blockchain network is unreachable right now. Please try again shortly.",
        )


class NetworkFailure(TradeError):
    """Transport-level failure outside the RPC gateway (e.g. an HTTP timeout)."""

    category = ErrorCategory.NETWORK
    default_user_message = "The network request timed out. Please try again shortly."


class ConfirmationTimeout(TradeError):
    """Broadcast succeeded but no receipt arrived within the bounded wait."""

    category = ErrorCategory.NETWORK

    def __init__(self, tx_hash: str, timeout_s: float):
        self.tx_hash = tx_hash
        self.timeout_s = timeout_s
        super().__init__(
            f"No receipt for {tx_hash} after {timeout_s:.0f}s",
            f"Transaction {tx_hash} was sent but is not confirmed yet. Check it on the explorer before retrying.",
        )


# =============================================================================
# Authorization
# =============================================================================

class WalletNotConnected(TradeError):
    category = ErrorCategory.AUTHORIZATION
    default_user_message = "No wallet connected. Use /wallet to create one or /import to bring your own."


class DecryptionError(TradeError):
    category = ErrorCategory.AUTHORIZATION
    default_user_message = "Stored wallet key could not be unlocked. Re-import your key to continue."


# =============================================================================
# On-chain
# =============================================================================

class TransactionReverted(TradeError):
    """A broadcast transaction was mined with a failure status."""

    category = ErrorCategory.ON_CHAIN

    def __init__(self, tx_hash: str, status: Optional[int] = 0, stage: str = "swap"):
        self.tx_hash = tx_hash
        self.status = status
        self.stage = stage
        super().__init__(
            f"{stage} transaction {tx_hash} reverted (status={status})",
            f"The {stage} transaction {tx_hash} reverted on-chain. Gas was spent but no tokens were exchanged.",
        )


class RpcResponseError(Exception):
    """The node answered with a JSON-RPC error object.

    This is an answer, not an endpoint failure: a revert or a bad parameter
    fails the same way on every node, so the gateway does not fail over.
    """

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class NodeRejected(TradeError):
    """The node refused a call or transaction before it was mined."""

    category = ErrorCategory.ON_CHAIN

    def __init__(self, node_message: str):
        self.node_message = node_message
        super().__init__(
            f"Node rejected request: {node_message}",
            f"The network rejected this transaction: {node_message}",
        )


def translate_error(exc: BaseException) -> TradeError:
    """Map any exception raised below the orchestrator into the taxonomy."""
    if isinstance(exc, TradeError):
        return exc
    if isinstance(exc, RpcResponseError):
        if "insufficient funds" in exc.message.lower():
            return InsufficientFundsError("Not enough ETH to cover gas for this transaction.")
        return NodeRejected(exc.message)
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return NetworkFailure(f"Network failure: {exc!r}")
    return TradeError(f"Unexpected error: {exc!r}")
