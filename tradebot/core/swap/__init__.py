"""Normalized swap quotes. The aggregator lives in ``tradebot.core.swap.aggregator``."""

from .models import Quote, QuoteRequest, SwapTx

__all__ = ["Quote", "QuoteRequest", "SwapTx"]
