"""Token metadata resolvers and symbol lookup."""

from .directory import TokenDirectory
from .resolvers import (
    DEFAULT_DECIMALS,
    DEFAULT_NAME,
    DEFAULT_SYMBOL,
    CachedTokenResolver,
    OnChainBytes32Resolver,
    OnChainStringResolver,
    TokenInfo,
    TokenMetadata,
    TokenMetadataService,
    TokenResolver,
)

__all__ = [
    "DEFAULT_DECIMALS",
    "DEFAULT_NAME",
    "DEFAULT_SYMBOL",
    "CachedTokenResolver",
    "OnChainBytes32Resolver",
    "OnChainStringResolver",
    "TokenDirectory",
    "TokenInfo",
    "TokenMetadata",
    "TokenMetadataService",
    "TokenResolver",
]
