from .base import ProviderError, ProviderNoRoute, SwapProvider
from .openocean import OpenOceanProvider
from .zerox import ZeroXProvider

__all__ = [
    "OpenOceanProvider",
    "ProviderError",
    "ProviderNoRoute",
    "SwapProvider",
    "ZeroXProvider",
]
