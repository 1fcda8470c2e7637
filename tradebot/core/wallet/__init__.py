from .service import WalletBalances, WalletService

__all__ = ["WalletBalances", "WalletService"]
