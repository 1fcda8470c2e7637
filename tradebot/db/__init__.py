from .database import build_engine, build_session_factory, init_db
from .models import Base, PriceAlertRow, TokenRow, TradeRow, UserRow, WalletRow
from .repository import Repository

__all__ = [
    "Base",
    "PriceAlertRow",
    "Repository",
    "TokenRow",
    "TradeRow",
    "UserRow",
    "WalletRow",
    "build_engine",
    "build_session_factory",
    "init_db",
]
