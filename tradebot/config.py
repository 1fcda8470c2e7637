import os

from decimal import Decimal
from pathlib import Path
from typing import Any, List

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_BASE_RPC_URLS = [
    "https://mainnet.base.org",
    "https://base.llamarpc.com",
    "https://base.publicnode.com",
    "https://1rpc.io/base",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.telegram_bot_token:
            fallback = os.getenv("TELEGRAM_BOT_TOKEN") or os.getenv("TG_BOT_TOKEN")
            if fallback:
                object.__setattr__(self, "telegram_bot_token", fallback)

        if not self.zerox_api_key:
            fallback = os.getenv("ZEROX_API_KEY") or os.getenv("OX_API_KEY")
            if fallback:
                object.__setattr__(self, "zerox_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Chain / RPC
    chain_id: int = Field(default=8453, description="EVM chain id (Base mainnet)")
    base_rpc_url: str = Field(
        default="",
        validation_alias=AliasChoices("BASE_RPC_URL", "base_rpc_url"),
        description="Preferred RPC endpoint; ranked ahead of the public pool when set",
    )
    rpc_urls: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BASE_RPC_URLS),
        description="Ranked RPC endpoints used by the endpoint pool",
    )
    rpc_timeout_seconds: float = Field(default=4.0, description="Per-attempt RPC timeout")
    confirmation_timeout_seconds: float = Field(
        default=180.0,
        description="Upper bound on waiting for a transaction receipt",
    )
    confirmation_poll_seconds: float = Field(default=2.0, description="Receipt polling interval")
    gas_limit_multiplier: float = Field(default=1.1, description="Safety multiplier on gas estimates")
    default_swap_gas_limit: int = Field(
        default=300_000,
        description="Gas limit assumed when an aggregator quote carries no estimate",
    )

    # Custody
    wallet_secret: str = Field(
        default="change-me",
        validation_alias=AliasChoices("WALLET_SECRET", "wallet_secret"),
        description="Process-wide passphrase protecting stored wallet keys",
    )

    # Base stable asset
    stable_symbol: str = Field(default="USDC", description="Symbol of the base stable asset")
    stable_address: str = Field(
        default="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        validation_alias=AliasChoices("BASE_STABLE_ADDRESS", "stable_address"),
        description="Contract address of the base stable asset",
    )
    stable_decimals: int = Field(default=6, description="Decimals of the base stable asset")
    stable_min_buy: Decimal = Field(
        default=Decimal("3"),
        description="Minimum buy size, in base stable units",
    )
    weth_address: str = Field(
        default="0x4200000000000000000000000000000000000006",
        description="Wrapped native asset",
    )

    # Aggregators
    zerox_quote_url: str = Field(
        default="https://base.api.0x.org/swap/v1/quote",
        validation_alias=AliasChoices("ZEROX_BASE_QUOTE_URL", "zerox_quote_url"),
        description="0x swap quote endpoint",
    )
    zerox_api_key: str = Field(default="", description="0x API key")
    openocean_base_url: str = Field(
        default="https://open-api.openocean.finance/v4",
        description="OpenOcean API base URL",
    )
    openocean_chain: str = Field(default="base", description="OpenOcean chain code")
    aggregator_timeout_seconds: float = Field(default=10.0, description="Aggregator HTTP timeout")
    default_slippage_bps: int = Field(default=100, description="Default slippage tolerance in bps")
    max_slippage_bps: int = Field(default=2000, description="Largest slippage a user may configure")
    max_gas_boost_bps: int = Field(default=10_000, description="Largest gas boost a user may configure")
    allowance_mode: str = Field(
        default="exact",
        description="Approval size: 'exact' trade amount or 'max' uint256",
    )

    # Conversational flows
    flow_timeout_seconds: float = Field(default=120.0, description="Pending flow lifetime")

    # Persistence
    database_url: str = Field(
        default=f"sqlite+aiosqlite:///{BASE_DIR / 'tradebot.db'}",
        description="SQLAlchemy async database URL",
    )

    # Telegram
    telegram_bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("BOT_TOKEN", "telegram_bot_token"),
        description="Telegram bot token",
    )

    # Alerts
    alert_poll_interval_seconds: float = Field(default=60.0, description="Price alert check interval")

    @property
    def endpoint_urls(self) -> List[str]:
        """Ranked, de-duplicated endpoint list with the override first."""
        ranked: List[str] = []
        for url in [self.base_rpc_url, *self.rpc_urls]:
            cleaned = (url or "").strip()
            if cleaned and cleaned not in ranked:
                ranked.append(cleaned)
        return ranked

    @property
    def has_telegram_token(self) -> bool:
        return bool(self.telegram_bot_token)

    @property
    def use_max_allowance(self) -> bool:
        return self.allowance_mode.strip().lower() == "max"


settings = Settings()
