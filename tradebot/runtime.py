"""
Runtime wiring.

Builds the object graph once per process from Settings. Transports (HTTP
app, Telegram bot, CLI) receive the Runtime and never construct services
themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings, settings as default_settings
from .core.alerts import AlertService
from .core.custody import CustodyService
from .core.gas import AllowanceManager, GasPolicy
from .core.interfaces import Notifier, NullNotifier
from .core.rpc import ERC20, ChainClient, EndpointPool
from .core.swap.aggregator import QuoteAggregator
from .core.tokens import (
    CachedTokenResolver,
    OnChainBytes32Resolver,
    OnChainStringResolver,
    TokenDirectory,
    TokenMetadataService,
)
from .core.trading import TradeOrchestrator
from .core.wallet import WalletService
from .db import Repository, build_engine, build_session_factory, init_db
from .providers import OpenOceanProvider, ZeroXProvider
from .services.events import EventHub

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    engine: AsyncEngine
    repository: Repository
    pool: EndpointPool
    chain: ChainClient
    erc20: ERC20
    custody: CustodyService
    aggregator: QuoteAggregator
    tokens: TokenDirectory
    orchestrator: TradeOrchestrator
    wallets: WalletService
    events: EventHub
    alerts: AlertService

    async def close(self) -> None:
        await self.alerts.stop()
        await self.pool.close()
        await self.engine.dispose()


async def build_runtime(
    config: Optional[Settings] = None,
    *,
    notifier: Optional[Notifier] = None,
    rpc_transport: Optional[httpx.AsyncBaseTransport] = None,
    aggregator_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Runtime:
    config = config or default_settings
    notifier = notifier or NullNotifier()

    engine = build_engine(config.database_url)
    await init_db(engine)
    repository = Repository(build_session_factory(engine))

    pool = EndpointPool(config.endpoint_urls, timeout_s=config.rpc_timeout_seconds, transport=rpc_transport)
    chain = ChainClient(
        pool,
        chain_id=config.chain_id,
        confirmation_timeout_s=config.confirmation_timeout_seconds,
        poll_interval_s=config.confirmation_poll_seconds,
    )
    erc20 = ERC20(chain)
    custody = CustodyService(config.wallet_secret, chain, gas_multiplier=config.gas_limit_multiplier)

    aggregator = QuoteAggregator(
        [
            ZeroXProvider(
                quote_url=config.zerox_quote_url,
                api_key=config.zerox_api_key,
                timeout_s=config.aggregator_timeout_seconds,
                transport=aggregator_transport,
            ),
            OpenOceanProvider(
                base_url=config.openocean_base_url,
                chain=config.openocean_chain,
                gas_price=chain.gas_price,
                timeout_s=config.aggregator_timeout_seconds,
                transport=aggregator_transport,
            ),
        ]
    )

    tokens = TokenDirectory(
        repository,
        TokenMetadataService(
            [CachedTokenResolver(repository), OnChainStringResolver(erc20), OnChainBytes32Resolver(erc20)]
        ),
        stable_symbol=config.stable_symbol,
        stable_address=config.stable_address,
        stable_decimals=config.stable_decimals,
    )

    events = EventHub()
    orchestrator = TradeOrchestrator(
        chain=chain,
        erc20=erc20,
        aggregator=aggregator,
        custody=custody,
        gas_policy=GasPolicy(chain, default_gas_limit=config.default_swap_gas_limit),
        allowances=AllowanceManager(erc20, use_max=config.use_max_allowance),
        tokens=tokens,
        repository=repository,
        notifier=notifier,
        broadcaster=events,
        stable_min_buy=config.stable_min_buy,
        default_slippage_bps=config.default_slippage_bps,
        max_slippage_bps=config.max_slippage_bps,
        max_gas_boost_bps=config.max_gas_boost_bps,
    )

    if config.wallet_secret == "change-me":
        logger.warning("WALLET_SECRET is the default value; stored keys are not protected")

    logger.info(
        "Runtime ready: chain_id=%d endpoints=%d providers=%s",
        config.chain_id,
        len(pool.endpoints),
        [p.name for p in aggregator.providers],
    )
    return Runtime(
        settings=config,
        engine=engine,
        repository=repository,
        pool=pool,
        chain=chain,
        erc20=erc20,
        custody=custody,
        aggregator=aggregator,
        tokens=tokens,
        orchestrator=orchestrator,
        wallets=WalletService(repository, custody, chain, erc20, tokens),
        events=events,
        alerts=AlertService(repository, notifier),
    )
