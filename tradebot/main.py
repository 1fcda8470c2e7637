import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import events, health, tokens, trade, wallets
from .config import settings
from .core.errors import TradeError
from .logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Tests install their own runtime before startup
    owned: Optional[Runtime] = None
    telegram_app = None

    if getattr(app.state, "runtime", None) is None:
        setup_logging()
        if settings.has_telegram_token:
            from .bot import TelegramPrompter, TradeBot, build_application

            telegram_app = build_application(settings.telegram_bot_token)
            prompter = TelegramPrompter(telegram_app.bot)
            owned = await build_runtime(settings, notifier=prompter)
            TradeBot(owned, prompter).register(telegram_app)
        else:
            owned = await build_runtime(settings)
        app.state.runtime = owned
        owned.alerts.start(settings.alert_poll_interval_seconds)

    if telegram_app is not None:
        await telegram_app.initialize()
        await telegram_app.start()
        await telegram_app.updater.start_polling()
        logger.info("Telegram bot started")

    try:
        yield
    finally:
        if telegram_app is not None:
            await telegram_app.updater.stop()
            await telegram_app.stop()
            await telegram_app.shutdown()
        if owned is not None:
            await owned.close()
            app.state.runtime = None


async def trade_error_handler(request: Request, exc: TradeError) -> JSONResponse:
    logger.info("Request failed with %s: %s", exc.category.value, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    app = FastAPI(
        title="tradebot",
        description="Custodial swap service for Base",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(TradeError, trade_error_handler)

    app.include_router(health.router, tags=["Health"])
    app.include_router(trade.router, tags=["Trade"])
    app.include_router(wallets.router, tags=["Wallets"])
    app.include_router(tokens.router, tags=["Tokens"])
    app.include_router(events.router, tags=["Events"])

    @app.get("/")
    async def root():
        return {
            "name": "tradebot",
            "version": __version__,
            "docs": "/docs",
            "health": "/healthz",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tradebot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
