from .telegram_bot import TelegramPrompter, TradeBot, build_application

__all__ = ["TelegramPrompter", "TradeBot", "build_application"]
