"""
Telegram transport.

TelegramPrompter adapts the bot API to the Prompter/Notifier interfaces the
core expects. TradeBot registers commands and routes free text and button
callbacks into the flow engine.
"""

import html
import logging
from functools import wraps
from typing import Awaitable, Callable, Optional, Sequence

import telegram
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..core.errors import TradeError
from ..core.flows import FlowCategory, FlowEngine, FlowHandlers, parse_action, parse_trade_args
from ..core.interfaces import Action, Notifier, Prompter
from ..core.trading import TradeSide, format_units
from ..runtime import Runtime

logger = logging.getLogger(__name__)

HELP_TEXT = (
    "📚 <b>Commands</b>\n\n"
    "/wallet - Show your wallet and balances\n"
    "/tokens - Recently traded tokens and prices\n"
    "/buy - Buy a token (or <code>/buy 10 0xTOKEN</code>)\n"
    "/sell <code>amount token</code> - Sell a token for USDC\n"
    "/withdraw - Send ETH or tokens to another address\n"
    "/import - Import a private key (replaces your wallet)\n"
    "/disconnect - Remove your wallet from the bot\n"
    "/set_slippage <code>bps</code> - Slippage tolerance, e.g. 100 = 1%\n"
    "/set_boost <code>bps</code> - Gas boost, e.g. 2000 = +20%\n"
    "/cancel - Cancel whatever is pending\n"
    "/help - Show this message"
)

TOKENS_LISTED = 10

Handler = Callable[["TradeBot", Update, ContextTypes.DEFAULT_TYPE], Awaitable[None]]


def reports_errors(func: Handler) -> Handler:
    """Reply with the user message of any TradeError instead of going silent."""

    @wraps(func)
    async def wrapper(self: "TradeBot", update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            await func(self, update, context)
        except TradeError as exc:
            await self.prompter.send_message(user_key(update), exc.user_message)

    return wrapper


def user_key(update: Update) -> str:
    return str(update.effective_user.id)


class TelegramPrompter(Prompter, Notifier):
    def __init__(self, bot: telegram.Bot) -> None:
        self.bot = bot

    @staticmethod
    def _markup(actions: Optional[Sequence[Action]]) -> Optional[InlineKeyboardMarkup]:
        if not actions:
            return None
        return InlineKeyboardMarkup(
            [[InlineKeyboardButton(action.label, callback_data=action.data) for action in actions]]
        )

    async def send_message(
        self,
        user_id: str,
        text: str,
        actions: Optional[Sequence[Action]] = None,
    ) -> Optional[str]:
        try:
            message = await self.bot.send_message(
                chat_id=int(user_id),
                text=text,
                reply_markup=self._markup(actions),
                disable_web_page_preview=True,
            )
        except telegram.error.TelegramError as exc:
            logger.error("Telegram send to %s failed: %s", user_id, exc)
            return None
        return str(message.message_id)

    async def edit_message(self, user_id: str, message_id: str, text: str) -> None:
        try:
            await self.bot.edit_message_text(chat_id=int(user_id), message_id=int(message_id), text=text)
        except telegram.error.TelegramError as exc:
            logger.warning("Telegram edit of %s failed: %s", message_id, exc)

    async def notify(self, user_id: str, text: str) -> None:
        await self.send_message(user_id, text)


class TradeBot:
    def __init__(self, runtime: Runtime, prompter: TelegramPrompter) -> None:
        self.runtime = runtime
        self.prompter = prompter
        self.flows = FlowEngine(prompter, timeout_s=runtime.settings.flow_timeout_seconds)
        self.handlers = FlowHandlers(
            self.flows, prompter, runtime.orchestrator, runtime.wallets, runtime.tokens
        )
        self.handlers.register()

    def register(self, app: Application) -> Application:
        app.add_handler(CommandHandler("start", self._cmd_start))
        app.add_handler(CommandHandler("help", self._cmd_help))
        app.add_handler(CommandHandler("wallet", self._cmd_wallet))
        app.add_handler(CommandHandler("tokens", self._cmd_tokens))
        app.add_handler(CommandHandler("buy", self._cmd_buy))
        app.add_handler(CommandHandler("sell", self._cmd_sell))
        app.add_handler(CommandHandler("withdraw", self._cmd_withdraw))
        app.add_handler(CommandHandler("import", self._cmd_import))
        app.add_handler(CommandHandler("disconnect", self._cmd_disconnect))
        app.add_handler(CommandHandler("set_slippage", self._cmd_set_slippage))
        app.add_handler(CommandHandler("set_boost", self._cmd_set_boost))
        app.add_handler(CommandHandler("cancel", self._cmd_cancel))
        app.add_handler(CallbackQueryHandler(self._on_callback))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self._on_text))
        app.add_error_handler(self._on_error)
        return app

    # ---------------------------------------------------------------- commands

    @reports_errors
    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        wallet = await self.runtime.wallets.ensure_wallet(user_key(update), user.username or "")
        await update.message.reply_text(
            "🤖 <b>Welcome to tradebot</b>\n\n"
            f"Your wallet on Base:\n<code>{wallet.address}</code>\n\n"
            f"Fund it with ETH for gas and {self.runtime.settings.stable_symbol} to trade.\n\n"
            + HELP_TEXT,
            parse_mode="HTML",
        )

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.message.reply_text(HELP_TEXT, parse_mode="HTML")

    @reports_errors
    async def _cmd_wallet(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        uid = user_key(update)
        await self.runtime.wallets.ensure_wallet(uid, update.effective_user.username or "")
        balances = await self.runtime.wallets.refresh_balances(uid, context.args[0] if context.args else None)
        stable = self.runtime.settings.stable_symbol
        lines = [
            f"👛 <code>{balances.address}</code>",
            f"ETH: {format_units(balances.native_wei, 18)}",
            f"{stable}: {format_units(balances.stable, balances.stable_decimals)}",
        ]
        if balances.token_address is not None and balances.token_balance is not None:
            lines.append(
                f"{balances.token_address}: {format_units(balances.token_balance, balances.token_decimals or 18)}"
            )
        await update.message.reply_text("\n".join(lines), parse_mode="HTML")

    async def _cmd_tokens(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        symbol = context.args[0] if context.args else None
        rows = await self.runtime.repository.list_tokens(symbol=symbol, limit=TOKENS_LISTED)
        if not rows:
            await update.message.reply_text("No tokens seen yet.")
            return

        lines = ["📊 <b>Tokens</b>", ""]
        for i, row in enumerate(rows, start=1):
            price = f"${row.price_usd:,.6g}" if row.price_usd is not None else "n/a"
            name = html.escape(row.name or "Unknown")
            symbol_text = html.escape(row.symbol or "?")
            lines.append(f"{i}. {name} ({symbol_text}) {price}")
            lines.append(f"   <code>{row.address}</code>")
        await update.message.reply_text("\n".join(lines), parse_mode="HTML")

    @reports_errors
    async def _cmd_buy(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        args = parse_trade_args(context.args or [])
        if args is None:
            await self.handlers.begin_buy(user_key(update))
            return
        amount, token = args
        await self.handlers.begin_trade(user_key(update), TradeSide.BUY, token, amount)

    @reports_errors
    async def _cmd_sell(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        args = parse_trade_args(context.args or [])
        if args is None:
            await update.message.reply_text("Usage: /sell <amount> <token symbol|address>")
            return
        amount, token = args
        await self.handlers.begin_trade(user_key(update), TradeSide.SELL, token, amount)

    @reports_errors
    async def _cmd_withdraw(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.handlers.begin_withdraw(user_key(update))

    @reports_errors
    async def _cmd_import(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self.handlers.begin_import(user_key(update))

    @reports_errors
    async def _cmd_disconnect(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        uid = user_key(update)
        await self.flows.cancel_all(uid)
        removed = await self.runtime.wallets.disconnect(uid)
        await update.message.reply_text(
            "🔌 Wallet disconnected." if removed else "No wallet is connected."
        )

    async def _set_bps(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
        *,
        field: str,
        minimum: int,
        maximum: int,
    ) -> Optional[int]:
        raw = context.args[0] if context.args else ""
        try:
            bps = int(raw)
        except ValueError:
            bps = -1
        if bps < minimum or bps > maximum:
            await update.message.reply_text(f"Usage: /{field} <{minimum}-{maximum} bps>")
            return None
        return bps

    async def _cmd_set_slippage(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        bps = await self._set_bps(
            update, context, field="set_slippage", minimum=1, maximum=self.runtime.settings.max_slippage_bps
        )
        if bps is None:
            return
        await self.runtime.repository.update_user_settings(user_key(update), slippage_bps=bps)
        await update.message.reply_text(f"✔️ Slippage set to {bps} bps ({bps / 100:.2f}%).")

    async def _cmd_set_boost(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        bps = await self._set_bps(
            update, context, field="set_boost", minimum=0, maximum=self.runtime.settings.max_gas_boost_bps
        )
        if bps is None:
            return
        await self.runtime.repository.update_user_settings(user_key(update), gas_boost_bps=bps)
        await update.message.reply_text(f"✔️ Gas boost set to {bps} bps (+{bps / 100:.0f}%).")

    async def _cmd_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        cancelled = await self.flows.cancel_all(user_key(update))
        await update.message.reply_text("Cancelled." if cancelled else "Nothing to cancel.")

    # ------------------------------------------------------------ free routing

    async def _on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        uid = user_key(update)
        holds_key = self.flows.get(uid, FlowCategory.IMPORT_KEY) is not None
        claimed = await self.flows.handle_text(uid, update.message.text or "")

        if holds_key:
            # Do not leave a private key sitting in the chat history
            try:
                await update.message.delete()
            except telegram.error.TelegramError as exc:
                logger.warning("Could not delete key message for %s: %s", uid, exc)

        if not claimed:
            await update.message.reply_text("Nothing is pending. Send /help to see what I can do.")

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        await query.answer()
        uid = user_key(update)
        handled = await self.flows.handle_action(uid, query.data or "")
        if not handled:
            await query.edit_message_text("This request has expired. Start again.")
            return
        parsed = parse_action(query.data or "")
        if parsed is not None and self.flows.get(uid, parsed[0]) is not None:
            # Retried at the same step: the buttons still apply
            return
        await query.edit_message_reply_markup(reply_markup=None)

    @staticmethod
    async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Telegram handler error", exc_info=context.error)


def build_application(token: str) -> Application:
    # Per-user locks in the flow engine and orchestrator serialize each user;
    # different users must not wait on each other's receipts
    return Application.builder().token(token).concurrent_updates(True).build()
