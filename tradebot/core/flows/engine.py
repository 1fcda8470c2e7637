"""
Conversational flow engine.

A flow is a pending question to one user: "send me your private key",
"how much USDC?", "confirm this trade?". Each user has at most one flow per
category; each flow owns exactly one expiry timer.

Lifecycle:
    start -> (reply: timer cancelled -> handler -> advance | retry | done) -> dropped
    start -> (no reply within timeout) -> silently dropped

All mutations for one user run under that user's lock, so two messages
arriving back to back are handled one after the other.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import TradeError
from ..interfaces import Action, Prompter
from ..locks import UserLocks

logger = logging.getLogger(__name__)


class FlowCategory(str, Enum):
    IMPORT_KEY = "import_key"
    CONTRACT_ADDRESS = "contract_address"
    BUY_AMOUNT = "buy_amount"
    WITHDRAW = "withdraw"


# Free text is offered to active flows in this order; the first one claims it.
# Key import goes first so a pasted key is never read as an amount or address.
TEXT_PRECEDENCE: Tuple[FlowCategory, ...] = (
    FlowCategory.IMPORT_KEY,
    FlowCategory.WITHDRAW,
    FlowCategory.BUY_AMOUNT,
    FlowCategory.CONTRACT_ADDRESS,
)


class FlowOutcome(str, Enum):
    ADVANCE = "advance"  # moved to another step, wait for the next reply
    RETRY = "retry"      # same step, ask again
    DONE = "done"        # flow finished, drop it


GENERIC_FAILURE = "Something went wrong. Please start again."
CANCELLED = "Cancelled."


@dataclass
class PendingFlow:
    user_id: str
    category: FlowCategory
    step: str
    data: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    timer: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    @property
    def key(self) -> Tuple[str, FlowCategory]:
        return (self.user_id, self.category)

    def cancel_timer(self) -> None:
        # TimerHandle.cancel() is a no-op after firing or a previous cancel
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


TextHandler = Callable[[PendingFlow, str], Awaitable[FlowOutcome]]
ActionHandler = Callable[[PendingFlow, str], Awaitable[FlowOutcome]]


def action_data(category: FlowCategory, verb: str) -> str:
    """Callback payload for an inline button belonging to a flow."""
    return f"{category.value}:{verb}"


def parse_action(data: str) -> Optional[Tuple[FlowCategory, str]]:
    category, _, verb = (data or "").partition(":")
    try:
        return FlowCategory(category), verb
    except ValueError:
        return None


class FlowEngine:
    def __init__(self, prompter: Prompter, *, timeout_s: float = 120.0) -> None:
        self.prompter = prompter
        self.timeout_s = timeout_s
        self._flows: Dict[Tuple[str, FlowCategory], PendingFlow] = {}
        self._locks = UserLocks()
        self._text_handlers: Dict[FlowCategory, TextHandler] = {}
        self._action_handlers: Dict[FlowCategory, ActionHandler] = {}

    def register(
        self,
        category: FlowCategory,
        *,
        on_text: Optional[TextHandler] = None,
        on_action: Optional[ActionHandler] = None,
    ) -> None:
        if on_text is not None:
            self._text_handlers[category] = on_text
        if on_action is not None:
            self._action_handlers[category] = on_action

    def lock(self, user_id: str) -> AsyncContextManager[None]:
        return self._locks.hold(user_id)

    # ------------------------------------------------------------ state access

    def get(self, user_id: str, category: FlowCategory) -> Optional[PendingFlow]:
        return self._flows.get((user_id, category))

    def active(self, user_id: str) -> List[FlowCategory]:
        return [category for (uid, category) in self._flows if uid == user_id]

    def open(
        self,
        user_id: str,
        category: FlowCategory,
        step: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PendingFlow:
        """Create or replace a flow without taking the user lock.

        Safe from inside a handler, which already holds the lock. Anything
        else should call ``start``.
        """
        previous = self._flows.pop((user_id, category), None)
        if previous is not None:
            previous.cancel_timer()
            logger.debug("Replacing %s flow for user %s", category.value, user_id)

        flow = PendingFlow(user_id=user_id, category=category, step=step, data=dict(data or {}))
        self._flows[flow.key] = flow
        self._arm(flow)
        return flow

    async def start(
        self,
        user_id: str,
        category: FlowCategory,
        step: str,
        data: Optional[Dict[str, Any]] = None,
        *,
        prompt: Optional[str] = None,
        actions: Optional[Sequence[Action]] = None,
    ) -> PendingFlow:
        async with self.lock(user_id):
            flow = self.open(user_id, category, step, data)
            if prompt:
                await self.prompter.send_message(user_id, prompt, actions)
            return flow

    def advance(self, flow: PendingFlow, step: str, **data: Any) -> PendingFlow:
        """Move a flow to ``step`` and restart its expiry window."""
        flow.step = step
        flow.data.update(data)
        if self._flows.get(flow.key) is flow:
            self._arm(flow)
        return flow

    def finish(self, flow: PendingFlow) -> None:
        flow.cancel_timer()
        if self._flows.get(flow.key) is flow:
            del self._flows[flow.key]

    async def cancel(self, user_id: str, category: FlowCategory) -> bool:
        async with self.lock(user_id):
            return self._drop(user_id, category)

    async def cancel_all(self, user_id: str) -> List[FlowCategory]:
        """Tear down every pending flow for ``user_id``. Returns what was cancelled."""
        async with self.lock(user_id):
            cancelled = [category for category in list(FlowCategory) if self._drop(user_id, category)]
        if cancelled:
            logger.info("Cancelled flows %s for user %s", [c.value for c in cancelled], user_id)
        return cancelled

    def _drop(self, user_id: str, category: FlowCategory) -> bool:
        flow = self._flows.pop((user_id, category), None)
        if flow is None:
            return False
        flow.cancel_timer()
        return True

    # ------------------------------------------------------------------ timers

    def _arm(self, flow: PendingFlow) -> None:
        flow.cancel_timer()
        loop = asyncio.get_running_loop()
        flow.timer = loop.call_later(self.timeout_s, self._expire, flow)

    def _expire(self, flow: PendingFlow) -> None:
        # A replaced flow's timer was cancelled, but guard on identity anyway
        if self._flows.get(flow.key) is flow:
            del self._flows[flow.key]
            flow.timer = None
            logger.info("Flow %s/%s expired for user %s", flow.category.value, flow.step, flow.user_id)

    # ---------------------------------------------------------------- dispatch

    async def handle_text(self, user_id: str, text: str) -> bool:
        """Route a free-text reply. Returns False when no flow claimed it."""
        async with self.lock(user_id):
            for category in TEXT_PRECEDENCE:
                flow = self._flows.get((user_id, category))
                handler = self._text_handlers.get(category)
                if flow is None or handler is None:
                    continue
                flow.cancel_timer()
                await self._run(flow, handler, text)
                return True
        return False

    async def handle_action(self, user_id: str, data: str) -> bool:
        """Route a button callback. Returns False when its flow is gone."""
        parsed = parse_action(data)
        if parsed is None:
            return False
        category, verb = parsed

        async with self.lock(user_id):
            flow = self._flows.get((user_id, category))
            if flow is None:
                return False
            flow.cancel_timer()
            if verb == "cancel":
                self.finish(flow)
                await self.prompter.send_message(user_id, CANCELLED)
                return True
            handler = self._action_handlers.get(category)
            if handler is None:
                self._arm(flow)
                return False
            await self._run(flow, handler, verb)
            return True

    async def _run(
        self,
        flow: PendingFlow,
        handler: Callable[[PendingFlow, str], Awaitable[FlowOutcome]],
        value: str,
    ) -> None:
        try:
            outcome = await handler(flow, value)
        except TradeError as exc:
            await self.prompter.send_message(flow.user_id, exc.user_message)
            outcome = FlowOutcome.RETRY
        except Exception:
            logger.exception("Flow %s/%s crashed for user %s", flow.category.value, flow.step, flow.user_id)
            self.finish(flow)
            await self.prompter.send_message(flow.user_id, GENERIC_FAILURE)
            return

        if outcome is FlowOutcome.DONE:
            self.finish(flow)
        elif self._flows.get(flow.key) is flow:
            self._arm(flow)
