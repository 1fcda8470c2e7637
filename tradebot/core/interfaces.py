"""
Transport-facing interfaces consumed by the trading core.

The core never imports a chat SDK or socket library. Transports implement
these narrow interfaces and are injected at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence


@dataclass(frozen=True)
class Action:
    """An inline button offered alongside a prompt."""

    label: str
    data: str


class Prompter(ABC):
    """Sends prompts to an end user and edits previously sent ones."""

    @abstractmethod
    async def send_message(
        self,
        user_id: str,
        text: str,
        actions: Optional[Sequence[Action]] = None,
    ) -> Optional[str]:
        """Send a message; returns a transport message id when available."""

    @abstractmethod
    async def edit_message(self, user_id: str, message_id: str, text: str) -> None:
        pass

    async def request_confirmation(
        self,
        user_id: str,
        text: str,
        confirm: Action,
        cancel: Action,
    ) -> Optional[str]:
        return await self.send_message(user_id, text, [confirm, cancel])


class Notifier(ABC):
    """Out-of-band notifications (alerts, trade results) to a user."""

    @abstractmethod
    async def notify(self, user_id: str, text: str) -> None:
        pass


class EventBroadcaster(ABC):
    """Publishes state changes to dashboards and other subscribers."""

    @abstractmethod
    async def publish(self, event: str, payload: Dict[str, Any]) -> None:
        pass


class NullBroadcaster(EventBroadcaster):
    async def publish(self, event: str, payload: Dict[str, Any]) -> None:
        return None


class NullNotifier(Notifier):
    async def notify(self, user_id: str, text: str) -> None:
        return None
