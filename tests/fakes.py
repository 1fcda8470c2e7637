"""
In-memory transport doubles shared by the test modules.
"""

from typing import Any, Dict, List, Optional, Sequence

from tradebot.core.interfaces import Action, Notifier, Prompter


class RecordingPrompter(Prompter, Notifier):
    """Keeps every message it is asked to send, in order."""

    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []

    async def send_message(
        self,
        user_id: str,
        text: str,
        actions: Optional[Sequence[Action]] = None,
    ) -> Optional[str]:
        message_id = str(len(self.messages) + 1)
        self.messages.append(
            {"id": message_id, "user_id": user_id, "text": text, "actions": list(actions or [])}
        )
        return message_id

    async def edit_message(self, user_id: str, message_id: str, text: str) -> None:
        for message in self.messages:
            if message["id"] == message_id:
                message["text"] = text
                message["actions"] = []
                return

    async def notify(self, user_id: str, text: str) -> None:
        await self.send_message(user_id, text)

    def texts(self, user_id: Optional[str] = None) -> List[str]:
        return [m["text"] for m in self.messages if user_id is None or m["user_id"] == user_id]
