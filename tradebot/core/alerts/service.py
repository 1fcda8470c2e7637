"""
Price alerts.

Compares the cached USD price on token records with each active alert and
notifies the owner once. Triggered alerts are deactivated, not deleted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from ...db.models import PriceAlertRow
from ...db.repository import Repository
from ..errors import InvalidAmountError
from ..interfaces import Notifier

logger = logging.getLogger(__name__)

DIRECTIONS = ("above", "below")


def should_trigger(direction: str, current: float, target: float) -> bool:
    if direction == "above":
        return current >= target
    if direction == "below":
        return current <= target
    return False


class AlertService:
    def __init__(self, repository: Repository, notifier: Notifier) -> None:
        self.repository = repository
        self.notifier = notifier
        self._task: Optional[asyncio.Task] = None

    async def create_alert(
        self,
        user_id: str,
        token_address: str,
        direction: str,
        target_price: float,
    ) -> PriceAlertRow:
        direction = direction.strip().lower()
        if direction not in DIRECTIONS:
            raise InvalidAmountError("Alert direction must be 'above' or 'below'")
        if target_price <= 0:
            raise InvalidAmountError("Target price must be positive")
        return await self.repository.add_alert(user_id, token_address, direction, target_price)

    async def check_alerts(self) -> List[PriceAlertRow]:
        """One pass over active alerts. Returns the alerts that fired."""
        fired: List[PriceAlertRow] = []
        for alert in await self.repository.active_alerts():
            token = await self.repository.get_token(alert.token_address)
            if token is None or token.price_usd is None:
                continue
            if not should_trigger(alert.direction, token.price_usd, alert.target_price):
                continue

            symbol = token.symbol or alert.token_address
            message = (
                "🚨 PRICE ALERT 🚨\n\n"
                f"{symbol} has gone {alert.direction} your target!\n\n"
                f"Target: ${alert.target_price}\n"
                f"Current: ${token.price_usd:.6f}\n\n"
                "Alert has been triggered and removed."
            )
            try:
                await self.notifier.notify(alert.user_id, message)
            except Exception as exc:
                # Leave it active; the next pass retries delivery
                logger.warning("Failed to deliver alert %s to %s: %r", alert.id, alert.user_id, exc)
                continue

            await self.repository.mark_alert_triggered(alert.id)
            logger.info("Alert %s fired for user %s (%s %s)", alert.id, alert.user_id, symbol, alert.direction)
            fired.append(alert)
        return fired

    # ----------------------------------------------------------- background loop

    async def run(self, interval_s: float) -> None:
        while True:
            try:
                await self.check_alerts()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Alert check failed")
            await asyncio.sleep(interval_s)

    def start(self, interval_s: float) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(interval_s))

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
