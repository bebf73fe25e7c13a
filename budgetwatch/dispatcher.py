"""Delivery of budget alerts to the user.

The notifier is the platform notification surface and is async::

    async def has_permission() -> bool
    async def request_permission() -> bool
    async def notify_now(title: str, body: str) -> None

The fallback is a blocking, in-app alert: ``show_alert(title, body)``.
An alert that fails on the notifier always goes to the fallback, so no
alert is lost.
"""

from __future__ import annotations

import asyncio
import logging

from budgetwatch.domain import AlertRequest

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


async def register(notifier, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Make sure notifications are allowed, asking the user if needed."""
    try:
        if await asyncio.wait_for(notifier.has_permission(), timeout):
            return True
        granted = await asyncio.wait_for(notifier.request_permission(), timeout)
    except Exception:
        logger.exception("Error setting up notifications")
        return False
    if not granted:
        logger.info("Notification permissions not granted")
    return bool(granted)


class AlertDispatcher:

    def __init__(self, notifier, fallback, timeout: float = DEFAULT_TIMEOUT):
        self.notifier = notifier
        self.fallback = fallback
        self.timeout = timeout

    async def dispatch(self, alert: AlertRequest) -> bool:
        """Deliver ``alert``; True if it went out as a notification, False if
        the fallback alert was used."""
        try:
            allowed = await asyncio.wait_for(self.notifier.has_permission(), self.timeout)
            if allowed:
                await asyncio.wait_for(self.notifier.notify_now(alert.title, alert.body), self.timeout)
                logger.info("Notification sent: %s", alert.title)
                return True
            logger.info("No notification permission, showing alert instead: %s", alert.title)
        except Exception:
            logger.exception("Error sending notification %r, falling back to alert", alert.title)

        self.fallback.show_alert(alert.title, alert.body)
        return False
