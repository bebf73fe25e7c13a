"""Per-owner record of which budget alerts already fired, and on which day.

The history document looks like::

    {"2024-07": {"Groceries-warning": "2024-07-15",
                 "Groceries-exceeded": "2024-07-20"}}

It is stored as JSON under one key per owner, so accounts sharing an
installation never suppress each other's alerts.
"""

from __future__ import annotations

import json
import logging
from typing import Dict

logger = logging.getLogger(__name__)

HistoryMap = Dict[str, Dict[str, str]]

HISTORY_KEY_PREFIX = "@notificationHistory"


def history_key(owner_id: str) -> str:
    return f"{HISTORY_KEY_PREFIX}/{owner_id}"


def entry_key(category: str, kind: str) -> str:
    return f"{category}-{kind}"


def was_notified_today(history: HistoryMap, month_year: str, category: str, kind: str, today: str) -> bool:
    return history.get(month_year, {}).get(entry_key(category, kind)) == today


def record_notified(history: HistoryMap, month_year: str, category: str, kind: str, today: str) -> HistoryMap:
    """Return a copy of ``history`` with the entry set to ``today``."""
    updated = {month: dict(entries) for month, entries in history.items()}
    updated.setdefault(month_year, {})[entry_key(category, kind)] = today
    return updated


def _clean(data) -> HistoryMap:
    if not isinstance(data, dict):
        raise ValueError("history document is not an object")
    return {
        month: {k: v for k, v in entries.items() if isinstance(v, str)}
        for month, entries in data.items()
        if isinstance(entries, dict)
    }


class NotificationHistoryStore:

    def __init__(self, kv):
        self.kv = kv

    async def load(self, owner_id: str) -> HistoryMap:
        raw = await self.kv.get(history_key(owner_id))
        if not raw:
            return {}
        try:
            return _clean(json.loads(raw))
        except ValueError as exc:
            # JSONDecodeError is a ValueError too
            logger.warning("Notification history for %s is corrupt, starting fresh: %s", owner_id, exc)
            return {}

    async def save(self, owner_id: str, history: HistoryMap) -> None:
        await self.kv.set(history_key(owner_id), json.dumps(history, sort_keys=True))
