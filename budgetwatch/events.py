import logging
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

__all__ = ['event_bus', 'EXPENSE_SAVED', 'BUDGET_ALERT', 'Event', 'EventBus']

logger = logging.getLogger(__name__)


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def publish(self, name: str, payload: dict) -> List[dict]:
        """Call every handler for ``name`` in subscription order.

        A failing handler is logged and skipped; the others still run.
        """
        if name not in self._subscribers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)

        results = []
        for handler in list(self._subscribers[name]):
            try:
                results.append(handler(event, payload))
            except Exception:
                logger.exception("Handler %s failed for %s", getattr(handler, "__name__", handler), name)
        return results

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, []):
            self._subscribers[name].remove(handler)


EXPENSE_SAVED = "EXPENSE_SAVED"
BUDGET_ALERT = "BUDGET_ALERT"

event_bus = EventBus()


def log_alert_handler(event: Event, payload: dict) -> dict:
    channel = "notification" if payload.get("notified") else "alert"
    logger.info("%s alert for %s delivered via %s", payload.get("kind"), payload.get("category"), channel)
    return {"logged": True}


def register_default_handlers(bus: EventBus = event_bus) -> None:
    bus.subscribe(BUDGET_ALERT, log_alert_handler)


register_default_handlers()
