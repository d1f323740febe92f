"""Typed publish/subscribe for editor and menu signals.

Connectors publish; the controller subscribes for the lifetime of a session
and tears its subscriptions down on stop. Handlers are awaited in
subscription order. A failing handler is logged and does not stop the others.
"""

from __future__ import annotations

import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], "Awaitable[None] | None"]


class EditorEvent(enum.Enum):
    MODEL_UPDATED = "model-updated"
    MENU_NEW_DIAGRAM = "menu-new-diagram"
    MENU_OPEN_FILE = "menu-open-file"
    MENU_SAVE_FILE = "menu-save-file"


class Subscription:
    """Handle returned by EventBus.subscribe(); usable as a context manager."""

    def __init__(self, bus: EventBus, event: EditorEvent, handler: EventHandler) -> None:
        self._bus = bus
        self.event = event
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._bus._remove(self)
            self.active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class EventBus:
    """Event channels keyed by EditorEvent."""

    def __init__(self) -> None:
        self._subscriptions: dict[EditorEvent, list[Subscription]] = {}

    def subscribe(self, event: EditorEvent, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, event, handler)
        self._subscriptions.setdefault(event, []).append(subscription)
        logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), event.value)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.event, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscriptions.pop(subscription.event, None)

    def subscriber_count(self, event: EditorEvent) -> int:
        return len(self._subscriptions.get(event, []))

    async def publish(self, event: EditorEvent, payload: Any = None) -> int:
        """Deliver ``payload`` to every subscriber. Returns the number of handlers run."""
        subscriptions = list(self._subscriptions.get(event, []))
        if not subscriptions:
            logger.debug("Published %s with no subscribers", event.value)
            return 0
        for subscription in subscriptions:
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Handler for %s failed: %s", event.value, e)
        return len(subscriptions)
