"""In-process event bus for analysis results."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from faceage.common.logging import get_logger


@dataclass
class Event:
    """Event message."""

    topic: str
    data: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Pub/sub bus used to hand analysis results to presentation and storage layers.

    Topics are dot separated. A subscription topic may use ``*`` to match
    exactly one segment, e.g. ``analysis.*``.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._wildcard_subscribers: list[tuple[str, EventHandler]] = []
        self._history: list[Event] = []
        self._history_limit = history_limit
        self.logger = get_logger("event_bus")

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers.

        Handler exceptions are logged and do not reach the publisher.
        """
        self.logger.debug(
            "publishing_event",
            topic=event.topic,
            event_id=event.event_id,
            source=event.source,
        )

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        handlers = self._subscribers.get(event.topic, []).copy()
        for pattern, handler in self._wildcard_subscribers:
            if self._matches_pattern(event.topic, pattern):
                handlers.append(handler)

        if handlers:
            await asyncio.gather(
                *[self._safe_dispatch(handler, event) for handler in handlers]
            )

    async def _safe_dispatch(self, handler: EventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as e:
            self.logger.exception(
                "event_handler_error",
                topic=event.topic,
                event_id=event.event_id,
                error=str(e),
            )

    @staticmethod
    def _matches_pattern(topic: str, pattern: str) -> bool:
        topic_parts = topic.split(".")
        pattern_parts = pattern.split(".")
        if len(topic_parts) != len(pattern_parts):
            return False
        return all(p == "*" or p == t for t, p in zip(topic_parts, pattern_parts))

    def subscribe(self, topic: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to a topic.

        Args:
            topic: Topic to subscribe to. Supports ``*`` segments.
            handler: Async function to handle events.

        Returns:
            Function that removes the subscription.
        """
        if "*" in topic:
            self._wildcard_subscribers.append((topic, handler))

            def unsubscribe() -> None:
                self._wildcard_subscribers.remove((topic, handler))

        else:
            self._subscribers.setdefault(topic, []).append(handler)

            def unsubscribe() -> None:
                if topic in self._subscribers:
                    self._subscribers[topic].remove(handler)

        self.logger.debug("subscribed", topic=topic)
        return unsubscribe

    def get_history(self, topic: str | None = None, limit: int = 100) -> list[Event]:
        """Get event history, newest first."""
        events = self._history.copy()
        if topic:
            events = [e for e in events if e.topic == topic]
        return list(reversed(events[-limit:]))

    def clear_history(self) -> None:
        """Clear event history."""
        self._history.clear()


_global_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _global_bus
    if _global_bus is None:
        _global_bus = EventBus()
    return _global_bus


def reset_event_bus() -> None:
    """Reset the global event bus (for testing)."""
    global _global_bus
    _global_bus = None
