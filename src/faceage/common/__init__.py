"""Common utilities for faceage."""

from faceage.common.logging import get_logger, setup_logging
from faceage.common.events import Event, EventBus, get_event_bus, reset_event_bus

__all__ = [
    "get_logger",
    "setup_logging",
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
]
