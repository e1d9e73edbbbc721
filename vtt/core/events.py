"""
Typed event bus for decoupled communication.

Event types are Enum members, so subscribers and publishers never agree on
magic strings.

Usage:
    bus = EventBus()
    bus.subscribe(SessionEvent.MAP_CHANGED, on_map_changed)
    bus.publish(SessionEvent.MAP_CHANGED, handle=3)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable
from weakref import WeakMethod, ref

logger = logging.getLogger(__name__)


class SessionEvent(Enum):
    """Events raised by session commands."""
    MAP_CHANGED = auto()
    GRID_CALIBRATED = auto()
    TOKEN_ADDED = auto()
    TOKEN_REMOVED = auto()
    DRAWINGS_CHANGED = auto()
    VIEWS_SYNC_TOGGLED = auto()


@dataclass
class Event:
    """
    Event data container.

    Attributes:
        type: The event type (Enum member)
        data: Keyword data passed to publish()
        consumed: Whether a handler stopped propagation
    """
    type: Enum
    data: dict[str, Any] = field(default_factory=dict)
    consumed: bool = False

    def consume(self) -> None:
        """Stop propagation to lower-priority handlers."""
        self.consumed = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Publish/subscribe hub.

    Handlers run in descending priority. Weakly held handlers disappear
    when their owner is collected; one-shot handlers are dropped after
    their first call. Events published from inside a handler are queued
    and dispatched after the current event finishes.
    """

    def __init__(self):
        # event type -> [(priority, handler_ref, one_shot)]
        self._handlers: dict[Enum, list[tuple[int, Any, bool]]] = {}
        self._queue: list[Event] = []
        self._dispatching = False

    def subscribe(
        self,
        event_type: Enum,
        handler: EventHandler,
        priority: int = 0,
        one_shot: bool = False,
        weak: bool = True,
    ) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to listen for
            handler: Callback receiving the Event
            priority: Higher priority handlers are called first
            one_shot: Remove the handler after its first call
            weak: Hold the handler through a weak reference
        """
        if weak:
            handler_ref = WeakMethod(handler) if hasattr(handler, '__self__') else ref(handler)
        else:
            handler_ref = handler

        handlers = self._handlers.setdefault(event_type, [])
        index = len(handlers)
        for i, (p, _, _) in enumerate(handlers):
            if priority > p:
                index = i
                break
        handlers.insert(index, (priority, handler_ref, one_shot))

    def unsubscribe(self, event_type: Enum, handler: EventHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        self._handlers[event_type] = [
            entry for entry in handlers if self._resolve(entry[1]) != handler
        ]

    def publish(self, event_type: Enum, **data: Any) -> Event:
        """
        Publish an event.

        Returns:
            The Event object (check .consumed to see if it was handled)
        """
        event = Event(type=event_type, data=data)
        if self._dispatching:
            self._queue.append(event)
        else:
            self._dispatch(event)
        return event

    def clear(self, event_type: Enum | None = None) -> None:
        """Drop handlers for one event type, or all of them."""
        if event_type is None:
            self._handlers.clear()
        else:
            self._handlers.pop(event_type, None)

    def _dispatch(self, event: Event) -> None:
        handlers = self._handlers.get(event.type)
        if not handlers:
            return

        self._dispatching = True
        stale = []
        try:
            # Handlers may subscribe or unsubscribe while this loop runs
            for entry in list(handlers):
                _, handler_ref, one_shot = entry
                handler = self._resolve(handler_ref)
                if handler is None:
                    stale.append(entry)
                    continue

                try:
                    handler(event)
                except Exception:
                    logger.exception(f"Error in event handler for {event.type}")

                if one_shot:
                    stale.append(entry)
                if event.consumed:
                    break

            if stale:
                current = self._handlers.get(event.type, [])
                self._handlers[event.type] = [
                    e for e in current if not any(e is s for s in stale)
                ]
        finally:
            self._dispatching = False

        while self._queue:
            self._dispatch(self._queue.pop(0))

    @staticmethod
    def _resolve(handler_ref: Any) -> EventHandler | None:
        if isinstance(handler_ref, (ref, WeakMethod)):
            return handler_ref()
        return handler_ref
