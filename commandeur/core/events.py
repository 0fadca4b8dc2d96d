# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger("commandeur.events")


class EventType(Enum):
    WORKFLOW_START = "workflow_start"
    WORKFLOW_END = "workflow_end"
    LOG_ENTRY = "log_entry"
    VALIDATION = "validation"
    PROGRESS = "progress"
    STATUS_CHANGED = "status_changed"


class Event:
    def __init__(self, type: EventType, data: Dict[str, Any]):
        self.type = type
        self.data = data

    def __repr__(self):
        return f"Event({self.type.value}, {self.data!r})"


class EventBus:
    """
    Synchronous publish/subscribe hub.

    Delivery is fire-and-forget: a failing subscriber is logged and the
    remaining subscribers still receive the event.
    """

    def __init__(self):
        self._subscribers: Dict[EventType, List[Callable[[Event], Any]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: Callable[[Event], Any]):
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(callback)

    def subscribe_all(self, callback: Callable[[Event], Any]):
        for event_type in EventType:
            self.subscribe(event_type, callback)

    def unsubscribe(self, event_type: EventType, callback: Callable[[Event], Any]):
        with self._lock:
            callbacks = self._subscribers.get(event_type, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def emit(self, event: Event):
        with self._lock:
            callbacks = list(self._subscribers.get(event.type, []))
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed for {event.type.value}: {e}")
