"""Outbound notification channel for agent events."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

WAKE_DETECTED = "wake-detected"
STATE_CHANGED = "state-changed"
ERROR = "error"
COMMAND_TRANSCRIBED = "command-transcribed"
TURN_RESULT = "turn-result"
SPEAK = "speak"

# Subscribing to this name receives every event as (name, payload).
ALL = "*"

EventCallback = Callable[[Dict[str, Any]], None]


class EventHub:
    """Explicit subscriber list. Callbacks run on the publishing thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, name: str, callback: Callable) -> None:
        with self._lock:
            self._subscribers.setdefault(name, []).append(callback)

    def unsubscribe(self, name: str, callback: Callable) -> None:
        with self._lock:
            if name in self._subscribers:
                self._subscribers[name] = [
                    cb for cb in self._subscribers[name] if cb != callback
                ]

    def send_event(self, name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            named = list(self._subscribers.get(name, []))
            wildcard = list(self._subscribers.get(ALL, []))
        for cb in named:
            try:
                cb(payload)
            except Exception as exc:
                logger.error("Event callback error [%s]: %s", name, exc)
        for cb in wildcard:
            try:
                cb(name, payload)
            except Exception as exc:
                logger.error("Event callback error [%s]: %s", name, exc)
