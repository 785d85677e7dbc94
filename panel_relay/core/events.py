"""
core/events.py — Local publish/subscribe bus used inside each client.

Topics are namespaced strings ("panel:created", "remote:panelsRebuilt").
Listeners may be plain functions or coroutines; a failing listener is logged
and never stops delivery to the others.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

log = logging.getLogger(__name__)

Listener = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, topic: str, listener: Listener) -> Listener:
        self._listeners[topic].append(listener)
        return listener

    def off(self, topic: str, listener: Listener) -> None:
        self._listeners[topic] = [cb for cb in self._listeners[topic] if cb is not listener]

    async def emit(self, topic: str, data: Any = None) -> int:
        """Deliver data to every listener of topic. Returns the listener count."""
        listeners = list(self._listeners.get(topic, ()))
        for cb in listeners:
            try:
                result = cb(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(f"Listener error on '{topic}': {e}")
        return len(listeners)

    def listener_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, ()))
