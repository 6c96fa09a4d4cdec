"""
Publish/subscribe notifications between components.

Each topic declares the payload keys it carries. The syllabus pipeline only
emits (pool:updated); the grade tracking side emits the subject/absence topics.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping


logger = logging.getLogger(__name__)

Listener = Callable[[Mapping[str, Any]], None]

TOPICS: Dict[str, tuple] = {
    "subject:added": ("subject_id",),
    "subject:updated": ("subject_id",),
    "subject:deleted": ("subject_id",),
    "absence:added": ("subject_id", "absences"),
    "config:updated": (),
    "pool:updated": ("institution_id", "department_id", "count"),
}


def _check_topic(topic: str) -> None:
    if topic not in TOPICS:
        raise ValueError(f"Unknown event topic: {topic!r}")


class EventBus:
    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, topic: str, listener: Listener) -> Callable[[], None]:
        """
        Subscribe and return an unsubscribe function.
        """
        _check_topic(topic)
        self._listeners[topic].append(listener)
        return lambda: self.off(topic, listener)

    def off(self, topic: str, listener: Listener) -> None:
        listeners = self._listeners.get(topic, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, topic: str, payload: Mapping[str, Any]) -> None:
        _check_topic(topic)
        missing = [k for k in TOPICS[topic] if k not in payload]
        if missing:
            raise ValueError(f"Payload for {topic!r} is missing keys: {', '.join(missing)}")

        for listener in list(self._listeners.get(topic, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s raised", topic)
