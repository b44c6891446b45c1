from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Protocol

logger = logging.getLogger(__name__)

ROUND_STARTED = "round:started"
ROUND_QR_UPDATED = "round:qr-updated"
SESSION_ENDED = "session:ended"

Subscriber = Callable[[str, Dict[str, Any]], None]


class EventPublisher(Protocol):
    """Opaque fan-out sink keyed by session id (push transport lives elsewhere)."""

    def publish(self, session_id: int, event: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class SessionEventHub(EventPublisher):
    """In-process fan-out: each session id has its own set of subscribers.

    The websocket/push layer subscribes one callback per connected client.
    A failing subscriber is logged and skipped so one broken client cannot
    stop delivery to the others, nor fail the scan that triggered the event.
    """

    def __init__(self):
        self._channels: Dict[int, List[Subscriber]] = {}
        self._lock = threading.Lock()

    def subscribe(self, session_id: int, subscriber: Subscriber) -> None:
        with self._lock:
            self._channels.setdefault(int(session_id), []).append(subscriber)

    def unsubscribe(self, session_id: int, subscriber: Subscriber) -> None:
        with self._lock:
            channel = self._channels.get(int(session_id))
            if not channel:
                return
            if subscriber in channel:
                channel.remove(subscriber)
            if not channel:
                del self._channels[int(session_id)]

    def subscriber_count(self, session_id: int) -> int:
        with self._lock:
            return len(self._channels.get(int(session_id), []))

    def publish(self, session_id: int, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._channels.get(int(session_id), []))

        for subscriber in subscribers:
            try:
                subscriber(event, payload)
            except Exception:
                logger.exception("event subscriber failed: session=%s event=%s", session_id, event)
