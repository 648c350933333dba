"""
EventBus: thread-safe publish, single-threaded delivery.

Background threads (connect worker, continuous-mode timer) publish
session events; the presentation thread drains them with
:meth:`EventBus.dispatch_pending` once per frame, so every subscriber
runs on that one thread and never observes a half-applied update.

Intended usage:
    - The session publishes 'session.snapshot' after every step
    - The UI subscribes to the topics it renders and calls dispatch_pending() each frame
    - Headless callers may poll(topic) instead of subscribing
"""

import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from .message import SessionEvent
from .metrics import BusMetrics
from .utils import new_msg_id

log = logging.getLogger("bus")

Handler = Callable[[SessionEvent], Any]


class EventBus:
    """
    Queue of :class:`SessionEvent` with topic subscriptions.

    Attributes:
        max_pending (int): Oldest events are discarded once this many are queued.
        metrics (BusMetrics): Traffic counters.
    """

    def __init__(self, max_pending: int = 1000):
        """
        Initialize an EventBus instance.

        Args:
            max_pending (int): Upper bound on undelivered events.
        """
        self.max_pending = max_pending
        self.metrics = BusMetrics()
        self._lock = threading.Lock()
        self._pending: Deque[SessionEvent] = deque()
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> None:
        """
        Register *handler* for *topic*; '*' receives every topic.

        Args:
            topic (str): Topic name or '*'.
            handler (callable): Called with the event on the dispatching thread.
        """
        with self._lock:
            self._handlers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, topic: str, sender: str, payload: Optional[dict] = None) -> str:
        """
        Queue an event.  Safe to call from any thread.

        Args:
            topic (str): Topic name.
            sender (str): Publishing component.
            payload (dict): Event contents.

        Returns:
            str: The unique event ID.
        """
        event = SessionEvent(
            id=new_msg_id(),
            topic=topic,
            sender=sender,
            payload=dict(payload or {}),
            ts=time.time(),
        )
        with self._lock:
            if len(self._pending) >= self.max_pending:
                dropped = self._pending.popleft()
                self.metrics.dropped += 1
                log.warning("event_dropped topic=%s id=%s", dropped.topic, dropped.id)
            self._pending.append(event)
            self.metrics.published += 1
        log.debug("publish topic=%s sender=%s id=%s", topic, sender, event.id)
        return event.id

    def poll(self, topic: str) -> List[SessionEvent]:
        """
        Remove and return every queued event of *topic*, oldest first.

        Args:
            topic (str): The topic name to poll.

        Returns:
            List[SessionEvent]: Events published since the last poll/dispatch.
        """
        with self._lock:
            matched = [e for e in self._pending if e.topic == topic]
            if matched:
                self._pending = deque(e for e in self._pending if e.topic != topic)
        return matched

    def dispatch_pending(self) -> int:
        """
        Deliver every queued event to its subscribers on the calling thread.

        A failing handler is logged and counted; the remaining handlers
        still run.

        Returns:
            int: Number of events drained.
        """
        with self._lock:
            events = list(self._pending)
            self._pending.clear()
            handlers = {topic: list(hs) for topic, hs in self._handlers.items()}

        for event in events:
            for handler in handlers.get(event.topic, []) + handlers.get("*", []):
                try:
                    handler(event)
                    self.metrics.delivered += 1
                except Exception:
                    self.metrics.handler_errors += 1
                    log.exception("handler failed topic=%s id=%s", event.topic, event.id)
        return len(events)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)
