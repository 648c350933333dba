"""
SessionEvent: one notification published by the session on the EventBus.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

# Topics published by :class:`sim.session.SimulationSession`.
TOPIC_STATUS = "session.status"
TOPIC_SNAPSHOT = "session.snapshot"
TOPIC_ERROR = "session.error"
TOPIC_VIEW = "session.view"
TOPIC_SIGNALS = "session.signals"


@dataclass
class SessionEvent:
    """
    A single event queued on the EventBus.

    Attributes:
        id (str): Unique identifier for the event.
        topic (str): Topic name (e.g. 'session.snapshot', 'session.error').
        sender (str): Component that published it (e.g. 'session', 'registry').
        payload (dict): Event contents; values are immutable model objects or plain data.
        ts (float): Wall-clock timestamp (seconds) when the event was published.
    """
    id: str
    topic: str
    sender: str
    payload: Dict[str, Any] = field(default_factory=dict)
    ts: float = 0.0
