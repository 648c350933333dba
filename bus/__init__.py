"""
bus — In-memory event fan-out between the session and its presentation
=====================================================================

Background threads publish; the presentation thread drains and delivers,
so all subscriber code runs single-threaded.

Modules
-------
message
    :class:`SessionEvent` dataclass and topic names.
event_bus
    :class:`EventBus` publish / subscribe / dispatch transport.
metrics
    :class:`BusMetrics` counter snapshot.
utils
    ID generation.
"""

from .message import (
    SessionEvent,
    TOPIC_ERROR,
    TOPIC_SIGNALS,
    TOPIC_SNAPSHOT,
    TOPIC_STATUS,
    TOPIC_VIEW,
)
from .event_bus import EventBus
from .metrics import BusMetrics
from .utils import new_msg_id

__all__ = [
    "SessionEvent",
    "EventBus",
    "BusMetrics",
    "new_msg_id",
    "TOPIC_ERROR",
    "TOPIC_SIGNALS",
    "TOPIC_SNAPSHOT",
    "TOPIC_STATUS",
    "TOPIC_VIEW",
]
