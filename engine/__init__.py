"""
engine — Transport boundary to the traffic simulation engine
============================================================

Everything the console knows about the remote simulator goes through
:class:`EngineClient`.  Transport faults are classified here, once, into
:class:`TransportError` kinds so the rest of the code never inspects
error messages.

Modules
-------
base
    :class:`EngineClient` abstract RPC surface.
errors
    :class:`TransportError` and :class:`TransportErrorKind`.
traci_engine
    :class:`TraciEngine` adapter over a labelled ``traci`` connection.
fake
    :class:`FakeEngine` in-memory world for demo mode and tests.
"""

from .base import EngineClient
from .errors import TransportError, TransportErrorKind
from .fake import FakeEngine, demo_world
from .traci_engine import TraciEngine

__all__ = [
    "EngineClient",
    "TransportError",
    "TransportErrorKind",
    "FakeEngine",
    "demo_world",
    "TraciEngine",
]
