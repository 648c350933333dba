"""
Transport-level errors raised by every :class:`~engine.base.EngineClient`.
"""

from __future__ import annotations

from enum import Enum


class TransportErrorKind(Enum):
    """What went wrong at the transport boundary."""

    CONNECTION_LOST = "connection_lost"
    """The socket to the engine is gone; the session must be considered closed."""

    CALL_FAILED = "call_failed"
    """The engine answered but rejected the request (unknown id, bad value …)."""


class TransportError(Exception):
    """A classified engine-call failure.

    Attributes:
        kind (TransportErrorKind): Classification decided by the adapter.
        operation (str): Name of the engine call that failed.
    """

    def __init__(self, kind: TransportErrorKind, operation: str, message: str = ""):
        self.kind = kind
        self.operation = operation
        super().__init__(f"{operation}: {message}" if message else operation)

    @property
    def connection_lost(self) -> bool:
        return self.kind is TransportErrorKind.CONNECTION_LOST
