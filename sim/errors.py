#!/usr/bin/env python3
"""
sim/errors.py
=============
Operator-facing error taxonomy.

Each error carries an enum ``kind`` so the presentation layer can pick a
message (or an HTTP status) without parsing text.  None of these is fatal:
the worst outcome is a disconnected session, recovered by reconnecting.
"""

from __future__ import annotations

from enum import Enum


class ConsoleError(Exception):
    """Base class for every error a session command can raise."""

    def __init__(self, kind: Enum, message: str = "") -> None:
        self.kind = kind
        super().__init__(message or kind.value)


class ConnectErrorKind(Enum):
    MISSING_CONFIG = "missing_config"
    INVALID_ENGINE_PATH = "invalid_engine_path"
    NETWORK_FILE_MISSING = "network_file_missing"
    HANDSHAKE_FAILED = "handshake_failed"
    ALREADY_CONNECTED = "already_connected"


class ConnectError(ConsoleError):
    pass


class StepErrorKind(Enum):
    NOT_CONNECTED = "not_connected"
    ENGINE_UNREACHABLE = "engine_unreachable"
    STEP_FAILED = "step_failed"


class StepError(ConsoleError):
    pass


class ResetErrorKind(Enum):
    NOT_CONNECTED = "not_connected"
    RELAUNCH_FAILED = "relaunch_failed"


class ResetError(ConsoleError):
    pass


class EditErrorKind(Enum):
    NOT_CONNECTED = "not_connected"
    UNKNOWN_CONTROLLER = "unknown_controller"
    NO_CONTROLLER_SELECTED = "no_controller_selected"
    NO_PHASE_SELECTED = "no_phase_selected"
    PHASE_OUT_OF_RANGE = "phase_out_of_range"
    NO_MODE_SELECTED = "no_mode_selected"
    NOT_CUSTOM_MODE = "not_custom_mode"
    INVALID_COLOR = "invalid_color"
    INVALID_DURATION = "invalid_duration"
    LAST_PHASE = "last_phase"
    NO_PROGRAM = "no_program"
    STALE_PROGRAM = "stale_program"
    ENGINE_REJECTED = "engine_rejected"


class EditError(ConsoleError):
    pass


class InjectErrorKind(Enum):
    NOT_CONNECTED = "not_connected"
    ENGINE_UNREACHABLE = "engine_unreachable"
    INVALID_ARGUMENT = "invalid_argument"
    ENGINE_REJECTED = "engine_rejected"


class InjectError(ConsoleError):
    pass


class ExportErrorKind(Enum):
    NO_DATA = "no_data"
    WRITE_FAILED = "write_failed"


class ExportError(ConsoleError):
    pass


class AggregationWarning(UserWarning):
    """Category for single-entity read failures; logged, never raised."""
