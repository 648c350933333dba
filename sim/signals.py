#!/usr/bin/env python3
"""
sim/signals.py
==============
Traffic-signal controllers and the guided phase editor.

The registry is populated once per connection.  Editing one controller's
program walks a small state machine::

    LISTING ─select_controller─▶ CONTROLLER_SELECTED ─select_phase─▶
    PHASE_SELECTED ─enter_mode─▶ EDITING ─commit/abandon─▶ PHASE_SELECTED

Every mutation re-fetches the controller's first program from the engine
before changing it, replaces the affected phase(s), pushes the whole
program back and re-activates it by id.  Nothing is cached across edits.

Concurrent editors are last-write-wins: a commit overwrites whatever an
external client changed since the controller was selected, with a logged
warning.  A registry built with ``strict=True`` refuses such a commit
instead (``EditErrorKind.STALE_PROGRAM``).
"""

from __future__ import annotations

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union

from engine.base import EngineClient
from engine.errors import TransportError
from sim.errors import EditError, EditErrorKind
from sim.models import Phase, ProgramLogic, SignalColor

log = logging.getLogger("signals")


class EditMode(Enum):
    ALL_RED = "all_red"
    ALL_YELLOW = "all_yellow"
    ALL_GREEN = "all_green"
    CUSTOM = "custom"

    @property
    def uniform_color(self) -> Optional[SignalColor]:
        return _UNIFORM.get(self)


_UNIFORM = {
    EditMode.ALL_RED: SignalColor.RED,
    EditMode.ALL_YELLOW: SignalColor.YELLOW,
    EditMode.ALL_GREEN: SignalColor.GREEN,
}


class EditState(Enum):
    LISTING = "listing"
    CONTROLLER_SELECTED = "controller_selected"
    PHASE_SELECTED = "phase_selected"
    EDITING = "editing"


def parse_duration(value: Union[str, float, int]) -> float:
    """Positive, finite seconds or :class:`EditError` ``INVALID_DURATION``."""
    try:
        duration = float(str(value).strip())
    except ValueError:
        raise EditError(EditErrorKind.INVALID_DURATION, f"Not a number: {value!r}") from None
    if not math.isfinite(duration) or duration <= 0:
        raise EditError(EditErrorKind.INVALID_DURATION, f"Duration must be positive: {value!r}")
    return duration


@dataclass
class SignalController:
    """One signal controller as last read from the engine.

    ``controlled_lanes`` keeps the engine's order and duplicates; slot *i*
    of a state string belongs to ``controlled_lanes[i]``.
    """

    id: str
    controlled_lanes: Tuple[str, ...]
    program_id: str = ""
    phases: Tuple[Phase, ...] = ()
    custom_state: Optional[List[str]] = field(default=None, repr=False)

    @property
    def phase_labels(self) -> List[str]:
        return [f"Phase {i}" for i in range(len(self.phases))]

    @property
    def lanes(self) -> List[str]:
        """Controlled lanes without duplicates, first occurrence order."""
        return list(dict.fromkeys(self.controlled_lanes))


class SignalControllerRegistry:
    """Owns every :class:`SignalController` of the current connection.

    Parameters
    ----------
    lock : threading.Lock, optional
        The session's engine lock.  Edit operations take it around their
        engine calls; :meth:`populate` expects the caller to hold it.
    strict : bool
        Reject commits against a program that changed since selection.
    on_connection_lost : callable, optional
        Invoked (without the lock held) when an edit finds the engine gone.
        Receives the generation passed to :meth:`populate`.
    on_program_changed : callable, optional
        Invoked with the controller id after a program was pushed.
    """

    def __init__(
        self,
        lock: Optional[threading.Lock] = None,
        strict: bool = False,
        on_connection_lost: Optional[Callable[[Optional[int]], None]] = None,
        on_program_changed: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._lock = lock or threading.Lock()
        self.strict = strict
        self.on_connection_lost = on_connection_lost
        self.on_program_changed = on_program_changed
        self._engine: Optional[EngineClient] = None
        self._generation: Optional[int] = None
        self._controllers: Dict[str, SignalController] = {}
        self._reset_selection()

    # ── population ────────────────────────────────────────────────────────

    def populate(self, engine: EngineClient, generation: Optional[int] = None) -> int:
        """Read every controller with at least one controlled lane.

        *generation* identifies the connection *engine* belongs to.
        """
        controllers: Dict[str, SignalController] = {}
        for signal_id in engine.signal_ids():
            try:
                lanes = tuple(engine.controlled_lanes(signal_id))
            except TransportError as exc:
                if exc.connection_lost:
                    raise
                log.warning("Skipping traffic light %s: %s", signal_id, exc)
                continue
            if lanes:
                controllers[signal_id] = SignalController(id=signal_id, controlled_lanes=lanes)
        self._engine = engine
        self._generation = generation
        self._controllers = controllers
        self._reset_selection()
        log.info("Loaded %d traffic lights", len(controllers))
        return len(controllers)

    def clear(self) -> None:
        self._engine = None
        self._generation = None
        self._controllers = {}
        self._reset_selection()

    def _reset_selection(self) -> None:
        self._selected: Optional[SignalController] = None
        self._phase_index: Optional[int] = None
        self._mode: Optional[EditMode] = None
        self._pending: Optional[str] = None

    # ── read access ───────────────────────────────────────────────────────

    def ids(self) -> List[str]:
        return list(self._controllers)

    def get(self, signal_id: str) -> Optional[SignalController]:
        return self._controllers.get(signal_id)

    def __len__(self) -> int:
        return len(self._controllers)

    @property
    def state(self) -> EditState:
        if self._selected is None:
            return EditState.LISTING
        if self._phase_index is None:
            return EditState.CONTROLLER_SELECTED
        if self._mode is None:
            return EditState.PHASE_SELECTED
        return EditState.EDITING

    @property
    def selected(self) -> Optional[SignalController]:
        return self._selected

    @property
    def selected_phase(self) -> Optional[int]:
        return self._phase_index

    @property
    def mode(self) -> Optional[EditMode]:
        return self._mode

    @property
    def pending_state(self) -> Optional[str]:
        """State string the next :meth:`commit` would write."""
        if self._mode is EditMode.CUSTOM and self._selected is not None:
            buffer = self._selected.custom_state
            return "".join(buffer) if buffer is not None else None
        return self._pending

    # ── engine access ─────────────────────────────────────────────────────

    @contextmanager
    def _engine_call(self, operation: str) -> Iterator[EngineClient]:
        lost = False
        generation: Optional[int] = None
        try:
            with self._lock:
                engine, generation = self._engine, self._generation
                if engine is None:
                    raise EditError(EditErrorKind.NOT_CONNECTED, "Not connected to SUMO")
                yield engine
        except TransportError as exc:
            if not exc.connection_lost:
                log.error("%s rejected by SUMO: %s", operation, exc)
                raise EditError(EditErrorKind.ENGINE_REJECTED, str(exc)) from exc
            lost = True
            log.error("%s: connection to SUMO lost: %s", operation, exc)
            raise EditError(EditErrorKind.NOT_CONNECTED, str(exc)) from exc
        finally:
            if lost and self.on_connection_lost is not None:
                self.on_connection_lost(generation)

    def _program_changed(self, controller: SignalController, logic: ProgramLogic) -> None:
        controller.program_id = logic.program_id
        controller.phases = logic.phases
        if self.on_program_changed is not None:
            self.on_program_changed(controller.id)

    @staticmethod
    def _first_logic(engine: EngineClient, signal_id: str) -> ProgramLogic:
        logics = engine.get_phases(signal_id)
        if not logics or not logics[0].phases:
            raise EditError(EditErrorKind.NO_PROGRAM, f"Traffic light {signal_id} has no program")
        return logics[0]

    @staticmethod
    def _push(engine: EngineClient, signal_id: str, logic: ProgramLogic) -> None:
        engine.set_phases(signal_id, logic)
        engine.set_program(signal_id, logic.program_id)

    def _require_controller(self) -> SignalController:
        if self._selected is None:
            raise EditError(EditErrorKind.NO_CONTROLLER_SELECTED, "Select a traffic light first")
        return self._selected

    # ── edit state machine ────────────────────────────────────────────────

    def select_controller(self, signal_id: str) -> SignalController:
        """Fetch lanes and the first program of *signal_id* and select it."""
        controller = self._controllers.get(signal_id)
        if controller is None:
            raise EditError(EditErrorKind.UNKNOWN_CONTROLLER, f"Unknown traffic light: {signal_id}")
        with self._engine_call("select_controller") as engine:
            lanes = tuple(engine.controlled_lanes(signal_id))
            logic = self._first_logic(engine, signal_id)
        controller.controlled_lanes = lanes
        controller.program_id = logic.program_id
        controller.phases = logic.phases
        controller.custom_state = None
        self._reset_selection()
        self._selected = controller
        log.info("Selected traffic light %s (%d phases)", signal_id, len(logic.phases))
        return controller

    def select_phase(self, index: int) -> None:
        controller = self._require_controller()
        if not 0 <= index < len(controller.phases):
            raise EditError(
                EditErrorKind.PHASE_OUT_OF_RANGE,
                f"Phase {index} out of range (0..{len(controller.phases) - 1})",
            )
        self.abandon()
        self._phase_index = index

    def enter_mode(self, mode: Union[EditMode, str]) -> str:
        """Prepare the state string for *mode*; returns it.

        Uniform modes repeat one colour over the live state's length.
        ``CUSTOM`` copies the live state into the controller's buffer for
        :meth:`set_lane_color`.
        """
        mode = EditMode(mode)
        controller = self._require_controller()
        if self._phase_index is None:
            raise EditError(EditErrorKind.NO_PHASE_SELECTED, "Select a phase first")
        with self._engine_call("enter_mode") as engine:
            live = engine.signal_state(controller.id)

        color = mode.uniform_color
        if color is None:
            controller.custom_state = list(live)
            self._pending = None
        else:
            controller.custom_state = None
            self._pending = color.char * len(live)
        self._mode = mode
        return self.pending_state or ""

    def set_lane_color(self, lane_id: str, color: Union[SignalColor, str]) -> int:
        """Paint every buffer slot of *lane_id*; returns the number of slots."""
        if self._mode is None:
            raise EditError(EditErrorKind.NO_MODE_SELECTED, "Choose an edit mode first")
        if self._mode is not EditMode.CUSTOM:
            raise EditError(EditErrorKind.NOT_CUSTOM_MODE, "Lane colours are only editable in custom mode")
        if not isinstance(color, SignalColor):
            color = SignalColor.parse(str(color)[:1])
        if color is SignalColor.UNKNOWN:
            raise EditError(EditErrorKind.INVALID_COLOR, "Colour must be red, yellow or green")

        controller = self._require_controller()
        buffer = controller.custom_state
        painted = 0
        for i, lane in enumerate(controller.controlled_lanes[: len(buffer)]):
            if lane == lane_id:
                buffer[i] = color.char
                painted += 1
        if not painted:
            log.warning("Lane %s is not controlled by %s", lane_id, controller.id)
        return painted

    def abandon(self) -> None:
        """Discard the edit buffer; stays on the selected phase."""
        if self._selected is not None:
            self._selected.custom_state = None
        self._mode = None
        self._pending = None

    def commit(self, duration: Union[str, float, int]) -> Phase:
        """Write the pending state and *duration* into the selected phase.

        Validation happens before any engine call, so a rejected commit
        leaves the engine untouched.
        """
        controller = self._require_controller()
        if self._phase_index is None:
            raise EditError(EditErrorKind.NO_PHASE_SELECTED, "Select a phase first")
        if self._mode is None:
            raise EditError(EditErrorKind.NO_MODE_SELECTED, "Choose an edit mode first")
        seconds = parse_duration(duration)
        state = self.pending_state or ""
        index = self._phase_index

        with self._engine_call("commit") as engine:
            logic = self._first_logic(engine, controller.id)
            self._check_version(controller, logic)
            if index >= len(logic.phases):
                raise EditError(
                    EditErrorKind.PHASE_OUT_OF_RANGE,
                    f"Phase {index} no longer exists on {controller.id}",
                )
            phases = list(logic.phases)
            phases[index] = phases[index].with_state(state, seconds)
            updated = logic.with_phases(tuple(phases))
            self._push(engine, controller.id, updated)

        self._program_changed(controller, updated)
        self.abandon()
        log.info("Updated %s phase %d: state=%s duration=%.1f", controller.id, index, state, seconds)
        return updated.phases[index]

    def add_phase(self) -> int:
        """Append a phase cloned from the live state; returns its index."""
        controller = self._require_controller()
        with self._engine_call("add_phase") as engine:
            logic = self._first_logic(engine, controller.id)
            self._check_version(controller, logic)
            phase = Phase(
                state=engine.signal_state(controller.id),
                duration=engine.phase_duration(controller.id),
            )
            updated = logic.with_phases(logic.phases + (phase,))
            self._push(engine, controller.id, updated)

        self._program_changed(controller, updated)
        log.info("Added phase %d to %s", len(updated.phases) - 1, controller.id)
        return len(updated.phases) - 1

    def remove_phase(self, index: int) -> None:
        """Remove phase *index*; the last remaining phase is never removed.

        Any phase selection and edit buffer are dropped afterwards.
        """
        controller = self._require_controller()
        with self._engine_call("remove_phase") as engine:
            logic = self._first_logic(engine, controller.id)
            if len(logic.phases) <= 1:
                log.warning("Cannot delete the last phase of %s", controller.id)
                raise EditError(EditErrorKind.LAST_PHASE, "A traffic light needs at least one phase")
            if not 0 <= index < len(logic.phases):
                raise EditError(
                    EditErrorKind.PHASE_OUT_OF_RANGE,
                    f"Phase {index} out of range (0..{len(logic.phases) - 1})",
                )
            self._check_version(controller, logic)
            phases = logic.phases[:index] + logic.phases[index + 1:]
            updated = logic.with_phases(phases)
            self._push(engine, controller.id, updated)

        self._program_changed(controller, updated)
        # Later indices shift down.
        self.abandon()
        self._phase_index = None
        log.info("Removed phase %d from %s", index, controller.id)

    def _check_version(self, controller: SignalController, logic: ProgramLogic) -> None:
        if logic.program_id == controller.program_id and logic.phases == controller.phases:
            return
        if self.strict:
            raise EditError(
                EditErrorKind.STALE_PROGRAM,
                f"Program of {controller.id} changed since it was selected",
            )
        log.warning("Program of %s changed externally; overwriting", controller.id)
