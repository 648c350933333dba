#!/usr/bin/env python3
"""
sim/session.py
==============
:class:`SimulationSession` owns the engine connection, the step cadence
and everything that lives for the duration of one connection.

Threads
-------
* The caller's thread (usually the UI) issues commands.
* ``connect_in_background`` / ``reset_in_background`` run the slow
  launch-and-handshake on a worker thread.
* Continuous mode runs one daemon timer thread that steps serially.

Every engine call happens under one non-reentrant lock, so a manual step,
a timer step and a phase commit can never interleave.  Results go out on
the :class:`~bus.EventBus`; the presentation thread drains it, so its
subscribers never see a half-applied update.  The latest
:class:`~sim.models.TelemetryFrame` is swapped in by reference only after
it is fully built.

Public API consumed by :mod:`ui.pygame_view` and :mod:`remote.api`
------------------------------------------------------------------
* lifecycle   ``connect``, ``attach``, ``reset``, ``disconnect`` (+ background variants)
* stepping    ``step``, ``start_continuous``, ``stop_continuous``, ``set_speed_level``
* view        ``zoom``, ``pan``, ``toggle_translate_mode``, ``toggle_pan_mode``, ``reset_view``
* filtering   ``set_filter_mode``, ``visible_vehicles``
* extras      ``inject_vehicles``, ``vehicle_details``, ``export_stats``
* signals     the :attr:`signals` registry
"""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Type

from bus import (
    EventBus,
    TOPIC_ERROR,
    TOPIC_SIGNALS,
    TOPIC_SNAPSHOT,
    TOPIC_STATUS,
    TOPIC_VIEW,
)
from config import (
    DEFAULT_VEHICLE_TYPE,
    ENGINE_EXECUTABLE_NAMES,
    ENGINE_START_FLAGS,
    MAX_STEP_INTERVAL_MS,
    MIN_STEP_INTERVAL_MS,
    SPEED_LEVEL_MAX,
    SPEED_LEVEL_MIN,
    ZOOM_IN_FACTOR,
    ZOOM_OUT_FACTOR,
)
from engine.base import EngineClient
from engine.errors import TransportError
from engine.traci_engine import TraciEngine
from sim.cfg_parser import CfgParseError, parse_net_file_path
from sim.errors import (
    ConnectError,
    ConnectErrorKind,
    ConsoleError,
    InjectError,
    InjectErrorKind,
    ResetError,
    ResetErrorKind,
    StepError,
    StepErrorKind,
)
from sim.export import export_snapshot, export_vehicle_details
from sim.geometry import GeometryCache
from sim.models import (
    FilterMode,
    Snapshot,
    TelemetryFrame,
    VehicleDetail,
    VehicleObservation,
    Viewport,
)
from sim.projection import CoordinateProjector
from sim.signals import SignalControllerRegistry
from sim.telemetry import Accumulators, TelemetryAggregator

log = logging.getLogger("session")


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STEPPING = "stepping"
    CONTINUOUS_RUNNING = "continuous_running"


def clamp_interval(interval_ms: float) -> int:
    return int(max(MIN_STEP_INTERVAL_MS, min(MAX_STEP_INTERVAL_MS, interval_ms)))


def validate_launch(engine_path: str, config_path: str) -> List[str]:
    """Check both paths and the config's network file; return launch args.

    Raises
    ------
    ConnectError
        ``MISSING_CONFIG``, ``INVALID_ENGINE_PATH`` or
        ``NETWORK_FILE_MISSING``.
    """
    if not config_path or not os.path.isfile(config_path):
        raise ConnectError(ConnectErrorKind.MISSING_CONFIG, f"Config file not found: {config_path!r}")
    if (
        not engine_path
        or not os.path.isfile(engine_path)
        or not os.access(engine_path, os.X_OK)
        or os.path.basename(engine_path).lower() not in ENGINE_EXECUTABLE_NAMES
    ):
        raise ConnectError(
            ConnectErrorKind.INVALID_ENGINE_PATH, f"Invalid SUMO executable path: {engine_path!r}"
        )
    try:
        net_file = parse_net_file_path(config_path)
    except CfgParseError as exc:
        raise ConnectError(ConnectErrorKind.NETWORK_FILE_MISSING, str(exc)) from exc
    if not os.path.isfile(net_file):
        raise ConnectError(
            ConnectErrorKind.NETWORK_FILE_MISSING,
            f"Network file defined in config does not exist: {net_file}",
        )
    return [engine_path, "-c", config_path, *ENGINE_START_FLAGS]


class SimulationSession:
    """One operator's view of one simulation.

    Parameters
    ----------
    engine_factory : callable
        Builds a fresh :class:`~engine.base.EngineClient` for each
        :meth:`connect`.  Defaults to :class:`~engine.traci_engine.TraciEngine`.
    bus : EventBus or None
        Where status, snapshots and errors are published.
    render_target : object or None
        Anything with an ``invalidate()`` method; called whenever the map
        needs repainting.
    strict_edits : bool
        Forwarded to :class:`~sim.signals.SignalControllerRegistry`.
    """

    def __init__(
        self,
        engine_factory: Callable[[], EngineClient] = TraciEngine,
        bus: Optional[EventBus] = None,
        render_target=None,
        strict_edits: bool = False,
    ) -> None:
        self._engine_factory = engine_factory
        self.bus = bus or EventBus()
        self.render_target = render_target

        self._engine_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._timer_guard = threading.Lock()

        self._engine: Optional[EngineClient] = None
        self._launch_args: List[str] = []
        self._phase = SessionState.DISCONNECTED
        self._generation = 0
        self._stepping = False

        self._aggregator = TelemetryAggregator()
        self._accumulators = Accumulators()
        self._total_steps = 0
        self._last_frame: Optional[TelemetryFrame] = None

        self._geometry = GeometryCache()
        self._projector = CoordinateProjector()
        self._registry = SignalControllerRegistry(
            lock=self._engine_lock,
            strict=strict_edits,
            on_connection_lost=self._handle_engine_lost,
            on_program_changed=self._publish_signals,
        )
        self._viewport = Viewport()
        self._filter_mode = FilterMode.ALL

        self._timer: Optional[threading.Thread] = None
        self._timer_stop: Optional[threading.Event] = None
        self._interval_ms = MAX_STEP_INTERVAL_MS

    # ── Read access ───────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        if self._phase is not SessionState.CONNECTED:
            return self._phase
        if self.continuous_running:
            return SessionState.CONTINUOUS_RUNNING
        if self._stepping:
            return SessionState.STEPPING
        return SessionState.CONNECTED

    @property
    def is_connected(self) -> bool:
        return self._phase is SessionState.CONNECTED

    @property
    def continuous_running(self) -> bool:
        timer = self._timer
        return timer is not None and timer.is_alive()

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def total_steps(self) -> int:
        return self._total_steps

    @property
    def last_frame(self) -> Optional[TelemetryFrame]:
        return self._last_frame

    @property
    def last_snapshot(self) -> Optional[Snapshot]:
        frame = self._last_frame
        return frame.snapshot if frame is not None else None

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def geometry(self) -> GeometryCache:
        return self._geometry

    @property
    def projector(self) -> CoordinateProjector:
        return self._projector

    @property
    def signals(self) -> SignalControllerRegistry:
        return self._registry

    @property
    def filter_mode(self) -> FilterMode:
        return self._filter_mode

    @property
    def launch_args(self) -> List[str]:
        return list(self._launch_args)

    # ── Publishing ────────────────────────────────────────────────────────────

    def _invalidate(self) -> None:
        if self.render_target is not None:
            self.render_target.invalidate()

    def _publish_status(self, message: str = "") -> None:
        state = self.state
        self.bus.publish(
            TOPIC_STATUS,
            "session",
            {"state": state.value, "connected": self.is_connected, "message": message},
        )

    def _publish_frame(self, frame: TelemetryFrame) -> None:
        self.bus.publish(TOPIC_SNAPSHOT, "session", {"snapshot": frame.snapshot, "frame": frame})
        self._invalidate()

    def _publish_error(self, operation: str, exc: ConsoleError) -> None:
        self.bus.publish(
            TOPIC_ERROR,
            "session",
            {"operation": operation, "kind": exc.kind.value, "message": str(exc), "error": exc},
        )

    def _publish_view(self) -> None:
        self.bus.publish(TOPIC_VIEW, "session", {"viewport": self._viewport})
        self._invalidate()

    def _publish_signals(self, signal_id: str) -> None:
        controller = self._registry.get(signal_id)
        phases = controller.phases if controller is not None else ()
        self.bus.publish(TOPIC_SIGNALS, "registry", {"signal_id": signal_id, "phases": phases})
        self._invalidate()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def connect(self, engine_path: str, config_path: str) -> None:
        """Validate, launch SUMO and initialise every per-connection cache.

        Blocks until the handshake completes.  On any failure the session
        is left disconnected.
        """
        log.info("Starting SUMO connection operation...")
        with self._lifecycle_lock:
            if self._phase is not SessionState.DISCONNECTED:
                raise ConnectError(ConnectErrorKind.ALREADY_CONNECTED, "Already connected to SUMO")
            args = validate_launch(engine_path, config_path)
            log.debug("SUMO command: %s", " ".join(args))

            self._phase = SessionState.CONNECTING
            self._publish_status("Connecting to SUMO...")
            engine = self._engine_factory()
            try:
                engine.preload()
                engine.start(args)
            except TransportError as exc:
                self._phase = SessionState.DISCONNECTED
                log.error("SUMO startup failed: %s", exc)
                self._publish_status("SUMO startup failed")
                raise ConnectError(ConnectErrorKind.HANDSHAKE_FAILED, str(exc)) from exc
            self._adopt(engine, args, ConnectError, ConnectErrorKind.HANDSHAKE_FAILED)
        log.info("SUMO TraCI connection established successfully!")

    def attach(self, engine: EngineClient, launch_args: Sequence[str] = ()) -> None:
        """Adopt an engine that has already been started with *launch_args*."""
        with self._lifecycle_lock:
            if self._phase is not SessionState.DISCONNECTED:
                raise ConnectError(ConnectErrorKind.ALREADY_CONNECTED, "Already connected to SUMO")
            self._phase = SessionState.CONNECTING
            self._adopt(engine, list(launch_args), ConnectError, ConnectErrorKind.HANDSHAKE_FAILED)
        log.info("Attached to running engine")

    def _adopt(self, engine: EngineClient, args: List[str], error_cls: Type[ConsoleError], kind: Enum) -> None:
        """Post-handshake initialisation; the lifecycle lock is held."""
        try:
            generation = self._generation + 1
            with self._engine_lock:
                self._geometry.preload(engine)
                self._registry.populate(engine, generation)
                frame = self._aggregator.aggregate(engine, Accumulators(), 0)
                self._engine = engine
                self._launch_args = list(args)
                self._generation = generation
                self._accumulators.reset()
                self._total_steps = 0
                self._last_frame = frame
        except TransportError as exc:
            log.error("Engine initialisation failed: %s", exc)
            self._geometry.clear()
            self._registry.clear()
            self._close_quietly(engine)
            self._engine = None
            self._viewport = Viewport()
            self._phase = SessionState.DISCONNECTED
            self._publish_status("Engine initialisation failed")
            raise error_cls(kind, str(exc)) from exc

        self._projector = CoordinateProjector(self._geometry.boundary)
        self._phase = SessionState.CONNECTED
        self._publish_status("Connected")
        self._publish_frame(frame)

    def connect_in_background(self, engine_path: str, config_path: str) -> threading.Thread:
        """:meth:`connect` on a worker thread; the outcome arrives on the bus."""
        return self._background("connect", self.connect, engine_path, config_path)

    def reset(self) -> None:
        """Close and relaunch SUMO with the same arguments, zeroing all counters."""
        self.stop_continuous()
        with self._lifecycle_lock:
            if self._phase is not SessionState.CONNECTED or self._engine is None:
                raise ResetError(ResetErrorKind.NOT_CONNECTED, "Please connect to SUMO first!")
            engine, args = self._engine, list(self._launch_args)
            self._phase = SessionState.CONNECTING
            self._publish_status("Resetting simulation...")
            with self._engine_lock:
                self._engine = None
                self._close_quietly(engine)
                self._geometry.clear()
                self._registry.clear()
                try:
                    engine.start(args)
                except TransportError as exc:
                    relaunch_error: Optional[TransportError] = exc
                else:
                    relaunch_error = None
            if relaunch_error is not None:
                log.error("Reset failed: %s", relaunch_error)
                self._viewport = Viewport()
                self._phase = SessionState.DISCONNECTED
                self._publish_status("Reset failed")
                self._invalidate()
                raise ResetError(ResetErrorKind.RELAUNCH_FAILED, str(relaunch_error)) from relaunch_error
            self._adopt(engine, args, ResetError, ResetErrorKind.RELAUNCH_FAILED)
        log.info("The simulation has been reset to its initial state successfully.")

    def reset_in_background(self) -> threading.Thread:
        return self._background("reset", self.reset)

    def _background(self, operation: str, fn: Callable[..., None], *args) -> threading.Thread:
        def run() -> None:
            try:
                fn(*args)
            except ConsoleError as exc:
                self._publish_error(operation, exc)

        thread = threading.Thread(target=run, daemon=True, name=f"Session-{operation}")
        thread.start()
        return thread

    def disconnect(self) -> None:
        """Stop continuous mode, close SUMO and reset the view.  Idempotent.

        Waits for an in-flight connect or reset to finish first.
        """
        self.stop_continuous()
        with self._lifecycle_lock:
            if self._phase is SessionState.DISCONNECTED:
                log.info("No active SUMO connection to disconnect.")
                return
            self._teardown()
        log.info("SUMO TraCI connection closed successfully.")

    def _teardown(self) -> None:
        """Drop the connection; the lifecycle lock is held."""
        with self._engine_lock:
            engine, self._engine = self._engine, None
            if engine is not None:
                self._close_quietly(engine)
            self._geometry.clear()
            self._registry.clear()
        self._viewport = Viewport()
        self._phase = SessionState.DISCONNECTED
        self._publish_status("Disconnected")
        self._invalidate()

    @staticmethod
    def _close_quietly(engine: EngineClient) -> None:
        try:
            engine.close()
        except TransportError as exc:
            log.warning("Failed to close SUMO connection: %s", exc)

    def _handle_engine_lost(self, generation: Optional[int] = None) -> None:
        """SUMO went away under us: mark the session disconnected."""
        self.stop_continuous()
        with self._lifecycle_lock:
            if self._phase is SessionState.DISCONNECTED:
                return
            if generation is not None and generation != self._generation:
                return
            log.warning("SUMO TraCI connection has been interrupted and marked as disconnected.")
            self._teardown()

    # ── Engine access ─────────────────────────────────────────────────────────

    @contextmanager
    def _engine_for(
        self,
        operation: str,
        error_cls: Type[ConsoleError],
        not_connected: Enum,
        failed: Enum,
        unreachable: Enum,
    ) -> Iterator[EngineClient]:
        """Hold the engine lock and translate transport faults for *operation*."""
        lost: Optional[TransportError] = None
        with self._engine_lock:
            engine = self._engine
            if engine is None or self._phase is not SessionState.CONNECTED:
                raise error_cls(not_connected, "Please connect to SUMO first!")
            generation = self._generation
            try:
                yield engine
            except TransportError as exc:
                if not exc.connection_lost:
                    log.error("%s failed: %s", operation, exc)
                    raise error_cls(failed, f"{operation} failed: {exc}") from exc
                lost = exc
        if lost is not None:
            log.error("%s failed: %s", operation, lost)
            self._handle_engine_lost(generation)
            raise error_cls(unreachable, f"SUMO is unreachable: {lost}") from lost

    # ── Stepping ──────────────────────────────────────────────────────────────

    def step(self) -> Snapshot:
        """Advance one tick and return the new snapshot.

        Stops continuous mode first if it is running.
        """
        if self.continuous_running:
            self.stop_continuous()
        return self._advance()

    def _advance(self) -> Snapshot:
        with self._engine_for(
            "Single-step",
            StepError,
            StepErrorKind.NOT_CONNECTED,
            StepErrorKind.STEP_FAILED,
            StepErrorKind.ENGINE_UNREACHABLE,
        ) as engine:
            self._stepping = True
            try:
                engine.step()
                self._total_steps += 1
                frame = self._aggregator.aggregate(engine, self._accumulators, self._total_steps)
            finally:
                self._stepping = False
            self._last_frame = frame
        log.info("Simulation progressed to step: %d", frame.snapshot.total_steps)
        self._publish_frame(frame)
        return frame.snapshot

    @staticmethod
    def interval_for_speed_level(level: int) -> int:
        """Speed level 1 (slowest) … 10 (fastest) → step interval in ms."""
        level = max(SPEED_LEVEL_MIN, min(SPEED_LEVEL_MAX, int(level)))
        return clamp_interval(1100 - level * 100)

    def set_speed_level(self, level: int) -> int:
        """Retune the step interval; a running timer picks it up on its next tick."""
        self._interval_ms = self.interval_for_speed_level(level)
        log.info("Simulation speed level %d (%d ms per step)", level, self._interval_ms)
        return self._interval_ms

    def start_continuous(self, interval_ms: Optional[float] = None) -> None:
        if not self.is_connected:
            raise StepError(StepErrorKind.NOT_CONNECTED, "Please connect to SUMO first!")
        if interval_ms is not None:
            self._interval_ms = clamp_interval(interval_ms)
        with self._timer_guard:
            if self._timer is not None and self._timer.is_alive():
                return
            stop = threading.Event()
            self._timer_stop = stop
            self._timer = threading.Thread(
                target=self._loop, args=(stop,), daemon=True, name="ContinuousStep"
            )
            self._timer.start()
        log.info("Continuous simulation started (%d ms per step)", self._interval_ms)
        self._publish_status("Continuous simulation running")

    def stop_continuous(self) -> None:
        with self._timer_guard:
            timer, stop = self._timer, self._timer_stop
            self._timer = None
            self._timer_stop = None
        if timer is None or stop is None:
            return
        stop.set()
        if timer is not threading.current_thread():
            timer.join(timeout=2.0)
        log.info("Continuous simulation stopped")
        self._publish_status("Continuous simulation stopped")

    def _loop(self, stop: threading.Event) -> None:
        while not stop.is_set():
            t0 = time.perf_counter()
            try:
                self._advance()
            except StepError as exc:
                self._publish_error("step", exc)
                break
            stop.wait(max(0.0, self._interval_ms / 1000.0 - (time.perf_counter() - t0)))
        with self._timer_guard:
            if self._timer_stop is stop:
                self._timer = None
                self._timer_stop = None

    # ── View ──────────────────────────────────────────────────────────────────

    def zoom(self, factor: float) -> Viewport:
        self._viewport = self._viewport.zoomed(factor)
        log.info("Map zoomed to %.1fx", self._viewport.scale)
        self._publish_view()
        return self._viewport

    def zoom_in(self) -> Viewport:
        return self.zoom(ZOOM_IN_FACTOR)

    def zoom_out(self) -> Viewport:
        return self.zoom(ZOOM_OUT_FACTOR)

    def pan(self, dx: float, dy: float) -> Viewport:
        self._viewport = self._viewport.panned(dx, dy)
        self._publish_view()
        return self._viewport

    def toggle_translate_mode(self) -> bool:
        enabled = not self._viewport.translate_mode
        self._viewport = self._viewport.with_translate_mode(enabled)
        log.info("Translate mode: %s", "Enabled" if enabled else "Disabled")
        self._publish_view()
        return enabled

    def toggle_pan_mode(self) -> bool:
        enabled = not self._viewport.pan_mode
        self._viewport = self._viewport.with_pan_mode(enabled)
        self._publish_view()
        return enabled

    def reset_view(self) -> Viewport:
        """Default zoom and offset; translate mode is left as it was."""
        self._viewport = Viewport(translate_mode=self._viewport.translate_mode)
        log.info("Map view has been reset")
        self._publish_view()
        return self._viewport

    # ── Filtering ─────────────────────────────────────────────────────────────

    def set_filter_mode(self, mode) -> FilterMode:
        self._filter_mode = FilterMode.parse(mode)
        log.info("Vehicle filter: %s", self._filter_mode.value)
        self._invalidate()
        return self._filter_mode

    def visible_vehicles(self) -> List[VehicleObservation]:
        frame = self._last_frame
        if frame is None:
            return []
        return [v for v in frame.vehicles if v.matches(self._filter_mode)]

    # ── Extras ────────────────────────────────────────────────────────────────

    def inject_vehicles(
        self,
        edge_id: str,
        route_id: str,
        speed_kmh: float = 0.0,
        count: int = 1,
    ) -> List[str]:
        """Add *count* vehicles on *route_id*, departing now on *edge_id*.

        Each vehicle is moved onto lane 0 of the edge, falling back to lane
        1, and otherwise left where SUMO inserted it.
        """
        if count < 1:
            raise InjectError(InjectErrorKind.INVALID_ARGUMENT, "Vehicle count must be at least 1")
        if speed_kmh < 0:
            raise InjectError(InjectErrorKind.INVALID_ARGUMENT, "Speed must not be negative")
        depart_speed = f"{speed_kmh / 3.6:.2f}"
        stamp = int(time.time() * 1000)
        created: List[str] = []
        with self._engine_for(
            "Vehicle injection",
            InjectError,
            InjectErrorKind.NOT_CONNECTED,
            InjectErrorKind.ENGINE_REJECTED,
            InjectErrorKind.ENGINE_UNREACHABLE,
        ) as engine:
            for i in range(count):
                vehicle_id = f"veh{stamp}_{i}"
                engine.add_vehicle(
                    vehicle_id,
                    route_id,
                    DEFAULT_VEHICLE_TYPE,
                    depart="now",
                    depart_lane="0",
                    depart_pos="free",
                    depart_speed=depart_speed,
                )
                self._place_on_edge(engine, vehicle_id, edge_id)
                created.append(vehicle_id)
                log.info("Created vehicle: %s", vehicle_id)
        return created

    @staticmethod
    def _place_on_edge(engine: EngineClient, vehicle_id: str, edge_id: str) -> None:
        for lane_index in (0, 1):
            try:
                engine.move_vehicle(vehicle_id, f"{edge_id}_{lane_index}", 0.0)
                return
            except TransportError as exc:
                if exc.connection_lost:
                    raise
                log.info("Lane %s_%d not usable for %s", edge_id, lane_index, vehicle_id)
        log.info("Edge %s has no valid lanes; %s stays at its default position", edge_id, vehicle_id)

    def vehicle_details(self) -> Tuple[float, List[VehicleDetail]]:
        """Simulation clock and one detail row per vehicle."""
        with self._engine_for(
            "Detail retrieval",
            StepError,
            StepErrorKind.NOT_CONNECTED,
            StepErrorKind.STEP_FAILED,
            StepErrorKind.ENGINE_UNREACHABLE,
        ) as engine:
            return self._aggregator.vehicle_details(engine)

    def export_stats(self, path: Optional[str] = None) -> str:
        """Write the last snapshot as ``Metric,Value`` CSV; returns the path."""
        return export_snapshot(self.last_snapshot, path)

    def export_vehicle_details(self, path: str) -> str:
        _clock, rows = self.vehicle_details()
        return export_vehicle_details(rows, path)
