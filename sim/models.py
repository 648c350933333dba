#!/usr/bin/env python3
"""
sim/models.py
=============
Immutable value objects shared by the console core and its presentation
layers.

Nothing in here talks to the engine.  Every type is a frozen dataclass or
an enum so a frame built on the stepping thread can be handed to the UI
thread without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator, Optional, Tuple

from config import CONGESTION_THRESHOLD_KMH, MAX_SCALE, MIN_SCALE

Point = Tuple[float, float]
Boundary = Tuple[Point, Point]

_MPS_TO_KMH = 3.6


def mps_to_kmh(speed_mps: float) -> float:
    """Convert m/s to km/h."""
    return float(speed_mps) * _MPS_TO_KMH


def edge_of_lane(lane_id: str) -> str:
    """Parent edge id of a lane id (``"A_0"`` → ``"A"``, ``":J1_0_0"`` → ``":J1_0"``)."""
    edge, sep, _index = lane_id.rpartition("_")
    return edge if sep else lane_id


# ── Signals ───────────────────────────────────────────────────────────────────

class SignalColor(Enum):
    """One character of a signal state string, parsed."""

    RED = "r"
    YELLOW = "y"
    GREEN = "g"
    UNKNOWN = "?"

    @classmethod
    def parse(cls, char: str) -> "SignalColor":
        return _SIGNAL_CHARS.get(char, cls.UNKNOWN)

    @classmethod
    def parse_state(cls, state: str) -> Tuple["SignalColor", ...]:
        return tuple(cls.parse(c) for c in state)

    @property
    def char(self) -> str:
        return self.value


_SIGNAL_CHARS = {
    "g": SignalColor.GREEN,
    "G": SignalColor.GREEN,
    "y": SignalColor.YELLOW,
    "Y": SignalColor.YELLOW,
    "r": SignalColor.RED,
    "R": SignalColor.RED,
    "u": SignalColor.RED,
    "U": SignalColor.RED,
}


@dataclass(frozen=True)
class Phase:
    """One (state string, duration) pair of a signal program."""

    state: str
    duration: float
    min_dur: Optional[float] = None
    max_dur: Optional[float] = None
    name: str = ""

    def with_state(self, state: str, duration: float) -> "Phase":
        return replace(self, state=state, duration=float(duration))


@dataclass(frozen=True)
class ProgramLogic:
    """A complete signal program as the engine stores it."""

    program_id: str
    type: int = 0
    current_phase_index: int = 0
    phases: Tuple[Phase, ...] = ()

    def with_phases(self, phases: Tuple[Phase, ...]) -> "ProgramLogic":
        index = min(self.current_phase_index, max(0, len(phases) - 1))
        return replace(self, phases=tuple(phases), current_phase_index=index)


@dataclass(frozen=True)
class SignalObservation:
    """A controller's controlled lanes and live state, read during one step."""

    id: str
    controlled_lanes: Tuple[str, ...]
    state: str

    def lane_colors(self) -> Iterator[Tuple[str, SignalColor]]:
        """Lane/colour pairs, stopping at the shorter of the two sequences."""
        for lane_id, char in zip(self.controlled_lanes, self.state):
            yield lane_id, SignalColor.parse(char)


# ── Vehicles ──────────────────────────────────────────────────────────────────

class VehicleStatus(Enum):
    STATIC = "Static"
    CONGESTED = "Congested"
    RUNNING = "Running"


class FilterMode(Enum):
    """Which vehicles the map shows."""

    ALL = "ALL"
    RUNNING = "RUNNING"
    CONGESTED = "CONGESTED"

    @classmethod
    def parse(cls, value: "str | FilterMode") -> "FilterMode":
        if isinstance(value, FilterMode):
            return value
        return cls(str(value).strip().upper())


@dataclass(frozen=True)
class VehicleObservation:
    """Kinematic state of one vehicle, read fresh from the engine every step."""

    id: str
    speed_mps: float
    odometer_m: float
    departure_sec: float
    x: float
    y: float
    heading_deg: float

    @property
    def speed_kmh(self) -> float:
        return mps_to_kmh(self.speed_mps)

    @property
    def is_running(self) -> bool:
        return self.speed_mps > 0

    @property
    def is_congested(self) -> bool:
        return self.is_running and self.speed_kmh < CONGESTION_THRESHOLD_KMH

    @property
    def status(self) -> VehicleStatus:
        if not self.is_running:
            return VehicleStatus.STATIC
        if self.is_congested:
            return VehicleStatus.CONGESTED
        return VehicleStatus.RUNNING

    def matches(self, mode: FilterMode) -> bool:
        if mode is FilterMode.RUNNING:
            return self.is_running
        if mode is FilterMode.CONGESTED:
            return self.is_congested
        return True


@dataclass(frozen=True)
class VehicleDetail:
    """One row of the vehicle detail table."""

    id: str
    status: VehicleStatus
    speed_kmh: float
    distance_m: float
    travel_time_s: float


# ── Geometry ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LaneShape:
    """World-space polyline and width of one lane."""

    edge_id: str
    lane_index: int
    points: Tuple[Point, ...]
    width_m: float

    @property
    def lane_id(self) -> str:
        return f"{self.edge_id}_{self.lane_index}"

    @property
    def drawable(self) -> bool:
        return len(self.points) >= 2


# ── Snapshot ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Snapshot:
    """Aggregated statistics of one completed step.

    Built once by :class:`~sim.telemetry.TelemetryAggregator`, never
    mutated, superseded by the next step's snapshot.
    """

    vehicle_total: int = 0
    vehicle_running: int = 0
    vehicle_congested: int = 0
    signal_total: int = 0
    signal_red: int = 0
    signal_green: int = 0
    signal_yellow: int = 0
    total_steps: int = 0
    avg_speed_kmh: float = 0.0
    traffic_efficiency_pct: float = 0.0
    simulation_time_label: str = "00:00:00"
    simulation_time_sec: float = 0.0

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls()

    @property
    def vehicle_static(self) -> int:
        return self.vehicle_total - self.vehicle_running

    def to_rows(self) -> Tuple[Tuple[str, object], ...]:
        """``(metric, value)`` pairs, one per exported field."""
        return (
            ("Total Vehicles", self.vehicle_total),
            ("Running Vehicles", self.vehicle_running),
            ("Congested Vehicles", self.vehicle_congested),
            ("Traffic Lights Total", self.signal_total),
            ("Red Lights", self.signal_red),
            ("Green Lights", self.signal_green),
            ("Yellow Lights", self.signal_yellow),
            ("Total Steps", self.total_steps),
            ("Average Speed (km/h)", self.avg_speed_kmh),
            ("Traffic Efficiency (%)", self.traffic_efficiency_pct),
            ("Simulation Time", self.simulation_time_label),
        )


@dataclass(frozen=True)
class TelemetryFrame:
    """Everything one step produced: the snapshot plus per-entity observations."""

    snapshot: Snapshot = field(default_factory=Snapshot)
    vehicles: Tuple[VehicleObservation, ...] = ()
    signals: Tuple[SignalObservation, ...] = ()


# ── Viewport ──────────────────────────────────────────────────────────────────

def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


@dataclass(frozen=True)
class Viewport:
    """Pan/zoom state of the map.  Replaced on every change, never mutated."""

    scale: float = 1.0
    translate_x: float = 0.0
    translate_y: float = 0.0
    pan_mode: bool = False
    translate_mode: bool = False

    def zoomed(self, factor: float) -> "Viewport":
        return replace(self, scale=clamp_scale(self.scale * factor))

    def panned(self, dx: float, dy: float) -> "Viewport":
        return replace(
            self,
            translate_x=self.translate_x + dx,
            translate_y=self.translate_y + dy,
        )

    def with_translate_mode(self, enabled: bool) -> "Viewport":
        return replace(self, translate_mode=enabled)

    def with_pan_mode(self, enabled: bool) -> "Viewport":
        return replace(self, pan_mode=enabled)
