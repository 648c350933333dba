"""
FakeEngine: an in-memory stand-in for SUMO.

Used by ``demo.py`` so the console can be tried without a SUMO install,
and by the test-suite.  It honours the same error contract as
:class:`~engine.traci_engine.TraciEngine` and can inject faults:

* :attr:`FakeEngine.failing_vehicles` / :attr:`FakeEngine.failing_signals`
  make reads of those ids fail with ``CALL_FAILED``;
* :meth:`FakeEngine.drop_connection` makes every later call fail with
  ``CONNECTION_LOST``, like a user closing the SUMO window.
"""

from __future__ import annotations

import math
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Sequence, Set, Tuple

from sim.models import Boundary, Phase, Point, ProgramLogic, SignalColor

from .base import EngineClient
from .errors import TransportError, TransportErrorKind


@dataclass
class FakeVehicle:
    id: str
    speed: float = 0.0
    distance: float = 0.0
    departure: float = 0.0
    x: float = 0.0
    y: float = 0.0
    angle: float = 0.0
    route: str = ""
    lane: str = ""
    cruise: float = 0.0


@dataclass
class FakeSignal:
    lanes: List[str]
    logics: List[ProgramLogic]
    program_id: str = ""
    phase_index: int = 0
    elapsed: float = 0.0
    override: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.program_id and self.logics:
            self.program_id = self.logics[0].program_id

    @property
    def logic(self) -> ProgramLogic:
        for logic in self.logics:
            if logic.program_id == self.program_id:
                return logic
        return self.logics[0]

    @property
    def phase(self) -> Phase:
        phases = self.logic.phases
        return phases[self.phase_index % len(phases)]

    @property
    def state(self) -> str:
        return self.override if self.override is not None else self.phase.state

    def advance(self, dt: float) -> None:
        if self.override is not None:
            return
        self.elapsed += dt
        if self.elapsed >= self.phase.duration:
            self.elapsed = 0.0
            self.phase_index = (self.phase_index + 1) % len(self.logic.phases)


@dataclass
class FakeWorld:
    """Mutable world state owned by one :class:`FakeEngine`."""

    vehicles: Dict[str, FakeVehicle] = field(default_factory=dict)
    edges: Dict[str, List[Tuple[List[Point], float]]] = field(default_factory=dict)
    signals: Dict[str, FakeSignal] = field(default_factory=dict)
    routes: Dict[str, List[str]] = field(default_factory=dict)
    boundary: Boundary = ((0.0, 0.0), (100.0, 100.0))
    time: float = 0.0
    dynamic: bool = False
    spawn_every: int = 0
    seed: int = 7


class FakeEngine(EngineClient):
    """In-memory :class:`~engine.base.EngineClient`.

    Parameters
    ----------
    world_factory : callable
        Builds a fresh :class:`FakeWorld`.  Called on every :meth:`start`
        so a reset replays the scenario from the beginning.
    handshake_error : bool
        When true, :meth:`start` fails like an engine that never answers.
    """

    def __init__(
        self,
        world_factory: Optional[Callable[[], FakeWorld]] = None,
        handshake_error: bool = False,
    ) -> None:
        self._world_factory = world_factory or FakeWorld
        self.handshake_error = handshake_error
        self.world: Optional[FakeWorld] = None
        self.started_with: List[List[str]] = []
        self.failing_vehicles: Set[str] = set()
        self.failing_signals: Set[str] = set()
        self.calls: Deque[str] = deque(maxlen=2000)
        self._lost = False
        self._rng = random.Random(0)
        self._spawned = 0

    # ── Fault injection ──────────────────────────────────────────────────────

    def drop_connection(self) -> None:
        self._lost = True

    def _live(self, operation: str) -> FakeWorld:
        self.calls.append(operation)
        if self._lost or self.world is None:
            raise TransportError(
                TransportErrorKind.CONNECTION_LOST, operation, "Connection reset by peer"
            )
        return self.world

    def _vehicle(self, operation: str, vehicle_id: str) -> FakeVehicle:
        world = self._live(operation)
        if vehicle_id in self.failing_vehicles or vehicle_id not in world.vehicles:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, operation, f"Vehicle '{vehicle_id}' is not known"
            )
        return world.vehicles[vehicle_id]

    def _signal(self, operation: str, signal_id: str) -> FakeSignal:
        world = self._live(operation)
        if signal_id in self.failing_signals or signal_id not in world.signals:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, operation, f"Traffic light '{signal_id}' is not known"
            )
        return world.signals[signal_id]

    def _lane(self, operation: str, lane_id: str) -> Tuple[List[Point], float]:
        world = self._live(operation)
        edge_id, _, index = lane_id.rpartition("_")
        lanes = world.edges.get(edge_id)
        if lanes is None or not index.isdigit() or int(index) >= len(lanes):
            raise TransportError(
                TransportErrorKind.CALL_FAILED, operation, f"Lane '{lane_id}' is not known"
            )
        return lanes[int(index)]

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, args: Sequence[str]) -> None:
        self.calls.append("start")
        if self.handshake_error:
            raise TransportError(
                TransportErrorKind.CONNECTION_LOST, "start", "Could not connect in 60 tries"
            )
        self.started_with.append(list(args))
        self.world = self._world_factory()
        self._rng = random.Random(self.world.seed)
        self._spawned = 0
        self._lost = False

    def step(self) -> None:
        world = self._live("step")
        world.time += 1.0
        if world.dynamic:
            self._drive(world)
        else:
            for vehicle in world.vehicles.values():
                _move(vehicle, vehicle.speed)
        for signal in world.signals.values():
            signal.advance(1.0)
        if world.spawn_every and int(world.time) % world.spawn_every == 0:
            self._spawn(world)

    def close(self) -> None:
        self.calls.append("close")
        self.world = None

    def get_time(self) -> float:
        return self._live("get_time").time

    def get_net_boundary(self) -> Boundary:
        return self._live("get_net_boundary").boundary

    # ── Vehicles ─────────────────────────────────────────────────────────────

    def vehicle_ids(self) -> List[str]:
        return list(self._live("vehicle_ids").vehicles)

    def vehicle_speed(self, vehicle_id: str) -> float:
        return self._vehicle("vehicle_speed", vehicle_id).speed

    def vehicle_distance(self, vehicle_id: str) -> float:
        return self._vehicle("vehicle_distance", vehicle_id).distance

    def vehicle_departure(self, vehicle_id: str) -> float:
        return self._vehicle("vehicle_departure", vehicle_id).departure

    def vehicle_position(self, vehicle_id: str) -> Point:
        vehicle = self._vehicle("vehicle_position", vehicle_id)
        return vehicle.x, vehicle.y

    def vehicle_angle(self, vehicle_id: str) -> float:
        return self._vehicle("vehicle_angle", vehicle_id).angle

    def add_vehicle(
        self,
        vehicle_id: str,
        route_id: str,
        type_id: str,
        depart: str = "now",
        depart_lane: str = "0",
        depart_pos: str = "free",
        depart_speed: str = "0",
    ) -> None:
        world = self._live("add_vehicle")
        route = world.routes.get(route_id)
        if not route:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, "add_vehicle", f"Invalid route '{route_id}'"
            )
        if vehicle_id in world.vehicles:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, "add_vehicle", f"Vehicle '{vehicle_id}' exists"
            )
        try:
            speed = float(depart_speed)
        except ValueError:
            speed = 0.0
        vehicle = FakeVehicle(
            id=vehicle_id, speed=speed, departure=world.time, route=route_id, cruise=speed
        )
        world.vehicles[vehicle_id] = vehicle
        _place(vehicle, f"{route[0]}_0", world.edges[route[0]][0][0], 0.0)

    def move_vehicle(self, vehicle_id: str, lane_id: str, position: float) -> None:
        vehicle = self._vehicle("move_vehicle", vehicle_id)
        points, _width = self._lane("move_vehicle", lane_id)
        _place(vehicle, lane_id, points, position)

    # ── Edges / lanes ────────────────────────────────────────────────────────

    def edge_ids(self) -> List[str]:
        return list(self._live("edge_ids").edges)

    def lane_count(self, edge_id: str) -> int:
        world = self._live("lane_count")
        if edge_id not in world.edges:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, "lane_count", f"Edge '{edge_id}' is not known"
            )
        return len(world.edges[edge_id])

    def lane_shape(self, lane_id: str) -> List[Point]:
        return list(self._lane("lane_shape", lane_id)[0])

    def lane_width(self, lane_id: str) -> float:
        return self._lane("lane_width", lane_id)[1]

    # ── Signals ──────────────────────────────────────────────────────────────

    def signal_ids(self) -> List[str]:
        return list(self._live("signal_ids").signals)

    def controlled_lanes(self, signal_id: str) -> List[str]:
        return list(self._signal("controlled_lanes", signal_id).lanes)

    def signal_state(self, signal_id: str) -> str:
        return self._signal("signal_state", signal_id).state

    def set_signal_state(self, signal_id: str, state: str) -> None:
        self._signal("set_signal_state", signal_id).override = state

    def phase_duration(self, signal_id: str) -> float:
        return self._signal("phase_duration", signal_id).phase.duration

    def get_program(self, signal_id: str) -> str:
        return self._signal("get_program", signal_id).program_id

    def set_program(self, signal_id: str, program_id: str) -> None:
        signal = self._signal("set_program", signal_id)
        if program_id not in {logic.program_id for logic in signal.logics}:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, "set_program", f"Unknown program '{program_id}'"
            )
        signal.program_id = program_id
        signal.phase_index = 0
        signal.elapsed = 0.0
        signal.override = None

    def get_phases(self, signal_id: str) -> Tuple[ProgramLogic, ...]:
        return tuple(self._signal("get_phases", signal_id).logics)

    def set_phases(self, signal_id: str, logic: ProgramLogic) -> None:
        signal = self._signal("set_phases", signal_id)
        if not logic.phases:
            raise TransportError(
                TransportErrorKind.CALL_FAILED, "set_phases", "A program needs at least one phase"
            )
        for i, existing in enumerate(signal.logics):
            if existing.program_id == logic.program_id:
                signal.logics[i] = logic
                break
        else:
            signal.logics.append(logic)
        signal.phase_index %= len(signal.logic.phases)

    # ── Demo traffic ─────────────────────────────────────────────────────────

    def _drive(self, world: FakeWorld) -> None:
        gone: List[str] = []
        for vehicle in world.vehicles.values():
            ahead = _gap_ahead(vehicle, world.vehicles.values())
            stop_in = _stop_line_distance(vehicle, world)
            if ahead < 8.0 or (stop_in is not None and 0.0 <= stop_in <= max(vehicle.speed, 2.0)):
                vehicle.speed = 0.0
            elif stop_in is not None and 0.0 <= stop_in <= 25.0:
                vehicle.speed = max(1.0, vehicle.speed - 4.0)
            else:
                vehicle.speed = min(vehicle.cruise, vehicle.speed + 3.0)
            _move(vehicle, vehicle.speed)
            if _remaining(vehicle, world) < 0.0:
                _advance_lane(vehicle, world)
            (min_x, min_y), (max_x, max_y) = world.boundary
            if not (min_x <= vehicle.x <= max_x and min_y <= vehicle.y <= max_y):
                gone.append(vehicle.id)
        for vehicle_id in gone:
            del world.vehicles[vehicle_id]

    def _spawn(self, world: FakeWorld) -> None:
        route_id = self._rng.choice(sorted(world.routes))
        lane_index = self._rng.randrange(2)
        self._spawned += 1
        vehicle = FakeVehicle(
            id=f"veh{self._spawned}",
            speed=10.0,
            departure=world.time,
            route=route_id,
            cruise=self._rng.uniform(9.0, 14.0),
        )
        first_edge = world.routes[route_id][0]
        lane_id = f"{first_edge}_{lane_index}"
        world.vehicles[vehicle.id] = vehicle
        _place(vehicle, lane_id, world.edges[first_edge][lane_index][0], 0.0)


# ── Kinematics helpers ───────────────────────────────────────────────────────

def _heading(points: Sequence[Point]) -> float:
    """SUMO heading (0° = north, clockwise) of a polyline's first segment."""
    (x0, y0), (x1, y1) = points[0], points[1]
    return math.degrees(math.atan2(x1 - x0, y1 - y0)) % 360.0


def _place(vehicle: FakeVehicle, lane_id: str, points: Sequence[Point], position: float) -> None:
    vehicle.lane = lane_id
    vehicle.angle = _heading(points)
    vehicle.x, vehicle.y = points[0]
    _move(vehicle, position, count_distance=False)


def _move(vehicle: FakeVehicle, metres: float, count_distance: bool = True) -> None:
    rad = math.radians(vehicle.angle)
    vehicle.x += metres * math.sin(rad)
    vehicle.y += metres * math.cos(rad)
    if count_distance:
        vehicle.distance += metres


def _gap_ahead(vehicle: FakeVehicle, others) -> float:
    rad = math.radians(vehicle.angle)
    fx, fy = math.sin(rad), math.cos(rad)
    best = math.inf
    for other in others:
        if other is vehicle or other.lane != vehicle.lane:
            continue
        along = (other.x - vehicle.x) * fx + (other.y - vehicle.y) * fy
        if 0.0 < along < best:
            best = along
    return best


def _remaining(vehicle: FakeVehicle, world: FakeWorld) -> float:
    """Metres left on the vehicle's current lane, negative once past its end."""
    edge_id, _, index = vehicle.lane.rpartition("_")
    lanes = world.edges.get(edge_id)
    if not lanes or not index.isdigit() or int(index) >= len(lanes):
        return math.inf
    end_x, end_y = lanes[int(index)][0][-1]
    rad = math.radians(vehicle.angle)
    return (end_x - vehicle.x) * math.sin(rad) + (end_y - vehicle.y) * math.cos(rad)


def _stop_line_distance(vehicle: FakeVehicle, world: FakeWorld) -> Optional[float]:
    """Metres to the stop line if the vehicle's lane is currently not green."""
    for signal in world.signals.values():
        for lane_id, char in zip(signal.lanes, signal.state):
            if lane_id != vehicle.lane:
                continue
            if SignalColor.parse(char) is SignalColor.GREEN:
                return None
            return _remaining(vehicle, world)
    return None


def _advance_lane(vehicle: FakeVehicle, world: FakeWorld) -> None:
    route = world.routes.get(vehicle.route, [])
    edge_id, _, index = vehicle.lane.rpartition("_")
    if edge_id in route and route.index(edge_id) + 1 < len(route):
        next_edge = route[route.index(edge_id) + 1]
        vehicle.lane = f"{next_edge}_{index}"


# ── Demo scenario ────────────────────────────────────────────────────────────

_ARM = 200.0
_STOP = 12.0
_LANE_W = 3.2


def _lane_offset(i: int) -> float:
    return _LANE_W / 2 + _LANE_W * i


def demo_world() -> FakeWorld:
    """A signalised four-arm crossing with two lanes per direction."""
    edges: Dict[str, List[Tuple[List[Point], float]]] = {}
    for i in range(2):
        o = _lane_offset(i)
        edges.setdefault("N_in", []).append(([(-o, _ARM), (-o, _STOP)], _LANE_W))
        edges.setdefault("S_in", []).append(([(o, -_ARM), (o, -_STOP)], _LANE_W))
        edges.setdefault("E_in", []).append(([(_ARM, o), (_STOP, o)], _LANE_W))
        edges.setdefault("W_in", []).append(([(-_ARM, -o), (-_STOP, -o)], _LANE_W))
        edges.setdefault("N_out", []).append(([(o, _STOP), (o, _ARM)], _LANE_W))
        edges.setdefault("S_out", []).append(([(-o, -_STOP), (-o, -_ARM)], _LANE_W))
        edges.setdefault("E_out", []).append(([(_STOP, -o), (_ARM, -o)], _LANE_W))
        edges.setdefault("W_out", []).append(([(-_STOP, o), (-_ARM, o)], _LANE_W))

    lanes = [f"{arm}_in_{i}" for arm in ("N", "E", "S", "W") for i in range(2)]
    program = ProgramLogic(
        program_id="0",
        phases=(
            Phase("GGrrGGrr", 25.0),
            Phase("yyrryyrr", 4.0),
            Phase("rrGGrrGG", 25.0),
            Phase("rryyrryy", 4.0),
        ),
    )
    routes = {
        "route_NS": ["N_in", "S_out"],
        "route_SN": ["S_in", "N_out"],
        "route_EW": ["E_in", "W_out"],
        "route_WE": ["W_in", "E_out"],
    }
    return FakeWorld(
        edges=edges,
        signals={"C": FakeSignal(lanes=lanes, logics=[program])},
        routes=routes,
        boundary=((-_ARM, -_ARM), (_ARM, _ARM)),
        dynamic=True,
        spawn_every=3,
    )
