"""
TraciEngine: :class:`~engine.base.EngineClient` over a labelled TraCI connection.

Library exceptions are translated exactly once, here:

* ``FatalTraCIError`` and socket-level ``OSError`` → ``CONNECTION_LOST``
* ``TraCIException`` → ``CALL_FAILED``
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Tuple

import traci
from traci.exceptions import FatalTraCIError, TraCIException

from config import TRACI_LABEL
from sim.models import Boundary, Phase, Point, ProgramLogic

from .base import EngineClient
from .errors import TransportError, TransportErrorKind

log = logging.getLogger("engine")


def _optional_duration(value: float) -> Optional[float]:
    return None if value is None or value < 0 else float(value)


def phase_from_traci(phase) -> Phase:
    return Phase(
        state=phase.state,
        duration=float(phase.duration),
        min_dur=_optional_duration(getattr(phase, "minDur", -1)),
        max_dur=_optional_duration(getattr(phase, "maxDur", -1)),
        name=getattr(phase, "name", "") or "",
    )


def phase_to_traci(phase: Phase):
    return traci.trafficlight.Phase(
        phase.duration,
        phase.state,
        phase.min_dur if phase.min_dur is not None else -1,
        phase.max_dur if phase.max_dur is not None else -1,
        name=phase.name,
    )


def logic_from_traci(logic) -> ProgramLogic:
    return ProgramLogic(
        program_id=logic.programID,
        type=int(logic.type),
        current_phase_index=int(logic.currentPhaseIndex),
        phases=tuple(phase_from_traci(p) for p in logic.phases),
    )


def logic_to_traci(logic: ProgramLogic):
    return traci.trafficlight.Logic(
        logic.program_id,
        logic.type,
        logic.current_phase_index,
        phases=[phase_to_traci(p) for p in logic.phases],
    )


class TraciEngine(EngineClient):
    """Engine client backed by ``traci.start`` / ``traci.getConnection``.

    Parameters
    ----------
    label : str
        TraCI connection label, so several consoles can coexist in one
        process without touching the module-level default connection.
    """

    def __init__(self, label: str = TRACI_LABEL) -> None:
        self._label = label
        self._conn = None

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except FatalTraCIError as exc:
            log.debug("%s lost connection: %s", operation, exc)
            raise TransportError(
                TransportErrorKind.CONNECTION_LOST, operation, str(exc)
            ) from exc
        except TraCIException as exc:
            log.debug("%s failed: %s", operation, exc)
            raise TransportError(
                TransportErrorKind.CALL_FAILED, operation, str(exc)
            ) from exc
        except OSError as exc:
            log.debug("%s socket error: %s", operation, exc)
            raise TransportError(
                TransportErrorKind.CONNECTION_LOST, operation, str(exc)
            ) from exc

    @property
    def conn(self):
        if self._conn is None:
            raise TransportError(
                TransportErrorKind.CONNECTION_LOST, "connection", "not started"
            )
        return self._conn

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, args: Sequence[str]) -> None:
        log.debug("start %s", " ".join(args))
        with self._guard("start"):
            traci.start(list(args), label=self._label)
            self._conn = traci.getConnection(self._label)

    def step(self) -> None:
        with self._guard("step"):
            self.conn.simulationStep()

    def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        with self._guard("close"):
            conn.close()
        log.debug("closed connection %s", self._label)

    def get_time(self) -> float:
        with self._guard("get_time"):
            return float(self.conn.simulation.getTime())

    def get_net_boundary(self) -> Boundary:
        with self._guard("get_net_boundary"):
            (min_x, min_y), (max_x, max_y) = self.conn.simulation.getNetBoundary()
        return (float(min_x), float(min_y)), (float(max_x), float(max_y))

    # ── Vehicles ─────────────────────────────────────────────────────────────

    def vehicle_ids(self) -> List[str]:
        with self._guard("vehicle_ids"):
            return list(self.conn.vehicle.getIDList())

    def vehicle_speed(self, vehicle_id: str) -> float:
        with self._guard("vehicle_speed"):
            return float(self.conn.vehicle.getSpeed(vehicle_id))

    def vehicle_distance(self, vehicle_id: str) -> float:
        with self._guard("vehicle_distance"):
            return float(self.conn.vehicle.getDistance(vehicle_id))

    def vehicle_departure(self, vehicle_id: str) -> float:
        with self._guard("vehicle_departure"):
            return float(self.conn.vehicle.getDeparture(vehicle_id))

    def vehicle_position(self, vehicle_id: str) -> Point:
        with self._guard("vehicle_position"):
            x, y = self.conn.vehicle.getPosition(vehicle_id)
        return float(x), float(y)

    def vehicle_angle(self, vehicle_id: str) -> float:
        with self._guard("vehicle_angle"):
            return float(self.conn.vehicle.getAngle(vehicle_id))

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
        with self._guard("add_vehicle"):
            self.conn.vehicle.add(
                vehicle_id,
                route_id,
                typeID=type_id,
                depart=depart,
                departLane=depart_lane,
                departPos=depart_pos,
                departSpeed=depart_speed,
            )

    def move_vehicle(self, vehicle_id: str, lane_id: str, position: float) -> None:
        with self._guard("move_vehicle"):
            self.conn.vehicle.moveTo(vehicle_id, lane_id, position)

    # ── Edges / lanes ────────────────────────────────────────────────────────

    def edge_ids(self) -> List[str]:
        with self._guard("edge_ids"):
            return list(self.conn.edge.getIDList())

    def lane_count(self, edge_id: str) -> int:
        with self._guard("lane_count"):
            return int(self.conn.edge.getLaneNumber(edge_id))

    def lane_shape(self, lane_id: str) -> List[Point]:
        with self._guard("lane_shape"):
            return [(float(x), float(y)) for x, y in self.conn.lane.getShape(lane_id)]

    def lane_width(self, lane_id: str) -> float:
        with self._guard("lane_width"):
            return float(self.conn.lane.getWidth(lane_id))

    # ── Signals ──────────────────────────────────────────────────────────────

    def signal_ids(self) -> List[str]:
        with self._guard("signal_ids"):
            return list(self.conn.trafficlight.getIDList())

    def controlled_lanes(self, signal_id: str) -> List[str]:
        with self._guard("controlled_lanes"):
            return list(self.conn.trafficlight.getControlledLanes(signal_id))

    def signal_state(self, signal_id: str) -> str:
        with self._guard("signal_state"):
            return str(self.conn.trafficlight.getRedYellowGreenState(signal_id))

    def set_signal_state(self, signal_id: str, state: str) -> None:
        with self._guard("set_signal_state"):
            self.conn.trafficlight.setRedYellowGreenState(signal_id, state)

    def phase_duration(self, signal_id: str) -> float:
        with self._guard("phase_duration"):
            return float(self.conn.trafficlight.getPhaseDuration(signal_id))

    def get_program(self, signal_id: str) -> str:
        with self._guard("get_program"):
            return str(self.conn.trafficlight.getProgram(signal_id))

    def set_program(self, signal_id: str, program_id: str) -> None:
        with self._guard("set_program"):
            self.conn.trafficlight.setProgram(signal_id, program_id)

    def get_phases(self, signal_id: str) -> Tuple[ProgramLogic, ...]:
        with self._guard("get_phases"):
            logics = self.conn.trafficlight.getAllProgramLogics(signal_id)
        return tuple(logic_from_traci(logic) for logic in logics)

    def set_phases(self, signal_id: str, logic: ProgramLogic) -> None:
        log.debug(
            "set_phases %s program=%s phases=%d",
            signal_id, logic.program_id, len(logic.phases),
        )
        with self._guard("set_phases"):
            self.conn.trafficlight.setProgramLogic(signal_id, logic_to_traci(logic))
