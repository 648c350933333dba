"""
EngineClient: the RPC surface the console consumes.

Every call is a synchronous round-trip.  Implementations must raise
:class:`~engine.errors.TransportError` (never a library-specific
exception) so callers can react to ``kind`` alone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Sequence, Tuple

from sim.models import Boundary, Point, ProgramLogic


class EngineClient(ABC):
    """Abstract engine connection.

    Subclasses implement every abstract method.  A single instance is owned
    by one :class:`~sim.session.SimulationSession` and is not re-entrant.
    """

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def preload(self) -> None:
        """Prepare client-side resources before :meth:`start`.  Optional."""

    @abstractmethod
    def start(self, args: Sequence[str]) -> None:
        """Launch the engine with *args* and complete the handshake."""

    @abstractmethod
    def step(self) -> None:
        """Advance the simulation by one tick."""

    @abstractmethod
    def close(self) -> None:
        ...

    @abstractmethod
    def get_time(self) -> float:
        """Current simulation clock in seconds."""

    @abstractmethod
    def get_net_boundary(self) -> Boundary:
        """``((min_x, min_y), (max_x, max_y))`` of the network."""

    # ── Vehicles ─────────────────────────────────────────────────────────────

    @abstractmethod
    def vehicle_ids(self) -> List[str]:
        ...

    @abstractmethod
    def vehicle_speed(self, vehicle_id: str) -> float:
        ...

    @abstractmethod
    def vehicle_distance(self, vehicle_id: str) -> float:
        ...

    @abstractmethod
    def vehicle_departure(self, vehicle_id: str) -> float:
        ...

    @abstractmethod
    def vehicle_position(self, vehicle_id: str) -> Point:
        ...

    @abstractmethod
    def vehicle_angle(self, vehicle_id: str) -> float:
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    def move_vehicle(self, vehicle_id: str, lane_id: str, position: float) -> None:
        ...

    # ── Edges / lanes ────────────────────────────────────────────────────────

    @abstractmethod
    def edge_ids(self) -> List[str]:
        ...

    @abstractmethod
    def lane_count(self, edge_id: str) -> int:
        ...

    @abstractmethod
    def lane_shape(self, lane_id: str) -> List[Point]:
        ...

    @abstractmethod
    def lane_width(self, lane_id: str) -> float:
        ...

    # ── Signals ──────────────────────────────────────────────────────────────

    @abstractmethod
    def signal_ids(self) -> List[str]:
        ...

    @abstractmethod
    def controlled_lanes(self, signal_id: str) -> List[str]:
        ...

    @abstractmethod
    def signal_state(self, signal_id: str) -> str:
        ...

    @abstractmethod
    def set_signal_state(self, signal_id: str, state: str) -> None:
        ...

    @abstractmethod
    def phase_duration(self, signal_id: str) -> float:
        """Duration of the controller's currently active phase."""

    @abstractmethod
    def get_program(self, signal_id: str) -> str:
        """Id of the active program."""

    @abstractmethod
    def set_program(self, signal_id: str, program_id: str) -> None:
        ...

    @abstractmethod
    def get_phases(self, signal_id: str) -> Tuple[ProgramLogic, ...]:
        """Every program the controller knows, first one first."""

    @abstractmethod
    def set_phases(self, signal_id: str, logic: ProgramLogic) -> None:
        """Replace (or add) the program ``logic.program_id``."""
