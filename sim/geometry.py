#!/usr/bin/env python3
"""
sim/geometry.py
===============
Per-connection cache of the road network's lane geometry.

The network topology is static for the lifetime of a connection, so every
edge is walked once after the handshake and never queried again until
the next connect or reset.
"""

from __future__ import annotations

import logging
import math
import threading
from typing import Dict, List, Optional, Sequence

from engine.base import EngineClient
from engine.errors import TransportError
from sim.models import Boundary, LaneShape, Point

log = logging.getLogger("geometry")

_SIGNAL_BACKOFF_M = 2.0
_SIGNAL_LATERAL_M = 1.5


def signal_position(points: Sequence[Point]) -> Optional[Point]:
    """Where to draw a signal head for a lane.

    Placed ~2 m before the lane end, pushed 1.5 m to the left of the
    travel direction so heads of neighbouring lanes don't overlap.
    Returns ``None`` for degenerate shapes.
    """
    if len(points) < 2:
        return None
    (px, py), (lx, ly) = points[-2], points[-1]
    dx, dy = lx - px, ly - py
    length = math.hypot(dx, dy)
    ratio = _SIGNAL_BACKOFF_M / length if length > _SIGNAL_BACKOFF_M else 0.0
    bx, by = lx - ratio * dx, ly - ratio * dy
    if length > 0:
        bx += (-dy / length) * _SIGNAL_LATERAL_M
        by += (dx / length) * _SIGNAL_LATERAL_M
    return bx, by


class GeometryCache:
    """Lane shapes keyed by edge id, plus the world boundary.

    Written once by :meth:`preload` on the connecting thread; read by the
    render thread afterwards.  The lookup tables are swapped in whole.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_edge: Dict[str, List[LaneShape]] = {}
        self._by_lane: Dict[str, LaneShape] = {}
        self._boundary: Optional[Boundary] = None

    # ── loading ───────────────────────────────────────────────────────────

    def preload(self, engine: EngineClient) -> int:
        """Walk every edge once.  Returns the number of lanes cached.

        A failure on one edge is logged and cached as an empty list;
        losing the connection propagates.
        """
        boundary = engine.get_net_boundary()
        by_edge: Dict[str, List[LaneShape]] = {}
        for edge_id in engine.edge_ids():
            try:
                by_edge[edge_id] = self._load_edge(engine, edge_id)
            except TransportError as exc:
                if exc.connection_lost:
                    raise
                log.warning("Failed to get lane shapes: edge=%s, msg=%s", edge_id, exc)
                by_edge[edge_id] = []

        by_lane = {
            lane.lane_id: lane for lanes in by_edge.values() for lane in lanes
        }
        with self._lock:
            self._by_edge = by_edge
            self._by_lane = by_lane
            self._boundary = boundary
        log.info("Road network data preloaded: %d edges, %d lanes", len(by_edge), len(by_lane))
        return len(by_lane)

    @staticmethod
    def _load_edge(engine: EngineClient, edge_id: str) -> List[LaneShape]:
        lanes: List[LaneShape] = []
        for index in range(engine.lane_count(edge_id)):
            lane_id = f"{edge_id}_{index}"
            points = tuple(engine.lane_shape(lane_id))
            if len(points) < 2:
                log.debug("lane %s has a degenerate shape (%d points)", lane_id, len(points))
                continue
            lanes.append(
                LaneShape(
                    edge_id=edge_id,
                    lane_index=index,
                    points=points,
                    width_m=engine.lane_width(lane_id),
                )
            )
        return lanes

    def clear(self) -> None:
        with self._lock:
            self._by_edge = {}
            self._by_lane = {}
            self._boundary = None

    # ── lookups ───────────────────────────────────────────────────────────

    @property
    def boundary(self) -> Optional[Boundary]:
        return self._boundary

    @property
    def loaded(self) -> bool:
        return self._boundary is not None

    def get(self, edge_id: str) -> List[LaneShape]:
        """Lanes of *edge_id*, or ``[]`` for an edge unknown at preload time."""
        return list(self._by_edge.get(edge_id, ()))

    def lane(self, lane_id: str) -> Optional[LaneShape]:
        return self._by_lane.get(lane_id)

    def edges(self) -> List[str]:
        return list(self._by_edge)

    def all_lanes(self) -> List[LaneShape]:
        return [lane for lanes in self._by_edge.values() for lane in lanes]

    def signal_position(self, lane_id: str) -> Optional[Point]:
        """Signal head position for a controlled lane, ``None`` if unknown."""
        lane = self._by_lane.get(lane_id)
        if lane is None:
            return None
        return signal_position(lane.points)
