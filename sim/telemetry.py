#!/usr/bin/env python3
"""
sim/telemetry.py
================
Turns one step's raw engine queries into an immutable
:class:`~sim.models.TelemetryFrame`.

Classification rules
--------------------
* A vehicle is **running** when ``speed > 0`` and **congested** when it is
  running below ``CONGESTION_THRESHOLD_KMH``.
* A controller's state string is zipped with its controlled lanes (stopping
  at the shorter), deduplicated by parent edge so a multi-lane approach
  counts once, and tallied by :class:`~sim.models.SignalColor`.  Unknown
  colours are left out of every tally, including the total.
* Average speed and efficiency are cumulative since connect.

A failure reading one vehicle or controller is logged and that entity is
left out of the frame; only a lost connection aborts aggregation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from engine.base import EngineClient
from engine.errors import TransportError
from sim.errors import AggregationWarning
from sim.models import (
    SignalColor,
    SignalObservation,
    Snapshot,
    TelemetryFrame,
    VehicleDetail,
    VehicleObservation,
    edge_of_lane,
)

log = logging.getLogger("telemetry")


def format_clock(seconds: float) -> str:
    """Engine clock seconds → ``HH:MM:SS``."""
    total = max(0, int(seconds))
    return f"{total // 3600:02d}:{(total % 3600) // 60:02d}:{total % 60:02d}"


@dataclass
class Accumulators:
    """Running distance/time totals since connect.

    Owned by the session and handed to :meth:`TelemetryAggregator.aggregate`
    by reference; only ever grows until :meth:`reset`.
    """

    total_distance_m: float = 0.0
    total_time_s: float = 0.0

    def add(self, distance_m: float, time_s: float) -> None:
        self.total_distance_m += max(0.0, distance_m)
        self.total_time_s += max(0.0, time_s)

    def reset(self) -> None:
        self.total_distance_m = 0.0
        self.total_time_s = 0.0

    @property
    def avg_speed_kmh(self) -> float:
        if self.total_time_s <= 0:
            return 0.0
        return (self.total_distance_m / 1000.0) / (self.total_time_s / 3600.0)


@dataclass
class SignalTally:
    total: int = 0
    red: int = 0
    green: int = 0
    yellow: int = 0

    def count(self, color: SignalColor) -> None:
        if color is SignalColor.UNKNOWN:
            return
        self.total += 1
        if color is SignalColor.GREEN:
            self.green += 1
        elif color is SignalColor.YELLOW:
            self.yellow += 1
        else:
            self.red += 1

    def merge(self, other: "SignalTally") -> None:
        self.total += other.total
        self.red += other.red
        self.green += other.green
        self.yellow += other.yellow


def tally_signal(observation: SignalObservation) -> SignalTally:
    """Edge-deduplicated colour tally of one controller.

    The first lane seen for an edge decides that edge's colour.
    """
    tally = SignalTally()
    counted: Set[str] = set()
    for lane_id, color in observation.lane_colors():
        edge_id = edge_of_lane(lane_id)
        if edge_id in counted:
            continue
        counted.add(edge_id)
        tally.count(color)
    return tally


def _skip(kind: str, entity_id: str, exc: TransportError) -> None:
    log.warning("%s: skip %s %s: %s", AggregationWarning.__name__, kind, entity_id, exc)


class TelemetryAggregator:
    """Reads vehicles and controllers from the engine and builds a frame."""

    def aggregate(
        self,
        engine: EngineClient,
        accumulators: Accumulators,
        total_steps: int,
    ) -> TelemetryFrame:
        """Build the frame for the step that just completed.

        *accumulators* is updated only after every read succeeded, so an
        aborted aggregation leaves the running totals untouched.
        """
        clock = engine.get_time()

        vehicles: List[VehicleObservation] = []
        step_distance = 0.0
        step_time = 0.0
        for vehicle_id in engine.vehicle_ids():
            observation = self._read_vehicle(engine, vehicle_id)
            if observation is None:
                continue
            vehicles.append(observation)
            step_distance += max(0.0, observation.odometer_m)
            step_time += max(0.0, clock - observation.departure_sec)

        signals: List[SignalObservation] = []
        tally = SignalTally()
        for signal_id in engine.signal_ids():
            observation = self._read_signal(engine, signal_id)
            if observation is None:
                continue
            signals.append(observation)
            tally.merge(tally_signal(observation))

        accumulators.add(step_distance, step_time)

        running = sum(1 for v in vehicles if v.is_running)
        congested = sum(1 for v in vehicles if v.is_congested)
        total = len(vehicles)
        snapshot = Snapshot(
            vehicle_total=total,
            vehicle_running=running,
            vehicle_congested=congested,
            signal_total=tally.total,
            signal_red=tally.red,
            signal_green=tally.green,
            signal_yellow=tally.yellow,
            total_steps=total_steps,
            avg_speed_kmh=accumulators.avg_speed_kmh,
            traffic_efficiency_pct=(running / total * 100.0) if total > 0 else 0.0,
            simulation_time_label=format_clock(clock),
            simulation_time_sec=clock,
        )
        log.debug(
            "step=%d vehicles=%d running=%d congested=%d signals=%d",
            total_steps, total, running, congested, tally.total,
        )
        return TelemetryFrame(snapshot=snapshot, vehicles=tuple(vehicles), signals=tuple(signals))

    @staticmethod
    def _read_vehicle(engine: EngineClient, vehicle_id: str) -> Optional[VehicleObservation]:
        try:
            x, y = engine.vehicle_position(vehicle_id)
            return VehicleObservation(
                id=vehicle_id,
                speed_mps=engine.vehicle_speed(vehicle_id),
                odometer_m=engine.vehicle_distance(vehicle_id),
                departure_sec=engine.vehicle_departure(vehicle_id),
                x=x,
                y=y,
                heading_deg=engine.vehicle_angle(vehicle_id),
            )
        except TransportError as exc:
            if exc.connection_lost:
                raise
            _skip("vehicle", vehicle_id, exc)
            return None

    @staticmethod
    def _read_signal(engine: EngineClient, signal_id: str) -> Optional[SignalObservation]:
        try:
            return SignalObservation(
                id=signal_id,
                controlled_lanes=tuple(engine.controlled_lanes(signal_id)),
                state=engine.signal_state(signal_id),
            )
        except TransportError as exc:
            if exc.connection_lost:
                raise
            _skip("signal", signal_id, exc)
            return None

    def vehicle_details(self, engine: EngineClient) -> Tuple[float, List[VehicleDetail]]:
        """Engine clock and one detail row per readable vehicle."""
        clock = engine.get_time()
        rows: List[VehicleDetail] = []
        for vehicle_id in engine.vehicle_ids():
            observation = self._read_vehicle(engine, vehicle_id)
            if observation is None:
                continue
            rows.append(
                VehicleDetail(
                    id=vehicle_id,
                    status=observation.status,
                    speed_kmh=observation.speed_kmh,
                    distance_m=observation.odometer_m,
                    travel_time_s=max(0.0, clock - observation.departure_sec),
                )
            )
        return clock, rows
