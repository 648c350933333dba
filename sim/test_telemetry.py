#!/usr/bin/env python3
"""
Aggregation tests: vehicle classification, edge-deduplicated signal
tallies, cumulative averages and per-entity failure handling.
"""

from __future__ import annotations

import unittest

from engine.errors import TransportError, TransportErrorKind
from engine.fake import FakeEngine, FakeSignal, FakeVehicle, FakeWorld
from sim.models import Phase, ProgramLogic, SignalColor, SignalObservation, VehicleStatus
from sim.telemetry import (
    Accumulators,
    SignalTally,
    TelemetryAggregator,
    format_clock,
    tally_signal,
)


def _signal(lanes, state: str) -> FakeSignal:
    return FakeSignal(lanes=list(lanes), logics=[ProgramLogic("0", phases=(Phase(state, 10.0),))])


def _engine(world: FakeWorld) -> FakeEngine:
    engine = FakeEngine(world_factory=lambda: world)
    engine.start(["test"])
    return engine


class _LosesConnectionOn(FakeEngine):
    """Drops the connection when the heading of one vehicle is read."""

    def __init__(self, world: FakeWorld, vehicle_id: str) -> None:
        super().__init__(world_factory=lambda: world)
        self.vehicle_id = vehicle_id

    def vehicle_angle(self, vehicle_id: str) -> float:
        if vehicle_id == self.vehicle_id:
            raise TransportError(TransportErrorKind.CONNECTION_LOST, "vehicle_angle", "socket closed")
        return super().vehicle_angle(vehicle_id)


class ClockFormatTests(unittest.TestCase):
    def test_formats_hours_minutes_seconds(self) -> None:
        self.assertEqual(format_clock(3725), "01:02:05")
        self.assertEqual(format_clock(0), "00:00:00")
        self.assertEqual(format_clock(59.9), "00:00:59")

    def test_negative_clock_is_zero(self) -> None:
        self.assertEqual(format_clock(-4), "00:00:00")


class SignalTallyTests(unittest.TestCase):
    def test_lanes_of_one_edge_count_once(self) -> None:
        tally = tally_signal(SignalObservation("J", ("A_0", "A_0", "B_0"), "grr"))
        self.assertEqual((tally.total, tally.green, tally.red, tally.yellow), (2, 1, 1, 0))

    def test_first_lane_of_an_edge_decides(self) -> None:
        tally = tally_signal(SignalObservation("J", ("A_0", "A_1"), "ry"))
        self.assertEqual((tally.total, tally.red, tally.yellow), (1, 1, 0))

    def test_unknown_colours_are_left_out_of_the_total(self) -> None:
        tally = tally_signal(SignalObservation("J", ("A_0", "B_0", "C_0"), "GOy"))
        self.assertEqual((tally.total, tally.green, tally.yellow, tally.red), (2, 1, 1, 0))

    def test_state_longer_than_lanes_is_truncated(self) -> None:
        tally = tally_signal(SignalObservation("J", ("A_0",), "GGGG"))
        self.assertEqual(tally.total, 1)

    def test_merge(self) -> None:
        tally = SignalTally()
        tally.count(SignalColor.RED)
        other = SignalTally()
        other.count(SignalColor.GREEN)
        other.count(SignalColor.UNKNOWN)
        tally.merge(other)
        self.assertEqual((tally.total, tally.red, tally.green), (2, 1, 1))


class AccumulatorTests(unittest.TestCase):
    def test_average_speed_is_distance_over_time(self) -> None:
        acc = Accumulators()
        acc.add(100.0, 10.0)
        self.assertAlmostEqual(acc.avg_speed_kmh, 36.0)

    def test_no_time_means_zero_average(self) -> None:
        self.assertEqual(Accumulators().avg_speed_kmh, 0.0)

    def test_negative_contributions_are_ignored(self) -> None:
        acc = Accumulators()
        acc.add(-5.0, -1.0)
        self.assertEqual((acc.total_distance_m, acc.total_time_s), (0.0, 0.0))


class AggregatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.aggregator = TelemetryAggregator()

    def test_static_vehicles_give_zero_efficiency(self) -> None:
        world = FakeWorld(vehicles={f"v{i}": FakeVehicle(f"v{i}") for i in range(3)})
        frame = self.aggregator.aggregate(_engine(world), Accumulators(), 1)

        snap = frame.snapshot
        self.assertEqual(snap.vehicle_total, 3)
        self.assertEqual(snap.vehicle_running, 0)
        self.assertEqual(snap.vehicle_static, 3)
        self.assertEqual(snap.traffic_efficiency_pct, 0.0)
        self.assertTrue(all(v.status is VehicleStatus.STATIC for v in frame.vehicles))

    def test_empty_world(self) -> None:
        frame = self.aggregator.aggregate(_engine(FakeWorld()), Accumulators(), 0)
        self.assertEqual(frame.snapshot.vehicle_total, 0)
        self.assertEqual(frame.snapshot.traffic_efficiency_pct, 0.0)
        self.assertEqual(frame.snapshot.avg_speed_kmh, 0.0)

    def test_running_and_congested_classification(self) -> None:
        world = FakeWorld(
            vehicles={
                "parked": FakeVehicle("parked", speed=0.0),
                "crawler": FakeVehicle("crawler", speed=1.0),
                "cruiser": FakeVehicle("cruiser", speed=10.0),
                "cruiser2": FakeVehicle("cruiser2", speed=12.0),
            }
        )
        snap = self.aggregator.aggregate(_engine(world), Accumulators(), 1).snapshot
        self.assertEqual(snap.vehicle_running, 3)
        self.assertEqual(snap.vehicle_congested, 1)
        self.assertAlmostEqual(snap.traffic_efficiency_pct, 75.0)

    def test_signals_are_tallied_per_edge(self) -> None:
        world = FakeWorld(
            signals={
                "J": _signal(["A_0", "A_0", "B_0"], "grr"),
                "K": _signal(["C_0"], "y"),
            }
        )
        snap = self.aggregator.aggregate(_engine(world), Accumulators(), 1).snapshot
        self.assertEqual(snap.signal_total, 3)
        self.assertEqual(snap.signal_green, 1)
        self.assertEqual(snap.signal_red, 1)
        self.assertEqual(snap.signal_yellow, 1)

    def test_average_speed_accumulates_across_steps(self) -> None:
        world = FakeWorld(vehicles={"v": FakeVehicle("v", speed=10.0, distance=100.0)}, time=10.0)
        engine = _engine(world)
        acc = Accumulators()

        first = self.aggregator.aggregate(engine, acc, 1).snapshot
        self.assertAlmostEqual(first.avg_speed_kmh, 36.0)
        self.assertEqual(first.simulation_time_label, "00:00:10")

        second = self.aggregator.aggregate(engine, acc, 2).snapshot
        self.assertAlmostEqual(second.avg_speed_kmh, 36.0)
        self.assertAlmostEqual(acc.total_distance_m, 200.0)
        self.assertEqual(second.total_steps, 2)

    def test_failing_vehicle_is_skipped_and_logged(self) -> None:
        world = FakeWorld(vehicles={f"v{i}": FakeVehicle(f"v{i}", speed=5.0) for i in range(3)})
        engine = _engine(world)
        engine.failing_vehicles.add("v1")

        with self.assertLogs("telemetry", level="WARNING") as logs:
            frame = self.aggregator.aggregate(engine, Accumulators(), 1)

        self.assertEqual([v.id for v in frame.vehicles], ["v0", "v2"])
        self.assertEqual(frame.snapshot.vehicle_total, 2)
        self.assertIn("v1", logs.output[0])

    def test_failing_signal_is_skipped(self) -> None:
        world = FakeWorld(signals={"J": _signal(["A_0"], "G"), "K": _signal(["B_0"], "r")})
        engine = _engine(world)
        engine.failing_signals.add("K")

        with self.assertLogs("telemetry", level="WARNING"):
            snap = self.aggregator.aggregate(engine, Accumulators(), 1).snapshot
        self.assertEqual((snap.signal_total, snap.signal_green, snap.signal_red), (1, 1, 0))

    def test_lost_connection_aborts_and_leaves_totals_untouched(self) -> None:
        world = FakeWorld(
            vehicles={
                "a": FakeVehicle("a", speed=3.0, distance=30.0),
                "b": FakeVehicle("b", speed=3.0, distance=30.0),
            },
            time=5.0,
        )
        engine = _LosesConnectionOn(world, "b")
        engine.start(["test"])
        acc = Accumulators(total_distance_m=10.0, total_time_s=2.0)

        with self.assertRaises(TransportError) as ctx:
            self.aggregator.aggregate(engine, acc, 1)

        self.assertTrue(ctx.exception.connection_lost)
        self.assertEqual((acc.total_distance_m, acc.total_time_s), (10.0, 2.0))

    def test_vehicle_details(self) -> None:
        world = FakeWorld(
            vehicles={"v": FakeVehicle("v", speed=10.0, distance=42.0, departure=3.0)},
            time=8.0,
        )
        clock, rows = self.aggregator.vehicle_details(_engine(world))
        self.assertEqual(clock, 8.0)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].status, VehicleStatus.RUNNING)
        self.assertAlmostEqual(rows[0].speed_kmh, 36.0)
        self.assertEqual(rows[0].travel_time_s, 5.0)


if __name__ == "__main__":
    unittest.main()
