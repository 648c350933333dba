#!/usr/bin/env python3
"""
Lane geometry cache tests.
"""

from __future__ import annotations

import unittest

from engine.errors import TransportError, TransportErrorKind
from engine.fake import FakeEngine, FakeWorld
from sim.geometry import GeometryCache, signal_position


def _world() -> FakeWorld:
    return FakeWorld(
        edges={
            "A": [
                ([(0.0, 0.0), (0.0, 100.0)], 3.2),
                ([(3.2, 0.0), (3.2, 100.0)], 3.2),
            ],
            "B": [([(0.0, 100.0)], 3.2)],
            "C": [([(0.0, 0.0), (50.0, 0.0), (50.0, 50.0)], 3.0)],
        },
        boundary=((-10.0, -10.0), (110.0, 110.0)),
    )


class _BrokenEdge(FakeEngine):
    def __init__(self, edge_id: str, kind: TransportErrorKind) -> None:
        super().__init__(world_factory=_world)
        self.edge_id = edge_id
        self.kind = kind

    def lane_count(self, edge_id: str) -> int:
        if edge_id == self.edge_id:
            raise TransportError(self.kind, "lane_count", "boom")
        return super().lane_count(edge_id)


class SignalPositionTests(unittest.TestCase):
    def test_backs_off_from_lane_end_and_shifts_left(self) -> None:
        x, y = signal_position([(0.0, 0.0), (0.0, 10.0)])
        self.assertAlmostEqual(x, -1.5)
        self.assertAlmostEqual(y, 8.0)

    def test_short_segment_uses_the_end_point(self) -> None:
        x, y = signal_position([(0.0, 0.0), (1.0, 0.0)])
        self.assertAlmostEqual(x, 1.0)
        self.assertAlmostEqual(y, 1.5)

    def test_only_last_segment_matters(self) -> None:
        x, y = signal_position([(0.0, 0.0), (50.0, 0.0), (50.0, 50.0)])
        self.assertAlmostEqual(x, 48.5)
        self.assertAlmostEqual(y, 48.0)

    def test_degenerate_shape(self) -> None:
        self.assertIsNone(signal_position([(1.0, 1.0)]))
        self.assertIsNone(signal_position([]))


class GeometryCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = FakeEngine(world_factory=_world)
        self.engine.start(["test"])
        self.cache = GeometryCache()

    def test_preload_caches_drawable_lanes(self) -> None:
        count = self.cache.preload(self.engine)

        self.assertEqual(count, 3)
        self.assertTrue(self.cache.loaded)
        self.assertEqual(self.cache.boundary, ((-10.0, -10.0), (110.0, 110.0)))
        self.assertEqual([lane.lane_id for lane in self.cache.get("A")], ["A_0", "A_1"])
        self.assertEqual(self.cache.get("B"), [])
        self.assertEqual(self.cache.lane("A_1").width_m, 3.2)

    def test_unknown_edge_is_empty(self) -> None:
        self.cache.preload(self.engine)
        self.assertEqual(self.cache.get("nope"), [])
        self.assertIsNone(self.cache.lane("nope_0"))
        self.assertIsNone(self.cache.signal_position("nope_0"))

    def test_preload_does_not_query_again(self) -> None:
        self.cache.preload(self.engine)
        calls = len(self.engine.calls)
        self.cache.get("A")
        self.cache.all_lanes()
        self.cache.signal_position("A_0")
        self.assertEqual(len(self.engine.calls), calls)

    def test_failing_edge_is_cached_empty(self) -> None:
        engine = _BrokenEdge("C", TransportErrorKind.CALL_FAILED)
        engine.start(["test"])

        with self.assertLogs("geometry", level="WARNING"):
            self.cache.preload(engine)

        self.assertEqual(self.cache.get("C"), [])
        self.assertIn("C", self.cache.edges())
        self.assertEqual(len(self.cache.get("A")), 2)

    def test_lost_connection_propagates(self) -> None:
        engine = _BrokenEdge("C", TransportErrorKind.CONNECTION_LOST)
        engine.start(["test"])
        with self.assertRaises(TransportError):
            self.cache.preload(engine)
        self.assertFalse(self.cache.loaded)

    def test_clear(self) -> None:
        self.cache.preload(self.engine)
        self.cache.clear()
        self.assertFalse(self.cache.loaded)
        self.assertEqual(self.cache.all_lanes(), [])


if __name__ == "__main__":
    unittest.main()
