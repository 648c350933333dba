#!/usr/bin/env python3
"""
CSV export tests.
"""

from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime

import pandas as pd

from sim.errors import ExportError, ExportErrorKind
from sim.export import (
    DETAIL_COLUMNS,
    default_filename,
    export_snapshot,
    export_vehicle_details,
    snapshot_frame,
)
from sim.models import Snapshot, VehicleDetail, VehicleStatus

SNAPSHOT = Snapshot(
    vehicle_total=4,
    vehicle_running=3,
    vehicle_congested=1,
    signal_total=6,
    signal_red=3,
    signal_green=2,
    signal_yellow=1,
    total_steps=120,
    avg_speed_kmh=31.5,
    traffic_efficiency_pct=75.0,
    simulation_time_label="00:02:00",
    simulation_time_sec=120.0,
)


class ExportTests(unittest.TestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = tmp.name

    def test_default_filename(self) -> None:
        self.assertEqual(
            default_filename(datetime(2024, 1, 2, 3, 4, 5)),
            "simulation_stats20240102_030405.csv",
        )

    def test_snapshot_rows(self) -> None:
        frame = snapshot_frame(SNAPSHOT)
        self.assertEqual(list(frame.columns), ["Metric", "Value"])
        self.assertEqual(len(frame), 11)
        self.assertEqual(frame.iloc[0].tolist(), ["Total Vehicles", 4])
        self.assertEqual(frame.iloc[-1].tolist(), ["Simulation Time", "00:02:00"])

    def test_no_snapshot(self) -> None:
        with self.assertRaises(ExportError) as ctx:
            export_snapshot(None, self.dir)
        self.assertIs(ctx.exception.kind, ExportErrorKind.NO_DATA)

    def test_directory_gets_timestamped_name(self) -> None:
        path = export_snapshot(SNAPSHOT, self.dir)
        self.assertEqual(os.path.dirname(path), os.path.abspath(self.dir))
        self.assertTrue(os.path.basename(path).startswith("simulation_stats"))
        self.assertTrue(path.endswith(".csv"))

    def test_nested_directories_are_created(self) -> None:
        target = os.path.join(self.dir, "a", "b", "stats.csv")
        path = export_snapshot(SNAPSHOT, target)
        self.assertEqual(path, os.path.abspath(target))
        read = pd.read_csv(path)
        metrics = dict(zip(read["Metric"], read["Value"]))
        self.assertEqual(metrics["Average Speed (km/h)"], "31.5")

    def test_write_failure(self) -> None:
        blocker = os.path.join(self.dir, "blocker")
        with open(blocker, "w") as f:
            f.write("")
        with self.assertRaises(ExportError) as ctx:
            export_snapshot(SNAPSHOT, os.path.join(blocker, "stats.csv"))
        self.assertIs(ctx.exception.kind, ExportErrorKind.WRITE_FAILED)

    def test_vehicle_details(self) -> None:
        rows = [
            VehicleDetail("v1", VehicleStatus.RUNNING, 42.44, 100.06, 12.0),
            VehicleDetail("v2", VehicleStatus.STATIC, 0.0, 0.0, 3.0),
        ]
        path = export_vehicle_details(rows, os.path.join(self.dir, "details.csv"))
        read = pd.read_csv(path)
        self.assertEqual(list(read.columns), DETAIL_COLUMNS)
        self.assertEqual(read["Status"].tolist(), ["Running", "Static"])
        self.assertAlmostEqual(read["Speed (km/h)"][0], 42.4)

    def test_no_vehicles(self) -> None:
        with self.assertRaises(ExportError) as ctx:
            export_vehicle_details([], os.path.join(self.dir, "details.csv"))
        self.assertIs(ctx.exception.kind, ExportErrorKind.NO_DATA)


if __name__ == "__main__":
    unittest.main()
