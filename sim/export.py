#!/usr/bin/env python3
"""
sim/export.py
=============
Flat CSV export of a :class:`~sim.models.Snapshot` (``Metric,Value`` rows)
and of the vehicle detail table, written with pandas.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Optional, Sequence

import pandas as pd

from sim.errors import ExportError, ExportErrorKind
from sim.models import Snapshot, VehicleDetail

log = logging.getLogger("export")

DETAIL_COLUMNS = ["Vehicle ID", "Status", "Speed (km/h)", "Distance (m)", "Travel Time (s)"]


def default_filename(now: Optional[datetime] = None) -> str:
    return f"simulation_stats{(now or datetime.now()):%Y%m%d_%H%M%S}.csv"


def snapshot_frame(snapshot: Snapshot) -> pd.DataFrame:
    return pd.DataFrame(list(snapshot.to_rows()), columns=["Metric", "Value"])


def details_frame(rows: Sequence[VehicleDetail]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            (r.id, r.status.value, round(r.speed_kmh, 1), round(r.distance_m, 1), round(r.travel_time_s, 1))
            for r in rows
        ],
        columns=DETAIL_COLUMNS,
    )


def _write(frame: pd.DataFrame, path: str) -> str:
    path = os.path.abspath(path)
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        frame.to_csv(path, index=False)
    except OSError as exc:
        log.error("Export failed: %s", exc)
        raise ExportError(ExportErrorKind.WRITE_FAILED, f"Cannot write {path}: {exc}") from exc
    log.info("Exported %d rows to %s", len(frame), path)
    return path


def export_snapshot(snapshot: Optional[Snapshot], path: Optional[str] = None) -> str:
    """Write *snapshot* as CSV; returns the absolute path written.

    *path* may be a directory, in which case a timestamped file name is
    used inside it.
    """
    if snapshot is None:
        raise ExportError(ExportErrorKind.NO_DATA, "No simulation data available yet")
    if path is None:
        path = default_filename()
    elif os.path.isdir(path):
        path = os.path.join(path, default_filename())
    return _write(snapshot_frame(snapshot), path)


def export_vehicle_details(rows: Sequence[VehicleDetail], path: str) -> str:
    if not rows:
        raise ExportError(ExportErrorKind.NO_DATA, "No vehicles in the simulation")
    return _write(details_frame(rows), path)
