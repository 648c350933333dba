#!/usr/bin/env python3
"""Visual constants shared across all renderers."""

from __future__ import annotations

from typing import Dict, Sequence, Tuple

from sim.models import FilterMode, SignalColor, VehicleStatus

from .types import ColorRGB


class ViewConstants:
    """Mixin providing every visual / layout constant."""

    BG_COLOR: ColorRGB = (15, 15, 15)
    ROAD_COLOR: ColorRGB = (58, 58, 62)
    LANE_EDGE_COLOR: ColorRGB = (90, 90, 96)
    HUD_BG_COLOR: ColorRGB = (22, 22, 22)
    HUD_BORDER_COLOR: ColorRGB = (42, 42, 42)
    HUD_TEXT_COLOR: ColorRGB = (220, 220, 220)
    HUD_DIM_COLOR: ColorRGB = (130, 130, 130)
    WARNING_COLOR: ColorRGB = (255, 60, 60)
    OK_COLOR: ColorRGB = (0, 255, 127)
    SELECT_COLOR: ColorRGB = (86, 168, 255)

    SIGNAL_COLORS: Dict[SignalColor, ColorRGB] = {
        SignalColor.RED: (255, 60, 60),
        SignalColor.YELLOW: (246, 191, 90),
        SignalColor.GREEN: (0, 220, 110),
        SignalColor.UNKNOWN: (120, 120, 120),
    }

    STATUS_COLORS: Dict[VehicleStatus, ColorRGB] = {
        VehicleStatus.RUNNING: (86, 168, 255),
        VehicleStatus.CONGESTED: (255, 160, 100),
        VehicleStatus.STATIC: (200, 200, 200),
    }

    LEGEND_ITEMS: Sequence[Tuple[str, ColorRGB]] = (
        ("RUNNING", (86, 168, 255)),
        ("CONGESTED", (255, 160, 100)),
        ("STATIC", (200, 200, 200)),
    )

    FILTER_CYCLE: Sequence[FilterMode] = (FilterMode.ALL, FilterMode.RUNNING, FilterMode.CONGESTED)
    BRUSH_CYCLE: Sequence[SignalColor] = (SignalColor.RED, SignalColor.YELLOW, SignalColor.GREEN)

    VEHICLE_LENGTH_M = 5.0
    VEHICLE_WIDTH_M = 2.0
    SIGNAL_RADIUS_M = 0.9
    PICK_RADIUS_M = 4.0

    STATUS_SECONDS = 4.0
    HUD_BLINK_MS = 500

    SCREENSHOT_DIR = "screenshots"
    EXPORT_DIR = "exports"
