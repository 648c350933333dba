#!/usr/bin/env python3
"""
config.py
=========
Thresholds, zoom limits, speed levels and window defaults for the console.

Paths and the API address are also taken from flags or environment
variables (see :mod:`main`).  Nothing here imports project packages.
"""

# ── Engine launch ────────────────────────────────────────────────────────────
ENGINE_EXECUTABLE_NAMES: tuple = ("sumo", "sumo-gui", "sumo.exe", "sumo-gui.exe")
ENGINE_START_FLAGS: tuple = ("--start",)
TRACI_LABEL: str = "console"

# ── Telemetry ────────────────────────────────────────────────────────────────
CONGESTION_THRESHOLD_KMH: float = 5.0

# ── Continuous mode ──────────────────────────────────────────────────────────
SPEED_LEVEL_MIN: int = 1
SPEED_LEVEL_MAX: int = 10
MIN_STEP_INTERVAL_MS: int = 100
MAX_STEP_INTERVAL_MS: int = 1000

# ── Viewport ─────────────────────────────────────────────────────────────────
MIN_SCALE: float = 0.1
MAX_SCALE: float = 5.0
ZOOM_IN_FACTOR: float = 1.1
ZOOM_OUT_FACTOR: float = 0.9
PAN_STEP_PX: int = 40

# ── Vehicle injection ────────────────────────────────────────────────────────
DEFAULT_VEHICLE_TYPE: str = "DEFAULT_VEHTYPE"

# ── UI defaults ──────────────────────────────────────────────────────────────
WINDOW_WIDTH: int = 1200
WINDOW_HEIGHT: int = 800
TARGET_FPS: int = 60

# ── Remote API ───────────────────────────────────────────────────────────────
API_HOST: str = "127.0.0.1"
API_PORT: int = 8000
API_BUS_DRAIN_S: float = 0.25          # event bus drain period when no window runs
