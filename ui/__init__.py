#!/usr/bin/env python3

from .types import ColorRGB, ColorRGBA, StatusLine
from .constants import ViewConstants
from .helpers import ViewHelpers
from .draw_network import NetworkRenderer
from .draw_vehicles import VehicleRenderer
from .hud import HudRenderer
from .pygame_view import ConsoleView, run_pygame_view

__all__ = [
    "ColorRGB",
    "ColorRGBA",
    "StatusLine",
    "ViewConstants",
    "ViewHelpers",
    "NetworkRenderer",
    "VehicleRenderer",
    "HudRenderer",
    "ConsoleView",
    "run_pygame_view",
]
