#!/usr/bin/env python3
"""
Console window: the drawing and HUD mixins composed over a session.

Module layout
─────────────
    ui/
    ├── types.py           – ColorRGB, ColorRGBA, StatusLine
    ├── constants.py       – ViewConstants mixin (all class-level constants)
    ├── helpers.py         – ViewHelpers mixin  (projection, fonts, text)
    ├── draw_network.py    – NetworkRenderer mixin (lanes, signal heads)
    ├── draw_vehicles.py   – VehicleRenderer mixin (vehicle sprites)
    ├── hud.py             – HudRenderer mixin  (stats, status, editor, help)
    └── pygame_view.py     – ConsoleView (this file – main loop)

The view never touches the engine.  Every key maps to a session command;
results come back on the session's event bus, drained once per frame.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Callable, Optional, Tuple

import pygame

from bus import TOPIC_ERROR, TOPIC_SIGNALS, TOPIC_STATUS, SessionEvent
from config import PAN_STEP_PX, TARGET_FPS, WINDOW_HEIGHT, WINDOW_WIDTH
from sim.errors import ConsoleError
from sim.export import default_filename
from sim.session import SimulationSession
from sim.signals import EditMode, EditState

from .constants import ViewConstants
from .draw_network import NetworkRenderer
from .draw_vehicles import VehicleRenderer
from .helpers import ViewHelpers
from .hud import HudRenderer
from .types import StatusLine

log = logging.getLogger("ui")

_SPEED_KEYS = {getattr(pygame, f"K_{d}"): (d or 10) for d in range(10)}

_MODE_KEYS = {
    pygame.K_F5: EditMode.ALL_RED,
    pygame.K_F6: EditMode.ALL_YELLOW,
    pygame.K_F7: EditMode.ALL_GREEN,
    pygame.K_F8: EditMode.CUSTOM,
}


class ConsoleView(
    ViewConstants,
    ViewHelpers,
    NetworkRenderer,
    VehicleRenderer,
    HudRenderer,
):
    """Operator console window powered by Pygame.

    Parameters
    ----------
    session : SimulationSession
        The session to drive.  The view registers itself as the session's
        render target.
    engine_path, config_path : str or None
        Used by the *connect* key.
    inject_route : (edge_id, route_id) or None
        Where the *inject* key adds vehicles.
    """

    def __init__(
        self,
        session: SimulationSession,
        width: int = WINDOW_WIDTH,
        height: int = WINDOW_HEIGHT,
        fps: int = TARGET_FPS,
        engine_path: Optional[str] = None,
        config_path: Optional[str] = None,
        inject_route: Optional[Tuple[str, str]] = None,
    ):
        self.session = session
        self.width = width
        self.height = height
        self.fps = fps
        self.engine_path = engine_path
        self.config_path = config_path
        self.inject_route = inject_route

        self.screen: Optional[pygame.Surface] = None
        self.clock: Optional[pygame.time.Clock] = None
        self.font_small: Optional[pygame.font.Font] = None
        self.font_tiny: Optional[pygame.font.Font] = None
        self.font_title: Optional[pygame.font.Font] = None

        self.time_seconds = 0.0
        self.dirty = True
        self.status = StatusLine()
        self.brush = self.BRUSH_CYCLE[0]

        # UI state
        self.show_help = True
        self.show_debug = False
        self.show_legend = True
        self.show_vehicle_labels = False
        self.show_signal_labels = True
        self._drag_from: Optional[Tuple[int, int]] = None

        session.render_target = self
        session.bus.subscribe(TOPIC_STATUS, self._on_status)
        session.bus.subscribe(TOPIC_ERROR, self._on_error)
        session.bus.subscribe(TOPIC_SIGNALS, self._on_signals)

    # ------------------------------------------------------------------ #
    #  Render target / bus handlers                                        #
    # ------------------------------------------------------------------ #
    def invalidate(self) -> None:
        self.dirty = True

    def _say(self, text: str, is_error: bool = False) -> None:
        self.status = StatusLine(text, is_error, self.time_seconds + self.STATUS_SECONDS)

    def _on_status(self, event: SessionEvent) -> None:
        message = event.payload.get("message")
        if message:
            self._say(message)

    def _on_error(self, event: SessionEvent) -> None:
        self._say(f"{event.payload.get('operation')}: {event.payload.get('message')}", is_error=True)

    def _on_signals(self, event: SessionEvent) -> None:
        phases = event.payload.get("phases", ())
        self._say(f"Traffic light {event.payload.get('signal_id')} now has {len(phases)} phases")

    def _command(self, fn: Callable, *args, done: str = ""):
        """Run a session command; operator errors end up in the status bar."""
        try:
            result = fn(*args)
        except ConsoleError as exc:
            log.warning("%s failed: %s", getattr(fn, "__name__", "command"), exc)
            self._say(str(exc), is_error=True)
            return None
        if done:
            self._say(done)
        self.dirty = True
        return result

    # ------------------------------------------------------------------ #
    #  Resize / screenshot                                                 #
    # ------------------------------------------------------------------ #
    def _handle_resize(self, new_w: int, new_h: int) -> None:
        self.width = max(400, new_w)
        self.height = max(300, new_h)
        self.screen = pygame.display.set_mode((self.width, self.height), pygame.RESIZABLE)
        self.dirty = True

    def _take_screenshot(self) -> None:
        if self.screen is None:
            return
        os.makedirs(self.SCREENSHOT_DIR, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.SCREENSHOT_DIR, f"console_{stamp}.png")
        pygame.image.save(self.screen, path)
        self._say(f"Saved {path}")

    # ------------------------------------------------------------------ #
    #  Signal editing                                                      #
    # ------------------------------------------------------------------ #
    def _edit_duration(self) -> float:
        registry = self.session.signals
        controller, index = registry.selected, registry.selected_phase
        if controller is None or index is None or index >= len(controller.phases):
            return 0.0
        return controller.phases[index].duration

    def _next_controller(self) -> None:
        ids = self.session.signals.ids()
        if not ids:
            return
        current = self.session.signals.selected
        index = (ids.index(current.id) + 1) % len(ids) if current is not None else 0
        if self._command(self.session.signals.select_controller, ids[index]) is not None:
            self._command(self.session.signals.select_phase, 0)

    def _step_phase(self, delta: int) -> None:
        registry = self.session.signals
        if registry.selected is None or not registry.selected.phases:
            return
        current = registry.selected_phase or 0
        self._command(registry.select_phase, (current + delta) % len(registry.selected.phases))

    def _remove_selected_phase(self) -> None:
        registry = self.session.signals
        if registry.selected_phase is None:
            self._say("Select a phase first", is_error=True)
            return
        self._command(registry.remove_phase, registry.selected_phase, done="Phase removed")

    def _paint_lane(self, pos: Tuple[int, int]) -> bool:
        registry = self.session.signals
        if registry.state is not EditState.EDITING or registry.mode is not EditMode.CUSTOM:
            return False
        lane_id = self._lane_at(pos)
        if lane_id is None:
            return False
        self._command(registry.set_lane_color, lane_id, self.brush)
        return True

    # ------------------------------------------------------------------ #
    #  Input                                                               #
    # ------------------------------------------------------------------ #
    def _handle_key(self, event: pygame.event.Event) -> None:
        session = self.session
        key = event.key
        registry = session.signals

        if self.show_help and key not in (pygame.K_ESCAPE,):
            self.show_help = False
            if key == pygame.K_h:
                return

        if key == pygame.K_c:
            if not (self.engine_path and self.config_path):
                self._say("No SUMO binary/config given on the command line", is_error=True)
            else:
                session.connect_in_background(self.engine_path, self.config_path)
        elif key == pygame.K_d:
            self._command(session.disconnect)
        elif key == pygame.K_n:
            self._command(session.step)
        elif key == pygame.K_SPACE:
            if session.continuous_running:
                self._command(session.stop_continuous)
            else:
                self._command(session.start_continuous)
        elif key in _SPEED_KEYS:
            ms = session.set_speed_level(_SPEED_KEYS[key])
            self._say(f"Speed level {_SPEED_KEYS[key]} ({ms} ms per step)")
        elif key == pygame.K_r:
            if session.is_connected:
                session.reset_in_background()
            else:
                self._say("Please connect to SUMO first!", is_error=True)
        elif key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
            session.zoom_in()
        elif key in (pygame.K_MINUS, pygame.K_KP_MINUS):
            session.zoom_out()
        elif key == pygame.K_LEFT:
            session.pan(PAN_STEP_PX, 0)
        elif key == pygame.K_RIGHT:
            session.pan(-PAN_STEP_PX, 0)
        elif key == pygame.K_UP:
            session.pan(0, PAN_STEP_PX)
        elif key == pygame.K_DOWN:
            session.pan(0, -PAN_STEP_PX)
        elif key == pygame.K_HOME:
            session.reset_view()
        elif key == pygame.K_t:
            session.toggle_translate_mode()
        elif key == pygame.K_f:
            cycle = list(self.FILTER_CYCLE)
            session.set_filter_mode(cycle[(cycle.index(session.filter_mode) + 1) % len(cycle)])
            self._say(f"Filter: {session.filter_mode.value}")
        elif key == pygame.K_i:
            if self.inject_route is None:
                self._say("No injection route configured", is_error=True)
            else:
                edge_id, route_id = self.inject_route
                self._command(session.inject_vehicles, edge_id, route_id, 30.0, 1, done="Vehicle injected")
        elif key == pygame.K_e:
            path = os.path.join(self.EXPORT_DIR, default_filename())
            written = self._command(session.export_stats, path)
            if written:
                self._say(f"Exported {written}")
        elif key == pygame.K_v:
            path = os.path.join(self.EXPORT_DIR, "vehicle_details_" + default_filename()[len("simulation_stats"):])
            written = self._command(session.export_vehicle_details, path)
            if written:
                self._say(f"Exported {written}")
        elif key == pygame.K_l:
            self.show_vehicle_labels = not self.show_vehicle_labels
        elif key == pygame.K_k:
            self.show_signal_labels = not self.show_signal_labels
        elif key == pygame.K_TAB:
            self._next_controller()
        elif key == pygame.K_PAGEUP:
            self._step_phase(-1)
        elif key == pygame.K_PAGEDOWN:
            self._step_phase(1)
        elif key in _MODE_KEYS:
            self._command(registry.enter_mode, _MODE_KEYS[key])
        elif key == pygame.K_b:
            cycle = list(self.BRUSH_CYCLE)
            self.brush = cycle[(cycle.index(self.brush) + 1) % len(cycle)]
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._command(registry.commit, self._edit_duration(), done="Phase updated")
        elif key == pygame.K_ESCAPE:
            if registry.state is EditState.EDITING:
                registry.abandon()
            else:
                self.show_help = False
        elif key == pygame.K_INSERT:
            self._command(registry.add_phase, done="Phase added")
        elif key == pygame.K_DELETE:
            self._remove_selected_phase()
        elif key == pygame.K_h:
            self.show_help = True
        elif key == pygame.K_F3:
            self.show_debug = not self.show_debug
        elif key == pygame.K_F12:
            self._take_screenshot()
        self.dirty = True

    def _handle_mouse(self, event: pygame.event.Event) -> None:
        session = self.session
        if event.type == pygame.MOUSEWHEEL:
            if event.y > 0:
                session.zoom_in()
            elif event.y < 0:
                session.zoom_out()
        elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
            if self._paint_lane(event.pos):
                return
            if session.viewport.translate_mode:
                self._drag_from = event.pos
                if not session.viewport.pan_mode:
                    session.toggle_pan_mode()
        elif event.type == pygame.MOUSEBUTTONUP and event.button == 1:
            self._drag_from = None
            if session.viewport.pan_mode:
                session.toggle_pan_mode()
        elif event.type == pygame.MOUSEMOTION and self._drag_from is not None:
            dx = event.pos[0] - self._drag_from[0]
            dy = event.pos[1] - self._drag_from[1]
            self._drag_from = event.pos
            session.pan(dx, dy)

    # ------------------------------------------------------------------ #
    #  Main loop                                                           #
    # ------------------------------------------------------------------ #
    def render(self, delta_time: float) -> None:
        surface = self.screen
        surface.fill(self.BG_COLOR)

        frame = self.session.last_frame
        visible = self.session.visible_vehicles()
        if self.session.geometry.loaded:
            self.draw_network(surface)
        if frame is not None:
            self.draw_signals(surface, frame.signals)
        self.draw_vehicles(surface, visible)

        self.draw_stats_panel(surface, self.session.last_snapshot)
        self.draw_editor_panel(surface)
        if self.show_legend:
            self._draw_legend(surface)
        if self.show_debug:
            self._draw_debug_overlay(surface, len(visible), delta_time)
        self.draw_status_bar(surface)
        if self.show_help:
            self._draw_help(surface)

    def run(self) -> None:
        pygame.init()
        pygame.display.set_caption("TRAFFIC CONSOLE")
        self.screen = pygame.display.set_mode((self.width, self.height), pygame.RESIZABLE)
        self.clock = pygame.time.Clock()
        self.font_small = self._load_font(13, bold=False)
        self.font_tiny = self._load_font(11, bold=False)
        self.font_title = self._load_font(28, bold=True)

        running = True
        try:
            while running:
                delta_time = self.clock.tick(self.fps) / 1000.0
                self.time_seconds += delta_time

                for event in pygame.event.get():
                    if event.type == pygame.QUIT:
                        running = False
                    elif event.type == pygame.VIDEORESIZE:
                        self._handle_resize(event.w, event.h)
                    elif event.type == pygame.KEYDOWN:
                        self._handle_key(event)
                    elif event.type in (
                        pygame.MOUSEWHEEL,
                        pygame.MOUSEBUTTONDOWN,
                        pygame.MOUSEBUTTONUP,
                        pygame.MOUSEMOTION,
                    ):
                        self._handle_mouse(event)

                # Session results are delivered here, on the UI thread.
                self.session.bus.dispatch_pending()

                # The status bar expires on its own, so always repaint.
                self.render(delta_time)
                self.dirty = False
                pygame.display.flip()
        finally:
            self.session.disconnect()
            pygame.quit()


# ---------------------------------------------------------------------- #
#  Convenience entry point                                                 #
# ---------------------------------------------------------------------- #
def run_pygame_view(
    session: SimulationSession,
    width: int = WINDOW_WIDTH,
    height: int = WINDOW_HEIGHT,
    fps: int = TARGET_FPS,
    **kwargs,
) -> None:
    view = ConsoleView(session=session, width=width, height=height, fps=fps, **kwargs)
    view.run()
