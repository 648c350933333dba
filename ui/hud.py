#!/usr/bin/env python3
"""Statistics panel, status bar, signal editor panel, legend and help (mixin)."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import pygame

from sim.models import Snapshot
from sim.signals import EditState

from .helpers import render_text

HELP_LINES: Sequence[str] = (
    "C      Connect          D      Disconnect",
    "N      Single step      SPACE  Start/stop continuous",
    "1-0    Speed level      R      Reset simulation",
    "+ / -  Zoom             ARROWS Pan",
    "HOME   Reset view       T      Translate mode (drag)",
    "F      Cycle filter     I      Inject vehicle",
    "E      Export stats     V      Export vehicle details",
    "L      Vehicle labels   K      Signal labels",
    "TAB    Next signal      PGUP/PGDN  Select phase",
    "F5-F8  Red/Yellow/Green/Custom   B  Brush colour",
    "ENTER  Commit phase     ESC    Abandon edit",
    "INS    Add phase        DEL    Remove phase",
    "F3     Debug overlay    F12    Screenshot   H  Help",
)


class HudRenderer:
    """Mixin that draws every overlay / HUD element."""

    # ------------------------------------------------------------------ #
    #  Statistics panel                                                    #
    # ------------------------------------------------------------------ #

    def draw_stats_panel(self, surface: pygame.Surface, snapshot: Optional[Snapshot]) -> None:
        if self.font_small is None or self.font_tiny is None:
            return
        snapshot = snapshot or Snapshot.empty()
        rows: List[Tuple[str, str]] = [
            ("Vehicles", f"{snapshot.vehicle_total}"),
            ("  running", f"{snapshot.vehicle_running}"),
            ("  static", f"{snapshot.vehicle_static}"),
            ("  congested", f"{snapshot.vehicle_congested}"),
            ("Traffic lights", f"{snapshot.signal_total}"),
            ("  red/yellow/green", f"{snapshot.signal_red}/{snapshot.signal_yellow}/{snapshot.signal_green}"),
            ("Steps", f"{snapshot.total_steps}"),
            ("Avg speed", f"{snapshot.avg_speed_kmh:.1f} km/h"),
            ("Efficiency", f"{snapshot.traffic_efficiency_pct:.1f} %"),
            ("Sim time", snapshot.simulation_time_label),
        ]
        row_h = 16
        panel = pygame.Rect(self.width - 246, 16, 230, 30 + len(rows) * row_h)
        pygame.draw.rect(surface, self.HUD_BG_COLOR, panel, border_radius=6)
        pygame.draw.rect(surface, self.HUD_BORDER_COLOR, panel, width=1, border_radius=6)
        render_text(surface, self.font_small, "STATISTICS", (panel.x + 10, panel.y + 6), self.HUD_TEXT_COLOR)
        y = panel.y + 26
        for label, value in rows:
            render_text(surface, self.font_tiny, label, (panel.x + 10, y), self.HUD_DIM_COLOR)
            render_text(surface, self.font_tiny, value, (panel.right - 10, y), self.HUD_TEXT_COLOR, anchor="topright")
            y += row_h

    # ------------------------------------------------------------------ #
    #  Status bar                                                          #
    # ------------------------------------------------------------------ #

    def draw_status_bar(self, surface: pygame.Surface) -> None:
        if self.font_tiny is None:
            return
        bar = pygame.Rect(0, self.height - 24, self.width, 24)
        pygame.draw.rect(surface, self.HUD_BG_COLOR, bar)
        pygame.draw.line(surface, self.HUD_BORDER_COLOR, bar.topleft, bar.topright)

        session = self.session
        state_color = self.OK_COLOR if session.is_connected else self.WARNING_COLOR
        vp = session.viewport
        left = (
            f"{session.state.value.upper()}   "
            f"{session.interval_ms} ms/step   "
            f"filter {session.filter_mode.value}   "
            f"zoom {vp.scale:.1f}x"
            f"{'   TRANSLATE' if vp.translate_mode else ''}"
        )
        render_text(surface, self.font_tiny, left, (10, bar.y + 5), state_color)

        if self.status.visible(self.time_seconds):
            color = self.WARNING_COLOR if self.status.is_error else self.HUD_TEXT_COLOR
            render_text(surface, self.font_tiny, self.status.text, (bar.right - 10, bar.y + 5), color, anchor="topright")

    # ------------------------------------------------------------------ #
    #  Signal editor                                                       #
    # ------------------------------------------------------------------ #

    def draw_editor_panel(self, surface: pygame.Surface) -> None:
        registry = self.session.signals
        if self.font_tiny is None or len(registry) == 0:
            return
        lines: List[Tuple[str, Tuple[int, int, int]]] = [
            (f"SIGNALS {len(registry)}   [{registry.state.value}]", self.HUD_TEXT_COLOR),
        ]
        controller = registry.selected
        if controller is None:
            lines.append(("TAB to select a traffic light", self.HUD_DIM_COLOR))
        else:
            lines.append((f"{controller.id}  program {controller.program_id}", self.SELECT_COLOR))
            for i, phase in enumerate(controller.phases):
                marker = ">" if i == registry.selected_phase else " "
                color = self.SELECT_COLOR if i == registry.selected_phase else self.HUD_DIM_COLOR
                lines.append((f"{marker} Phase {i}  {phase.state}  {phase.duration:.0f}s", color))
            if registry.state is EditState.EDITING:
                lines.append((f"mode {registry.mode.value}  -> {registry.pending_state}", self.HUD_TEXT_COLOR))
                lines.append((f"brush {self.brush.name}   duration {self._edit_duration():.0f}s", self.HUD_DIM_COLOR))

        row_h = 15
        panel = pygame.Rect(16, 16, 300, 12 + len(lines) * row_h)
        pygame.draw.rect(surface, self.HUD_BG_COLOR, panel, border_radius=6)
        pygame.draw.rect(surface, self.HUD_BORDER_COLOR, panel, width=1, border_radius=6)
        y = panel.y + 6
        for text, color in lines:
            render_text(surface, self.font_tiny, text, (panel.x + 10, y), color)
            y += row_h

    # ------------------------------------------------------------------ #
    #  Legend                                                              #
    # ------------------------------------------------------------------ #

    def _draw_legend(self, surface: pygame.Surface) -> None:
        if self.font_tiny is None:
            return
        x = self.width - 120
        y = self.height - 40 - len(self.LEGEND_ITEMS) * 18
        box_w, box_h = 112, len(self.LEGEND_ITEMS) * 18 + 10
        pygame.draw.rect(surface, self.HUD_BG_COLOR, (x - 6, y - 4, box_w, box_h), border_radius=4)
        pygame.draw.rect(surface, self.HUD_BORDER_COLOR, (x - 6, y - 4, box_w, box_h), width=1, border_radius=4)
        for label, color in self.LEGEND_ITEMS:
            pygame.draw.circle(surface, color, (x + 4, y + 6), 4)
            render_text(surface, self.font_tiny, label, (x + 14, y), (200, 200, 200))
            y += 18

    # ------------------------------------------------------------------ #
    #  Help / splash                                                       #
    # ------------------------------------------------------------------ #

    def _draw_help(self, surface: pygame.Surface) -> None:
        if self.font_title is None or self.font_tiny is None:
            return
        overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 170))
        surface.blit(overlay, (0, 0))
        render_text(surface, self.font_title, "TRAFFIC CONSOLE", (self.width // 2, self.height // 2 - 150),
                    (240, 240, 240), anchor="center")
        y = self.height // 2 - 100
        for line in HELP_LINES:
            render_text(surface, self.font_tiny, line, (self.width // 2, y), (170, 170, 170), anchor="center")
            y += 17

    # ------------------------------------------------------------------ #
    #  Debug / FPS overlay                                                 #
    # ------------------------------------------------------------------ #

    def _draw_debug_overlay(self, surface: pygame.Surface, visible: int, dt: float) -> None:
        if self.font_tiny is None:
            return
        fps = self.clock.get_fps() if self.clock else 0.0
        metrics = self.session.bus.metrics.report()
        lines = [
            f"FPS  {fps:.1f}",
            f"DT   {dt * 1000:.1f} ms",
            f"VEH  {visible} shown",
            f"RES  {self.width}x{self.height}",
            f"BUS  pub {metrics['published']} del {metrics['delivered']} drop {metrics['dropped']}",
        ]
        x, y = 16, self.height - 40 - len(lines) * 14
        for line in lines:
            render_text(surface, self.font_tiny, line, (x, y), self.OK_COLOR)
            y += 14
