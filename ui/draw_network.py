#!/usr/bin/env python3
"""Lane polylines and signal heads (mixin)."""

from __future__ import annotations

from typing import Optional, Sequence

import pygame

from sim.models import SignalColor, SignalObservation
from sim.signals import EditState


class NetworkRenderer:
    """Mixin that draws cached lane geometry and per-lane signal heads."""

    def draw_network(self, surface: pygame.Surface) -> None:
        for lane in self.session.geometry.all_lanes():
            points = self._polyline_to_screen(lane.points).tolist()
            pygame.draw.lines(surface, self.ROAD_COLOR, False, points, self._px(lane.width_m))
            if self.session.viewport.scale >= 2.0:
                pygame.draw.lines(surface, self.LANE_EDGE_COLOR, False, points, 1)

    def draw_signals(self, surface: pygame.Surface, signals: Sequence[SignalObservation]) -> None:
        registry = self.session.signals
        selected = registry.selected
        radius = self._px(self.SIGNAL_RADIUS_M, minimum=2.0)

        for signal in signals:
            state = signal.state
            is_selected = selected is not None and selected.id == signal.id
            if is_selected and registry.state is EditState.EDITING:
                state = registry.pending_state or state

            first_head: Optional[tuple] = None
            for lane_id, char in zip(signal.controlled_lanes, state):
                position = self.session.geometry.signal_position(lane_id)
                if position is None:
                    continue
                centre = self._to_screen(position)
                first_head = first_head or centre
                color = self.SIGNAL_COLORS[SignalColor.parse(char)]
                pygame.draw.circle(surface, color, centre, radius)
                if is_selected:
                    pygame.draw.circle(surface, self.SELECT_COLOR, centre, radius + 2, width=1)

            if self.show_signal_labels and first_head is not None and self.font_tiny is not None:
                label = self.font_tiny.render(signal.id, True, self.HUD_DIM_COLOR)
                surface.blit(label, (first_head[0] + radius + 3, first_head[1] - radius - 10))

    def _lane_at(self, screen_pos) -> Optional[str]:
        """Controlled lane of the selected controller nearest to *screen_pos*."""
        controller = self.session.signals.selected
        if controller is None:
            return None
        wx, wy = self._to_world(screen_pos)
        best, best_d2 = None, self.PICK_RADIUS_M ** 2
        for lane_id in controller.lanes:
            position = self.session.geometry.signal_position(lane_id)
            if position is None:
                continue
            d2 = (position[0] - wx) ** 2 + (position[1] - wy) ** 2
            if d2 <= best_d2:
                best, best_d2 = lane_id, d2
        return best
