"""
ui/helpers.py
=============
Utilities shared across UI modules: world → screen projection through the
session, alpha-surface drawing, fonts, and text.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
import pygame

from sim.models import Point


def sumo_heading_to_screen(heading_deg: float) -> float:
    """SUMO angle (0 = north, clockwise) → pygame rotation (0 = east, CCW)."""
    return (90.0 - heading_deg) % 360.0


def draw_alpha_rect(
    target: pygame.Surface,
    color: Tuple[int, ...],
    rect: pygame.Rect,
    border_radius: int = 0,
) -> None:
    """Draw a semi-transparent rectangle (colour tuple with 4 channels)."""
    tmp = pygame.Surface((rect.w, rect.h), pygame.SRCALPHA)
    pygame.draw.rect(tmp, color, (0, 0, rect.w, rect.h), border_radius=border_radius)
    target.blit(tmp, rect.topleft)


def render_text(
    surface: pygame.Surface,
    font: pygame.font.Font,
    text: str,
    pos: Tuple[int, int],
    color: Tuple[int, ...] = (230, 230, 235),
    anchor: str = "topleft",
) -> pygame.Rect:
    """Render text with flexible *anchor* ('topleft', 'center', 'midright' …)."""
    img = font.render(text, True, color)
    rect = img.get_rect(**{anchor: pos})
    surface.blit(img, rect)
    return rect


class ViewHelpers:
    """Mixin with projection and font helpers; expects ``self.session``."""

    @staticmethod
    def _load_font(size: int, bold: bool = False) -> pygame.font.Font:
        return pygame.font.SysFont("consolas,dejavusansmono,monospace", size, bold=bold)

    @property
    def canvas_size(self) -> Tuple[int, int]:
        return self.width, self.height

    def _to_screen(self, point: Point) -> Tuple[int, int]:
        sx, sy = self.session.projector.project(point, self.session.viewport, self.canvas_size)
        return int(sx), int(sy)

    def _polyline_to_screen(self, points: Sequence[Point]) -> np.ndarray:
        projected = self.session.projector.project_many(points, self.session.viewport, self.canvas_size)
        return projected.round().astype(int)

    def _to_world(self, screen_pos: Tuple[int, int]) -> Point:
        return self.session.projector.unproject(screen_pos, self.session.viewport, self.canvas_size)

    def _px(self, metres: float, minimum: float = 1.0) -> int:
        return int(round(self.session.projector.scale_length(metres, self.session.viewport, minimum)))
