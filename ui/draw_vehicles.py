#!/usr/bin/env python3
"""Vehicle sprite rendering (mixin)."""

from __future__ import annotations

from typing import Sequence

import pygame

from sim.models import VehicleObservation

from .helpers import sumo_heading_to_screen


class VehicleRenderer:
    """Mixin that draws one oriented sprite per visible vehicle."""

    def draw_vehicles(self, surface: pygame.Surface, vehicles: Sequence[VehicleObservation]) -> None:
        w = self._px(self.VEHICLE_LENGTH_M, minimum=4.0)
        h = self._px(self.VEHICLE_WIDTH_M, minimum=2.0)
        for vehicle in vehicles:
            self.draw_vehicle(surface, vehicle, w, h)

    def draw_vehicle(self, surface: pygame.Surface, vehicle: VehicleObservation, w: int, h: int) -> None:
        color = self.STATUS_COLORS[vehicle.status]
        sprite = pygame.Surface((w, h), pygame.SRCALPHA)

        # Body
        body = pygame.Rect(0, 0, w, h)
        pygame.draw.rect(sprite, color, body, border_radius=max(1, h // 4))

        # Windshield
        if w >= 10:
            r, g, b = color
            glass = (max(0, r - 60), max(0, g - 60), max(0, b - 60), 180)
            pygame.draw.rect(sprite, glass, pygame.Rect(w - w // 3, 1, w // 4, h - 2), border_radius=1)

        rotated = pygame.transform.rotate(sprite, sumo_heading_to_screen(vehicle.heading_deg))
        centre = self._to_screen((vehicle.x, vehicle.y))
        surface.blit(rotated, rotated.get_rect(center=centre))

        if self.show_vehicle_labels and self.font_tiny is not None:
            label = self.font_tiny.render(vehicle.id, True, self.HUD_DIM_COLOR)
            surface.blit(label, (centre[0] + w // 2 + 2, centre[1] - 6))
