#!/usr/bin/env python3
"""
sim/projection.py
=================
World → screen coordinate projection.

The engine's planar frame is Y-up; screen space is Y-down.  Given a
:class:`~sim.models.Viewport` and the canvas size, a world point maps to::

    sx =  (x - cx) * scale + w / 2 + tx
    sy = -(y - cy) * scale + h / 2 + ty

where ``(cx, cy)`` is the midpoint of the world boundary.  Everything here
is a pure function of its arguments, safe to call from any thread.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from sim.models import Boundary, Point, Viewport

CanvasSize = Tuple[int, int]


def world_center(boundary: Optional[Boundary]) -> Point:
    """Midpoint of ``((min_x, min_y), (max_x, max_y))``; origin when unknown."""
    if boundary is None:
        return 0.0, 0.0
    (min_x, min_y), (max_x, max_y) = boundary
    return (min_x + max_x) / 2.0, (min_y + max_y) / 2.0


def project(
    point: Point,
    viewport: Viewport,
    canvas_size: CanvasSize,
    center: Point = (0.0, 0.0),
) -> Point:
    """Map a single world point to screen pixels."""
    x, y = point
    cx, cy = center
    w, h = canvas_size
    sx = (x - cx) * viewport.scale + w / 2.0 + viewport.translate_x
    sy = -(y - cy) * viewport.scale + h / 2.0 + viewport.translate_y
    return sx, sy


class CoordinateProjector:
    """Projection bound to one world boundary.

    Parameters
    ----------
    boundary : Boundary or None
        World boundary captured at connect time.  ``None`` centres the
        world origin on the canvas.
    """

    def __init__(self, boundary: Optional[Boundary] = None) -> None:
        self.center = world_center(boundary)

    def project(self, point: Point, viewport: Viewport, canvas_size: CanvasSize) -> Point:
        return project(point, viewport, canvas_size, self.center)

    def project_many(
        self,
        points: Sequence[Point],
        viewport: Viewport,
        canvas_size: CanvasSize,
    ) -> np.ndarray:
        """Vectorised :meth:`project` for a polyline; returns an ``(n, 2)`` array."""
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        w, h = canvas_size
        out = np.empty_like(pts)
        out[:, 0] = (pts[:, 0] - self.center[0]) * viewport.scale + w / 2.0 + viewport.translate_x
        out[:, 1] = -(pts[:, 1] - self.center[1]) * viewport.scale + h / 2.0 + viewport.translate_y
        return out

    def unproject(self, screen_point: Point, viewport: Viewport, canvas_size: CanvasSize) -> Point:
        """Inverse of :meth:`project` (screen pixel → world metres)."""
        sx, sy = screen_point
        w, h = canvas_size
        x = (sx - w / 2.0 - viewport.translate_x) / viewport.scale + self.center[0]
        y = -(sy - h / 2.0 - viewport.translate_y) / viewport.scale + self.center[1]
        return x, y

    @staticmethod
    def scale_length(metres: float, viewport: Viewport, minimum: float = 1.0) -> float:
        """Metres → pixels at the current zoom, never thinner than *minimum*."""
        return max(metres * viewport.scale, minimum)
