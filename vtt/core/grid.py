"""
Grid space - conversions between screen, world and grid-cell coordinates.

Everything here is a pure function of its arguments. The grid is infinite:
``offset`` anchors it so that cell boundaries extrapolate to the origin.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vtt.graphics.camera import Camera


# Smallest reference rectangle side accepted by calibration
MIN_CALIBRATION_EXTENT = 10


@dataclass(frozen=True)
class GridCalibration:
    """Result of a successful grid calibration."""
    cell_size: int
    offset_x: int
    offset_y: int


def world_to_grid(
    wx: float,
    wy: float,
    cell_size: int,
    offset_x: float = 0,
    offset_y: float = 0,
) -> tuple[int, int]:
    """Cell containing a world point (floors toward negative infinity)."""
    return (
        math.floor((wx - offset_x) / cell_size),
        math.floor((wy - offset_y) / cell_size),
    )


def grid_to_world(
    gx: int,
    gy: int,
    cell_size: int,
    offset_x: float = 0,
    offset_y: float = 0,
) -> tuple[float, float]:
    """Top-left world corner of a cell."""
    return (gx * cell_size + offset_x, gy * cell_size + offset_y)


def screen_to_world(sx: float, sy: float, camera: Camera) -> tuple[float, float]:
    """Convert a screen point using the camera's current (smoothed) framing."""
    return (sx / camera.zoom + camera.x, sy / camera.zoom + camera.y)


def screen_to_grid(
    sx: float,
    sy: float,
    camera: Camera,
    cell_size: int,
    offset_x: float = 0,
    offset_y: float = 0,
) -> tuple[int, int]:
    """Screen point straight to grid cell, for input handling."""
    wx, wy = screen_to_world(sx, sy, camera)
    return world_to_grid(wx, wy, cell_size, offset_x, offset_y)


def grid_dimensions(map_width: int, map_height: int, cell_size: int) -> tuple[int, int]:
    """Number of columns and rows needed to cover a map of the given pixel size."""
    if cell_size < 1 or map_width <= 0 or map_height <= 0:
        return (0, 0)
    return (math.ceil(map_width / cell_size), math.ceil(map_height / cell_size))


def calibrate(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    cells_wide: int,
    cells_tall: int,
) -> GridCalibration | None:
    """
    Derive cell size and offset from a reference rectangle.

    Args:
        x1, y1, x2, y2: Opposite corners of the dragged rectangle (world units)
        cells_wide, cells_tall: How many cells the rectangle spans

    Returns:
        The calibration, or None when the rectangle is too small to trust
    """
    if cells_wide < 1 or cells_tall < 1:
        return None

    width = abs(x2 - x1)
    height = abs(y2 - y1)
    if width < MIN_CALIBRATION_EXTENT or height < MIN_CALIBRATION_EXTENT:
        return None

    # Halves round up
    cell_size = math.floor((width / cells_wide + height / cells_tall) / 2 + 0.5)
    if cell_size < 1:
        return None

    left = math.floor(min(x1, x2))
    top = math.floor(min(y1, y2))
    return GridCalibration(
        cell_size=cell_size,
        offset_x=left % cell_size,
        offset_y=top % cell_size,
    )


def grid_distance(gx1: int, gy1: int, gx2: int, gy2: int) -> int:
    """Distance in cells where diagonal steps count as one."""
    return max(abs(gx2 - gx1), abs(gy2 - gy1))
