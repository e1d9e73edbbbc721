"""
View camera with target smoothing and cursor-anchored zoom.

Each display owns one Camera. Input moves the *target*; ``tick()`` eases
the current framing toward it once per frame.
"""

from __future__ import annotations

from dataclasses import dataclass


SMOOTH = 0.15
MIN_ZOOM = 0.25
MAX_ZOOM = 4.0


@dataclass
class CameraState:
    """Position/zoom snapshot stored with the world."""
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0


class Camera:
    """
    2D camera with smoothed pan and zoom.

    Position is the world coordinate of the view's top-left corner.

    Usage:
        camera = Camera()
        camera.zoom_toward(mouse_x, mouse_y, 1.1)
        camera.pan(dx, dy)
        camera.tick()  # once per frame
    """

    def __init__(self, x: float = 0.0, y: float = 0.0, zoom: float = 1.0):
        self.x = x
        self.y = y
        self.zoom = zoom

        self.target_x = x
        self.target_y = y
        self.target_zoom = zoom

    def tick(self) -> None:
        """Ease current position and zoom toward the target."""
        self.x += (self.target_x - self.x) * SMOOTH
        self.y += (self.target_y - self.y) * SMOOTH
        self.zoom += (self.target_zoom - self.zoom) * SMOOTH

    def zoom_toward(self, cursor_x: float, cursor_y: float, factor: float) -> None:
        """
        Zoom by a factor keeping the world point under the cursor fixed.

        The anchor point is computed from the target framing, not the
        smoothed one, so repeated wheel steps stay anchored while the
        camera is still catching up.

        Args:
            cursor_x, cursor_y: Cursor position in screen coordinates
            factor: Multiplier applied to the target zoom
        """
        if factor <= 0:
            return

        new_zoom = max(MIN_ZOOM, min(MAX_ZOOM, self.target_zoom * factor))
        world_x = cursor_x / self.target_zoom + self.target_x
        world_y = cursor_y / self.target_zoom + self.target_y

        self.target_zoom = new_zoom
        self.target_x = world_x - cursor_x / new_zoom
        self.target_y = world_y - cursor_y / new_zoom

    def pan(self, dx: float, dy: float) -> None:
        """Drag the view by a screen-space delta (scaled by current zoom)."""
        self.target_x -= dx / self.zoom
        self.target_y -= dy / self.zoom

    def snap_to(self, x: float, y: float, zoom: float) -> None:
        """Set target and current framing at once."""
        zoom = max(MIN_ZOOM, min(MAX_ZOOM, zoom))
        self.x = self.target_x = x
        self.y = self.target_y = y
        self.zoom = self.target_zoom = zoom

    def snapshot(self) -> CameraState:
        """Target framing, the state worth persisting."""
        return CameraState(self.target_x, self.target_y, self.target_zoom)

    @staticmethod
    def sync(dst: Camera, src: Camera) -> None:
        """Mirror one camera onto another (target and current)."""
        dst.x, dst.y, dst.zoom = src.x, src.y, src.zoom
        dst.target_x, dst.target_y, dst.target_zoom = src.target_x, src.target_y, src.target_zoom

    # Coordinate conversion

    def world_to_screen(self, world_x: float, world_y: float) -> tuple[float, float]:
        """Convert world coordinates to screen coordinates."""
        return (
            (world_x - self.x) * self.zoom,
            (world_y - self.y) * self.zoom,
        )

    def screen_to_world(self, screen_x: float, screen_y: float) -> tuple[float, float]:
        """Convert screen coordinates to world coordinates."""
        return (
            screen_x / self.zoom + self.x,
            screen_y / self.zoom + self.y,
        )

    def __repr__(self) -> str:
        return (
            f"Camera(x={self.x:.2f}, y={self.y:.2f}, zoom={self.zoom:.3f}, "
            f"target=({self.target_x:.2f}, {self.target_y:.2f}, {self.target_zoom:.3f}))"
        )
