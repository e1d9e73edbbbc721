"""
Session context - the single owner of all mutable session state.

One Session holds the world, the asset store, both view cameras, the map
and token libraries, calibration mode and the save slots. The input layer
calls its command methods; the renderer reads its attributes. Commands
that cannot be carried out (a full token list, an image that will not
decode) are logged and skipped rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from vtt.config import SessionConfig
from vtt.core.events import EventBus, SessionEvent
from vtt.core.grid import calibrate, screen_to_grid, screen_to_world
from vtt.core.world import Condition, Drawing, Shape, Token, WorldState
from vtt.exceptions import VttError
from vtt.graphics.camera import Camera
from vtt.resources.assets import AssetStore, is_image_path, scan_assets
from vtt.save.codec import SaveCodec
from vtt.save.manager import SaveManager

logger = logging.getLogger(__name__)


# Drags shorter than this on both axes do not create a drawing
MIN_DRAWING_DRAG = 5
DEFAULT_CALIBRATION_CELLS = 2


@dataclass
class CalibrationState:
    """Grid calibration mode: a reference rectangle spanning known cells."""
    active: bool = False
    dragging: bool = False
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    cells_wide: int = DEFAULT_CALIBRATION_CELLS
    cells_tall: int = DEFAULT_CALIBRATION_CELLS


class Session:
    """
    Everything one running session owns.

    Usage:
        session = Session(SessionConfig())
        session.scan_libraries()
        session.drop_token("assets/tokens/orc.png", mouse_x, mouse_y)
        session.tick()
        session.save(3)
    """

    def __init__(self, config: Optional[SessionConfig] = None):
        self.config = config or SessionConfig()

        self.event_bus = EventBus()
        self.assets = AssetStore(max_assets=self.config.max_assets)
        self.world = WorldState(
            max_tokens=self.config.max_tokens,
            max_drawings=self.config.max_drawings,
            cell_size=self.config.default_cell_size,
        )

        self.dm_camera = Camera()
        self.player_camera = Camera()
        self.sync_views = True

        self.maps: list[int] = []
        self.map_index = -1
        self.token_library: list[int] = []

        self.calibration = CalibrationState()

        self.codec = SaveCodec(self.assets)
        self.saves = SaveManager(
            self.codec,
            self.world,
            save_path=self.config.saves_dir,
            slot_count=self.config.slot_count,
            event_bus=self.event_bus,
        )

    # Coordinate helpers (input comes from the DM view)

    def screen_to_world(self, sx: float, sy: float) -> tuple[float, float]:
        return screen_to_world(sx, sy, self.dm_camera)

    def screen_to_grid(self, sx: float, sy: float) -> tuple[int, int]:
        w = self.world
        return screen_to_grid(sx, sy, self.dm_camera, w.cell_size, w.offset_x, w.offset_y)

    # Libraries and maps

    def scan_libraries(self) -> None:
        """Register every map and token image found in the asset directories."""
        extensions = self.config.image_extensions
        self.maps = self._register_all(scan_assets(self.config.maps_dir, extensions))
        self.token_library = self._register_all(scan_assets(self.config.tokens_dir, extensions))
        logger.info(f"Found {len(self.maps)} maps and {len(self.token_library)} token images")

        if self.maps and self.world.map_asset is None:
            self.select_map(0)

    def _register_all(self, paths: list[str]) -> list[int]:
        handles = []
        for path in paths:
            try:
                handles.append(self.assets.register(path))
            except VttError as e:
                logger.warning(f"Skipping {path}: {e}")
                break
        return handles

    def select_map(self, index: int) -> bool:
        """Make a library map active; False if it cannot be decoded."""
        if not 0 <= index < len(self.maps):
            return False
        handle = self.maps[index]
        if not self.assets.ensure_loaded(handle):
            logger.warning(f"Map '{self.assets.get(handle).path}' could not be loaded")
            return False

        self.map_index = index
        self.world.set_map(handle, self.assets.get(handle).size)
        self.event_bus.publish(SessionEvent.MAP_CHANGED, handle=handle)
        return True

    def cycle_map(self, step: int = 1) -> bool:
        """Select the next (or previous) map, skipping ones that will not load."""
        index = self.map_index
        for _ in range(len(self.maps)):
            index = (index + step) % len(self.maps)
            if self.select_map(index):
                return True
        return False

    # Tokens

    def drop_token(self, path: str, sx: float, sy: float) -> Token | None:
        """Create a token from an image file dropped at a screen point."""
        if not is_image_path(path, self.config.image_extensions):
            return None
        try:
            handle = self.assets.get_or_load(path)
            if not self.assets.ensure_loaded(handle):
                logger.warning(f"Dropped file '{path}' is not a usable image")
                return None
            gx, gy = self.screen_to_grid(sx, sy)
            token = self.world.add_token(handle, gx, gy)
        except VttError as e:
            logger.warning(f"Token not added: {e}")
            return None
        self.event_bus.publish(SessionEvent.TOKEN_ADDED, token_id=token.id)
        return token

    def copy_token(self, token_id: int, sx: float, sy: float) -> Token | None:
        """Duplicate a token at a screen point and select the copy."""
        gx, gy = self.screen_to_grid(sx, sy)
        try:
            token = self.world.copy_token(token_id, gx, gy)
        except VttError as e:
            logger.warning(f"Token not copied: {e}")
            return None
        if token is not None:
            self.world.select(token.id)
            self.event_bus.publish(SessionEvent.TOKEN_ADDED, token_id=token.id)
        return token

    def move_token(self, token_id: int, sx: float, sy: float) -> None:
        self.world.move_token(token_id, *self.screen_to_grid(sx, sy))

    def select_at(self, sx: float, sy: float, additive: bool = False) -> Token | None:
        token = self.world.token_at(*self.screen_to_grid(sx, sy))
        if token is None:
            self.world.clear_selection()
            return None
        self.world.select(token.id, additive=additive)
        return token

    def delete_selected(self) -> None:
        """Remove the first selected token."""
        token = next(self.world.selected_tokens(), None)
        if token is not None:
            self.world.remove_token(token.id)
            self.event_bus.publish(SessionEvent.TOKEN_REMOVED, token_id=token.id)

    def resize_selected(self, delta: int) -> None:
        for token in list(self.world.selected_tokens()):
            self.world.resize_token(token.id, delta)

    def damage_selected(self, delta: int) -> None:
        for token in list(self.world.selected_tokens()):
            self.world.adjust_damage(token.id, delta)

    def toggle_hidden_selected(self) -> None:
        for token in list(self.world.selected_tokens()):
            self.world.toggle_hidden(token.id)

    def toggle_opacity_selected(self) -> None:
        for token in list(self.world.selected_tokens()):
            self.world.toggle_opacity(token.id)

    def reset_opacity(self) -> None:
        self.world.reset_opacity()

    def toggle_condition(self, token_id: int, condition: Condition) -> None:
        self.world.toggle_condition(token_id, condition)

    def assign_squad_at(self, sx: float, sy: float, squad: int) -> None:
        """Toggle a squad on every token whose origin is under the cursor."""
        for token in self.world.tokens_at(*self.screen_to_grid(sx, sy)):
            self.world.assign_squad(token.id, squad)

    # Fog and drawings

    def paint_fog_at(self, sx: float, sy: float, visible: bool) -> None:
        self.world.paint_fog(*self.screen_to_grid(sx, sy), visible)

    def add_drawing(
        self,
        shape: Shape,
        start: tuple[float, float],
        end: tuple[float, float],
        color: int,
    ) -> Drawing | None:
        """Add a drawing from a screen-space drag; tiny drags are ignored."""
        x1, y1 = self.screen_to_world(*start)
        x2, y2 = self.screen_to_world(*end)
        if abs(x2 - x1) <= MIN_DRAWING_DRAG and abs(y2 - y1) <= MIN_DRAWING_DRAG:
            return None
        try:
            drawing = self.world.add_drawing(
                Drawing(shape=shape, x1=x1, y1=y1, x2=x2, y2=y2, color=color)
            )
        except VttError as e:
            logger.warning(f"Drawing not added: {e}")
            return None
        self.event_bus.publish(SessionEvent.DRAWINGS_CHANGED)
        return drawing

    def remove_drawing_at(self, sx: float, sy: float) -> Drawing | None:
        removed = self.world.remove_drawing_at(*self.screen_to_world(sx, sy))
        if removed is not None:
            self.event_bus.publish(SessionEvent.DRAWINGS_CHANGED)
        return removed

    def clear_drawings(self) -> None:
        self.world.clear_drawings()
        self.event_bus.publish(SessionEvent.DRAWINGS_CHANGED)

    # Grid calibration

    def begin_calibration(self) -> None:
        self.calibration = CalibrationState(active=True)

    def drag_calibration(self, sx: float, sy: float, start: bool = False) -> None:
        """Start (``start=True``) or extend the reference rectangle."""
        cal = self.calibration
        if not cal.active:
            return
        wx, wy = self.screen_to_world(sx, sy)
        if start:
            cal.x1, cal.y1 = wx, wy
            cal.dragging = True
        cal.x2, cal.y2 = wx, wy

    def end_calibration_drag(self) -> None:
        self.calibration.dragging = False

    def adjust_calibration_cells(self, d_wide: int, d_tall: int) -> None:
        cal = self.calibration
        cal.cells_wide = max(1, cal.cells_wide + d_wide)
        cal.cells_tall = max(1, cal.cells_tall + d_tall)

    def apply_calibration(self) -> bool:
        """
        Apply the reference rectangle and leave calibration mode.

        Returns:
            True if the grid changed; a rectangle under 10 units on either
            side leaves the grid as it was
        """
        cal = self.calibration
        if not cal.active:
            return False
        self.calibration = CalibrationState()

        result = calibrate(cal.x1, cal.y1, cal.x2, cal.y2, cal.cells_wide, cal.cells_tall)
        if result is None:
            logger.info("Calibration rectangle too small; grid unchanged")
            return False

        self.world.apply_calibration(result)
        self.event_bus.publish(SessionEvent.GRID_CALIBRATED, calibration=result)
        return True

    def cancel_calibration(self) -> None:
        self.calibration = CalibrationState()

    # Views

    def zoom(self, sx: float, sy: float, factor: float) -> None:
        self.dm_camera.zoom_toward(sx, sy, factor)

    def pan(self, dx: float, dy: float) -> None:
        self.dm_camera.pan(dx, dy)

    def toggle_sync(self) -> None:
        self.sync_views = not self.sync_views
        self.event_bus.publish(SessionEvent.VIEWS_SYNC_TOGGLED, synced=self.sync_views)

    def toggle_grid(self) -> None:
        self.world.show_grid = not self.world.show_grid

    def tick(self) -> None:
        """Per-frame update of both cameras."""
        self.dm_camera.tick()
        if self.sync_views:
            Camera.sync(self.player_camera, self.dm_camera)
        else:
            self.player_camera.tick()

    # Save slots

    def save(self, slot: int) -> bool:
        self.world.camera = self.dm_camera.snapshot()
        return self.saves.save_slot(slot)

    def load(self, slot: int) -> bool:
        if not self.saves.load_slot(slot):
            return False

        cam = self.world.camera
        self.dm_camera.snap_to(cam.x, cam.y, cam.zoom)
        if self.sync_views:
            Camera.sync(self.player_camera, self.dm_camera)

        handle = self.world.map_asset
        if handle is None:
            self.map_index = -1
        elif handle in self.maps:
            self.map_index = self.maps.index(handle)
        else:
            self.maps.append(handle)
            self.map_index = len(self.maps) - 1
        return True
