"""
World state - everything a save slot captures.

Holds the active map reference, grid calibration, fog of war, tokens,
drawings and the camera framing. Tokens are addressed by a stable ``id``
handle rather than their list position, so a reference such as "the token
whose condition wheel is open" survives unrelated removals.
"""

from __future__ import annotations

import itertools
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from vtt.core.fog import FogOfWar
from vtt.core.grid import GridCalibration, grid_dimensions
from vtt.exceptions import CapacityError
from vtt.graphics.camera import CameraState


DEFAULT_CELL_SIZE = 64
MAX_TOKEN_SIZE = 4
SQUAD_COUNT = 8
HALF_OPACITY = 128


class Condition(Enum):
    """Status effects that can be flagged on a token, in stored order."""
    BLEEDING = 0
    DAZED = 1
    FRIGHTENED = 2
    GRABBED = 3
    RESTRAINED = 4
    SLOWED = 5
    TAUNTED = 6
    WEAKENED = 7

    @property
    def abbreviation(self) -> str:
        return self.name[:2]

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @property
    def color(self) -> tuple[int, int, int]:
        return CONDITION_COLORS[self]


CONDITION_COLORS: dict[Condition, tuple[int, int, int]] = {
    Condition.BLEEDING: (220, 20, 20),
    Condition.DAZED: (255, 215, 0),
    Condition.FRIGHTENED: (147, 51, 234),
    Condition.GRABBED: (255, 140, 0),
    Condition.RESTRAINED: (139, 69, 19),
    Condition.SLOWED: (30, 144, 255),
    Condition.TAUNTED: (255, 20, 147),
    Condition.WEAKENED: (50, 205, 50),
}

# Squad / drawing palette
SQUAD_COLORS: tuple[tuple[int, int, int], ...] = (
    (255, 50, 50),
    (50, 150, 255),
    (50, 255, 50),
    (255, 255, 50),
    (255, 150, 50),
    (200, 50, 255),
    (50, 255, 255),
    (255, 255, 255),
)


class Shape(Enum):
    """Drawing shapes."""
    RECTANGLE = 0
    CIRCLE = 1


class Token(BaseModel):
    """
    A movable piece on the grid.

    Attributes:
        id: Stable handle, assigned by WorldState
        grid_x, grid_y: Cell position (may lie outside the map)
        size: Span in cells (1-4)
        asset: AssetStore handle, None when unresolved
        damage: Accumulated damage, never negative
        squad: Squad color index (0-7) or None
        opacity: 0-255
        hidden: Hidden from the player view
        selected: UI selection, never persisted
        conditions: Active status effects
    """

    model_config = ConfigDict(validate_assignment=True, extra='forbid')

    id: int = 0
    grid_x: int = 0
    grid_y: int = 0
    size: int = Field(1, ge=1, le=MAX_TOKEN_SIZE)
    asset: Optional[int] = None
    damage: int = Field(0, ge=0)
    squad: Optional[int] = Field(None, ge=0, lt=SQUAD_COUNT)
    opacity: int = Field(255, ge=0, le=255)
    hidden: bool = False
    selected: bool = False
    conditions: set[Condition] = Field(default_factory=set)

    def persistent_state(self) -> dict[str, Any]:
        """Fields a save file round-trips (no handle, no selection)."""
        return self.model_dump(exclude={'id', 'selected'})

    def has_condition(self, condition: Condition) -> bool:
        return condition in self.conditions


class Drawing(BaseModel):
    """A rectangle or circle annotation in world space."""

    model_config = ConfigDict(validate_assignment=True, extra='forbid')

    shape: Shape = Shape.RECTANGLE
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    color: int = Field(0, ge=0, lt=SQUAD_COUNT)

    def contains(self, wx: float, wy: float) -> bool:
        """Hit test; circles use the corner diagonal as their diameter."""
        if self.shape is Shape.RECTANGLE:
            return (
                min(self.x1, self.x2) <= wx <= max(self.x1, self.x2)
                and min(self.y1, self.y2) <= wy <= max(self.y1, self.y2)
            )
        cx = (self.x1 + self.x2) / 2
        cy = (self.y1 + self.y2) / 2
        r2 = ((self.x2 - self.x1) ** 2 + (self.y2 - self.y1) ** 2) / 4
        return (wx - cx) ** 2 + (wy - cy) ** 2 <= r2


class WorldState:
    """
    The unit of save/load.

    Usage:
        world = WorldState()
        world.set_map(handle, (1024, 768))
        token = world.add_token(asset=handle, grid_x=2, grid_y=3)
        world.adjust_damage(token.id, 5)
    """

    def __init__(
        self,
        max_tokens: int = 256,
        max_drawings: int = 256,
        cell_size: int = DEFAULT_CELL_SIZE,
    ):
        self.max_tokens = max_tokens
        self.max_drawings = max_drawings

        # Map
        self.map_asset: int | None = None
        self.map_size: tuple[int, int] = (0, 0)

        # Grid calibration
        self.cell_size = cell_size
        self.offset_x = 0
        self.offset_y = 0

        self.fog = FogOfWar()
        self.tokens: list[Token] = []
        self.drawings: list[Drawing] = []
        self.show_grid = True
        self.camera = CameraState()

        self._ids = itertools.count(1)

    # Map and grid

    @property
    def grid_shape(self) -> tuple[int, int]:
        """(cols, rows) the active map needs at the current cell size."""
        return grid_dimensions(self.map_size[0], self.map_size[1], self.cell_size)

    def set_map(self, handle: int | None, size: tuple[int, int]) -> None:
        """Switch the active map; fog is reset if the grid dimensions change."""
        self.map_asset = handle
        self.map_size = (max(0, size[0]), max(0, size[1]))
        self.sync_fog()

    def sync_fog(self) -> None:
        """Resize the fog if it no longer matches the map grid."""
        cols, rows = self.grid_shape
        if self.fog.shape != (cols, rows):
            self.fog.resize(cols, rows)

    def apply_calibration(self, calibration: GridCalibration) -> None:
        """Adopt a new cell size/offset and reset the fog to the new grid."""
        self.cell_size = calibration.cell_size
        self.offset_x = calibration.offset_x
        self.offset_y = calibration.offset_y
        self.fog.resize(*self.grid_shape)

    def paint_fog(self, gx: int, gy: int, visible: bool) -> None:
        self.fog.paint(gx, gy, visible)

    # Tokens

    def next_token_id(self) -> int:
        return next(self._ids)

    def add_token(self, asset: int | None, grid_x: int, grid_y: int, **fields: Any) -> Token:
        """
        Create a token at a cell.

        Raises:
            CapacityError: If the world already holds max_tokens tokens
        """
        self._check_token_capacity()
        token = Token(id=self.next_token_id(), asset=asset, grid_x=grid_x, grid_y=grid_y, **fields)
        self.tokens.append(token)
        return token

    def insert_token(self, token: Token) -> Token:
        """Append a pre-built token, giving it a fresh handle."""
        self._check_token_capacity()
        token.id = self.next_token_id()
        self.tokens.append(token)
        return token

    def copy_token(self, token_id: int, grid_x: int, grid_y: int) -> Token | None:
        """Duplicate a token's persistent fields at a new cell."""
        source = self.get_token(token_id)
        if source is None:
            return None
        self._check_token_capacity()
        copy = source.model_copy(
            deep=True,
            update={'id': self.next_token_id(), 'grid_x': grid_x, 'grid_y': grid_y, 'selected': False},
        )
        self.tokens.append(copy)
        return copy

    def remove_token(self, token_id: int) -> Token | None:
        """Remove a token; surviving tokens keep their order."""
        for i, token in enumerate(self.tokens):
            if token.id == token_id:
                return self.tokens.pop(i)
        return None

    def get_token(self, token_id: int) -> Token | None:
        for token in self.tokens:
            if token.id == token_id:
                return token
        return None

    def token_at(self, gx: int, gy: int) -> Token | None:
        """Topmost (last drawn) token whose origin cell is (gx, gy)."""
        for token in reversed(self.tokens):
            if token.grid_x == gx and token.grid_y == gy:
                return token
        return None

    def tokens_at(self, gx: int, gy: int) -> list[Token]:
        return [t for t in self.tokens if t.grid_x == gx and t.grid_y == gy]

    def move_token(self, token_id: int, gx: int, gy: int) -> None:
        token = self.get_token(token_id)
        if token:
            token.grid_x = gx
            token.grid_y = gy

    def resize_token(self, token_id: int, delta: int) -> None:
        token = self.get_token(token_id)
        if token:
            token.size = max(1, min(MAX_TOKEN_SIZE, token.size + delta))

    def adjust_damage(self, token_id: int, delta: int) -> None:
        """Add (or with a negative delta, heal) damage, clamped at zero."""
        token = self.get_token(token_id)
        if token:
            token.damage = max(0, token.damage + delta)

    def toggle_condition(self, token_id: int, condition: Condition) -> None:
        token = self.get_token(token_id)
        if token:
            token.conditions ^= {condition}

    def assign_squad(self, token_id: int, squad: int | None) -> None:
        """Set a squad; assigning the token's current squad clears it."""
        token = self.get_token(token_id)
        if token is None:
            return
        if squad is not None and not 0 <= squad < SQUAD_COUNT:
            return
        token.squad = None if token.squad == squad else squad

    def toggle_hidden(self, token_id: int) -> None:
        token = self.get_token(token_id)
        if token:
            token.hidden = not token.hidden

    def toggle_opacity(self, token_id: int) -> None:
        """Flip between fully opaque and half transparent."""
        token = self.get_token(token_id)
        if token:
            token.opacity = HALF_OPACITY if token.opacity == 255 else 255

    def reset_opacity(self) -> None:
        for token in self.tokens:
            token.opacity = 255

    # Selection (transient)

    def select(self, token_id: int, additive: bool = False) -> None:
        if not additive:
            self.clear_selection()
        token = self.get_token(token_id)
        if token:
            token.selected = True

    def clear_selection(self) -> None:
        for token in self.tokens:
            token.selected = False

    def selected_tokens(self) -> Iterator[Token]:
        return (t for t in self.tokens if t.selected)

    # Drawings

    def add_drawing(self, drawing: Drawing) -> Drawing:
        """
        Raises:
            CapacityError: If the world already holds max_drawings drawings
        """
        if len(self.drawings) >= self.max_drawings:
            raise CapacityError(f"Drawing limit reached ({self.max_drawings})")
        self.drawings.append(drawing)
        return drawing

    def remove_drawing_at(self, wx: float, wy: float) -> Drawing | None:
        """Remove the topmost drawing under a world point."""
        for i in range(len(self.drawings) - 1, -1, -1):
            if self.drawings[i].contains(wx, wy):
                return self.drawings.pop(i)
        return None

    def clear_drawings(self) -> None:
        self.drawings.clear()

    def _check_token_capacity(self) -> None:
        if len(self.tokens) >= self.max_tokens:
            raise CapacityError(f"Token limit reached ({self.max_tokens})")
