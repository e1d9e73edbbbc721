"""
Core world model.

Exports:
- WorldState, Token, Drawing, Condition, Shape: Session state
- FogOfWar: Per-cell visibility mask
- EventBus, Event, SessionEvent: Event system
- Grid conversion functions
"""

from vtt.core.events import Event, EventBus, SessionEvent
from vtt.core.fog import FogOfWar
from vtt.core.grid import (
    GridCalibration,
    calibrate,
    grid_dimensions,
    grid_to_world,
    screen_to_grid,
    screen_to_world,
    world_to_grid,
)
from vtt.core.world import (
    CONDITION_COLORS,
    SQUAD_COLORS,
    Condition,
    Drawing,
    Shape,
    Token,
    WorldState,
)

__all__ = [
    "WorldState",
    "Token",
    "Drawing",
    "Condition",
    "Shape",
    "CONDITION_COLORS",
    "SQUAD_COLORS",
    "FogOfWar",
    "GridCalibration",
    "calibrate",
    "grid_dimensions",
    "grid_to_world",
    "world_to_grid",
    "screen_to_world",
    "screen_to_grid",
    "EventBus",
    "Event",
    "SessionEvent",
]
