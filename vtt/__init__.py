"""
Tabletop session core.

Authoritative state for a two-display tabletop session (map, tokens,
drawings, fog of war, camera framing) and its binary save format.

Quick Start:
    from vtt import Session, SessionConfig

    session = Session(SessionConfig(saves_dir="saves"))
    session.scan_libraries()
    session.drop_token("assets/tokens/orc.png", 400, 300)
    session.save(1)
"""

__version__ = "0.1.0"

from vtt.config import SessionConfig
from vtt.core import (
    Condition,
    Drawing,
    EventBus,
    FogOfWar,
    SessionEvent,
    Shape,
    Token,
    WorldState,
)
from vtt.exceptions import (
    CapacityError,
    DecodeError,
    FormatError,
    SaveIOError,
    SizeSanityError,
    VttError,
)
from vtt.graphics import Camera, CameraState, ViewTextureCache
from vtt.resources import Asset, AssetStore
from vtt.save import SaveCodec, SaveEvent, SaveManager
from vtt.session import Session

__all__ = [
    "Session",
    "SessionConfig",
    # World
    "WorldState",
    "Token",
    "Drawing",
    "Condition",
    "Shape",
    "FogOfWar",
    "Camera",
    "CameraState",
    "ViewTextureCache",
    # Assets
    "Asset",
    "AssetStore",
    # Saving
    "SaveCodec",
    "SaveManager",
    "SaveEvent",
    # Events
    "EventBus",
    "SessionEvent",
    # Errors
    "VttError",
    "SaveIOError",
    "FormatError",
    "DecodeError",
    "CapacityError",
    "SizeSanityError",
]
