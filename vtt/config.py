"""
Session configuration.

Directories, slot count and collection limits, validated with Pydantic so
a bad value fails at assignment instead of deep inside a load.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp")


class SessionConfig(BaseModel):
    """
    Configuration for a tabletop session.

    Usage:
        config = SessionConfig(saves_dir="my_saves", max_tokens=128)
        session = Session(config)
    """

    model_config = ConfigDict(validate_assignment=True, extra='forbid')

    saves_dir: Path = Path("saves")
    maps_dir: Path = Path("assets/maps")
    tokens_dir: Path = Path("assets/tokens")

    slot_count: int = Field(12, ge=1, le=99)
    max_tokens: int = Field(256, ge=1)
    max_drawings: int = Field(256, ge=1)
    max_assets: int = Field(256, ge=1)

    default_cell_size: int = Field(64, ge=1)
    image_extensions: tuple[str, ...] = DEFAULT_IMAGE_EXTENSIONS
