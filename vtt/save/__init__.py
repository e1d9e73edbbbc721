"""
Save system - binary save files and numbered slots.
"""

from vtt.save.codec import LoadResult, SaveCodec, SaveSnapshot, detect_legacy_version
from vtt.save.manager import SaveEvent, SaveManager

__all__ = [
    "SaveCodec",
    "SaveSnapshot",
    "LoadResult",
    "detect_legacy_version",
    "SaveManager",
    "SaveEvent",
]
