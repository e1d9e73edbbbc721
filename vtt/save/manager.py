"""
Save slots - numbered save files and save/load notifications.

Provides:
- 12 numbered slots (1-12 by default)
- Save/load through SaveCodec with events on the session bus
- Refusal of overlapping save/load calls against the same world
"""

from __future__ import annotations

import logging
import os
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from vtt.exceptions import VttError
from vtt.save.codec import LoadResult, SaveCodec

if TYPE_CHECKING:
    from vtt.core.events import EventBus
    from vtt.core.world import WorldState

logger = logging.getLogger(__name__)


class SaveEvent(Enum):
    """Save system events."""
    SAVE_STARTED = auto()
    SAVE_COMPLETED = auto()
    SAVE_FAILED = auto()
    LOAD_STARTED = auto()
    LOAD_COMPLETED = auto()
    LOAD_FAILED = auto()


class SaveManager:
    """
    Manages the numbered save slots.

    Slot ``n`` lives in ``<save_path>/slot_<n-1>.vtt`` so files written by
    earlier releases (which numbered slots from zero) keep their slot.

    Usage:
        saves = SaveManager(codec, world, save_path="saves", event_bus=bus)
        saves.save_slot(1)
        saves.load_slot(1)
    """

    def __init__(
        self,
        codec: SaveCodec,
        world: WorldState,
        save_path: str | os.PathLike = "saves",
        slot_count: int = 12,
        event_bus: Optional[EventBus] = None,
    ):
        self.codec = codec
        self.world = world
        self.save_path = Path(save_path)
        self.slot_count = slot_count
        self.event_bus = event_bus

        self._busy = False
        self.last_result: LoadResult | None = None

    def slot_path(self, slot: int) -> Path:
        """
        Path for a save slot.

        Raises:
            ValueError: If the slot number is out of range
        """
        if not 1 <= slot <= self.slot_count:
            raise ValueError(f"Slot must be between 1 and {self.slot_count}, got {slot}")
        return self.save_path / f"slot_{slot - 1}.vtt"

    def list_slots(self) -> dict[int, bool]:
        """Which slots currently have a save file."""
        return {
            slot: self.slot_path(slot).is_file()
            for slot in range(1, self.slot_count + 1)
        }

    def save_slot(self, slot: int) -> bool:
        """
        Save the world to a slot.

        Returns:
            True if the save was written
        """
        path = self.slot_path(slot)
        if self._busy:
            logger.warning(f"Save to slot {slot} ignored: another save/load is running")
            return False

        self._busy = True
        self._publish(SaveEvent.SAVE_STARTED, slot=slot)
        try:
            self.save_path.mkdir(parents=True, exist_ok=True)
            self.codec.save(self.world, path)
        except (VttError, OSError) as e:
            logger.error(f"Save to slot {slot} failed: {e}")
            self._publish(SaveEvent.SAVE_FAILED, slot=slot, error=str(e))
            return False
        finally:
            self._busy = False

        logger.info(f"Saved to slot {slot}")
        self._publish(SaveEvent.SAVE_COMPLETED, slot=slot)
        return True

    def load_slot(self, slot: int) -> bool:
        """
        Load a slot into the world.

        On failure the world is left as it was.

        Returns:
            True if the save was loaded
        """
        path = self.slot_path(slot)
        if self._busy:
            logger.warning(f"Load from slot {slot} ignored: another save/load is running")
            return False

        self._busy = True
        self._publish(SaveEvent.LOAD_STARTED, slot=slot)
        try:
            result = self.codec.load(self.world, path)
        except VttError as e:
            logger.error(f"Load from slot {slot} failed: {e}")
            self._publish(SaveEvent.LOAD_FAILED, slot=slot, error=str(e))
            return False
        finally:
            self._busy = False

        self.last_result = result
        if result.unresolved:
            logger.warning(f"Slot {slot}: {len(result.unresolved)} image(s) could not be restored")
        logger.info(f"Loaded slot {slot} ({result.tokens_loaded} tokens)")
        self._publish(SaveEvent.LOAD_COMPLETED, slot=slot, result=result)
        return True

    def delete_slot(self, slot: int) -> bool:
        """Delete a slot's file; True if something was removed."""
        path = self.slot_path(slot)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    @property
    def busy(self) -> bool:
        return self._busy

    def _publish(self, event: SaveEvent, **data) -> None:
        if self.event_bus:
            self.event_bus.publish(event, **data)
