"""
Asset store - decoded raster images shared by maps and tokens.

Assets are identified by their normalized relative path, compared without
regard to case or separator style, so two requests for the same image
always resolve to the same handle. Decoding goes through ``pygame.image``;
pixels are kept as an RGBA ``numpy`` array and turned into display
surfaces by the renderer, not here.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

import numpy as np
import pygame

from vtt.config import DEFAULT_IMAGE_EXTENSIONS
from vtt.exceptions import CapacityError, DecodeError

logger = logging.getLogger(__name__)


def normalize_asset_path(path: str | os.PathLike) -> str:
    """
    Portable form of an asset path.

    Absolute paths under the working directory become relative to it, and
    every separator becomes ``/``. Paths outside the working directory
    stay absolute.
    """
    text = os.fspath(path).replace("\\", "/")
    if not text:
        return ""

    if os.path.isabs(text):
        try:
            relative = os.path.relpath(text, os.getcwd())
        except ValueError:
            # Different drive on Windows
            relative = None
        if relative is not None and not relative.startswith(".."):
            text = relative

    return os.path.normpath(text).replace("\\", "/")


def asset_key(path: str | os.PathLike) -> str:
    """Identity used for deduplication."""
    return normalize_asset_path(path).lower()


def is_image_path(path: str | os.PathLike, extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS) -> bool:
    suffix = os.path.splitext(os.fspath(path))[1].lower()
    return suffix in {ext.lower() for ext in extensions}


def scan_assets(
    directory: str | os.PathLike,
    extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS,
) -> list[str]:
    """
    List image files in a directory, sorted by path.

    A missing directory yields an empty list.
    """
    root = Path(directory)
    if not root.is_dir():
        logger.warning(f"Asset directory not found: {root}")
        return []

    extensions = tuple(extensions)
    paths = [
        entry.as_posix()
        for entry in root.iterdir()
        if entry.is_file() and is_image_path(entry.name, extensions)
    ]
    return sorted(paths)


def decode_image(source: str | os.PathLike | bytes) -> tuple[int, int, np.ndarray]:
    """
    Decode an image file or in-memory image into RGBA pixels.

    Returns:
        (width, height, pixels) with pixels shaped (height, width, 4)

    Raises:
        DecodeError: Missing file, I/O failure or unsupported format
    """
    try:
        if isinstance(source, (bytes, bytearray, memoryview)):
            surface = pygame.image.load(io.BytesIO(bytes(source)))
        else:
            surface = pygame.image.load(os.fspath(source))
        width, height = surface.get_size()
        data = pygame.image.tobytes(surface, "RGBA")
    except (pygame.error, OSError, ValueError) as e:
        raise DecodeError(str(e)) from e

    pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4).copy()
    return width, height, pixels


def encode_png(pixels: np.ndarray) -> bytes:
    """
    Encode RGBA pixels as PNG.

    Raises:
        DecodeError: If the pixels cannot be encoded
    """
    height, width = pixels.shape[:2]
    data = np.ascontiguousarray(pixels, dtype=np.uint8).tobytes()
    try:
        surface = pygame.image.frombuffer(data, (width, height), "RGBA")
        buffer = io.BytesIO()
        pygame.image.save(surface, buffer, "embedded.png")
    except (pygame.error, ValueError) as e:
        raise DecodeError(f"PNG encode failed: {e}") from e
    return buffer.getvalue()


@dataclass
class Asset:
    """
    A raster image known to the store.

    Pixels stay None until the image is first needed; ``failed`` records a
    decode failure so the store does not retry it every frame.
    """
    path: str
    key: str
    width: int = 0
    height: int = 0
    pixels: np.ndarray | None = field(default=None, repr=False)
    failed: bool = False
    error: str = ""

    @property
    def loaded(self) -> bool:
        return self.pixels is not None

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    def _set_pixels(self, width: int, height: int, pixels: np.ndarray) -> None:
        self.width = width
        self.height = height
        self.pixels = pixels
        self.failed = False
        self.error = ""

    def _set_failed(self, error: str) -> None:
        self.failed = True
        self.error = error


class AssetStore:
    """
    Identity-deduplicated registry of decoded images.

    Handles are list indices; entries are never removed, so a handle stays
    valid for the life of the store.

    Usage:
        store = AssetStore()
        handle = store.get_or_load("assets/tokens/goblin.png")
        asset = store.get(handle)
        if asset and asset.loaded:
            ...
    """

    def __init__(self, max_assets: int = 256):
        self.max_assets = max_assets
        self._assets: list[Asset] = []
        self._index: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._assets)

    def __iter__(self) -> Iterator[Asset]:
        return iter(self._assets)

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, int) and 0 <= handle < len(self._assets)

    def get(self, handle: int | None) -> Asset | None:
        """Asset for a handle, or None for None/out-of-range handles."""
        if handle is None or handle not in self:
            return None
        return self._assets[handle]

    def find(self, path: str | os.PathLike) -> int | None:
        """Handle for a path if it is already known."""
        return self._index.get(asset_key(path))

    def register(self, path: str | os.PathLike) -> int:
        """
        Add an entry without decoding it.

        Raises:
            CapacityError: If the store is full
        """
        existing = self.find(path)
        if existing is not None:
            return existing
        return self._add(path)

    def get_or_load(self, path: str | os.PathLike) -> int:
        """
        Handle for an image file, decoding it if it is new.

        An existing entry is returned as-is, even if its decode failed;
        check ``Asset.failed``. Decode failures never raise.

        Raises:
            CapacityError: If a new entry is needed and the store is full
        """
        existing = self.find(path)
        if existing is not None:
            return existing

        handle = self._add(path)
        self._decode_file(self._assets[handle], path)
        return handle

    def load_from_memory(self, data: bytes, identity: str | os.PathLike) -> int:
        """
        Handle for an image held in memory (e.g. embedded in a save).

        The identity is deduplicated exactly like a file path. An existing
        entry that has no pixels yet (never loaded, or its file is gone) is
        filled from ``data``.

        Raises:
            CapacityError: If a new entry is needed and the store is full
        """
        handle = self.find(identity)
        if handle is None:
            handle = self._add(identity)
        asset = self._assets[handle]
        if not asset.loaded:
            try:
                asset._set_pixels(*decode_image(data))
            except DecodeError as e:
                logger.warning(f"Could not decode in-memory image '{asset.path}': {e}")
                asset._set_failed(str(e))
        return handle

    def ensure_loaded(self, handle: int | None) -> bool:
        """
        Decode a registered entry on first use.

        Returns:
            True if pixels are available. A failed entry is not retried.
        """
        asset = self.get(handle)
        if asset is None:
            return False
        if not asset.loaded and not asset.failed:
            self._decode_file(asset, asset.path)
        return asset.loaded

    def retry(self, handle: int) -> bool:
        """Clear a recorded failure and decode again."""
        asset = self.get(handle)
        if asset is None:
            return False
        asset.failed = False
        asset.error = ""
        return self.ensure_loaded(handle)

    def encode_png(self, handle: int | None) -> bytes:
        """PNG bytes of the currently loaded pixels, or b"" if unavailable."""
        if not self.ensure_loaded(handle):
            return b""
        asset = self._assets[handle]
        try:
            return encode_png(asset.pixels)
        except DecodeError as e:
            logger.warning(f"Could not re-encode '{asset.path}': {e}")
            return b""

    def _add(self, path: str | os.PathLike) -> int:
        if len(self._assets) >= self.max_assets:
            raise CapacityError(f"Asset limit reached ({self.max_assets})")
        normalized = normalize_asset_path(path)
        asset = Asset(path=normalized, key=normalized.lower())
        self._assets.append(asset)
        handle = len(self._assets) - 1
        self._index[asset.key] = handle
        return handle

    def _decode_file(self, asset: Asset, path: str | os.PathLike) -> None:
        try:
            asset._set_pixels(*decode_image(path))
        except DecodeError as e:
            logger.warning(f"Failed to load image '{asset.path}': {e}")
            asset._set_failed(str(e))
