"""
Binary save format - both on-disk generations.

Generation 1 stores asset paths and grew optional per-token fields over
five revisions without ever writing a version number; the revision is
inferred from the file size. Generation 2 embeds a PNG copy of every
referenced image, so a save still opens after the source files are gone.
Only generation 2 is written.

All integers are little-endian int32, floats are float32 and flags are one
byte. Loading happens in two phases: the file is parsed into a
SaveSnapshot (nothing is mutated, so a bad header leaves the world as it
was), then the snapshot is applied.
"""

from __future__ import annotations

import logging
import math
import os
import struct
from dataclasses import dataclass, field
from pathlib import Path

from vtt.core.world import Condition, MAX_TOKEN_SIZE, SQUAD_COUNT, Token, WorldState
from vtt.exceptions import CapacityError, FormatError, SaveIOError, SizeSanityError
from vtt.graphics.camera import MAX_ZOOM, MIN_ZOOM, CameraState
from vtt.resources.assets import AssetStore, normalize_asset_path

logger = logging.getLogger(__name__)


LEGACY_MAGIC = 0x56545401
EMBEDDED_MAGIC = 0x56545402

PATH_SLOT = 256
NAME_SLOT = 64
CONDITION_COUNT = len(Condition)

MAX_EMBEDDED_BYTES = 50 * 1024 * 1024
MAX_PATH_BYTES = 4096
MAX_FOG_DIM = 8192
MAX_FOG_CELLS = 4096 * 4096

NO_IMAGE_DATA = "no image data"

# Slack allowed when matching a legacy file size against a layout
VERSION_TOLERANCE = 100

INT32 = struct.Struct("<i")
UINT32 = struct.Struct("<I")
BYTE = struct.Struct("<B")
CONDITIONS = struct.Struct(f"<{CONDITION_COUNT}B")

# magic, map path, token count, fog cols, fog rows, cell size, offset x/y,
# show grid, camera x/y/zoom
LEGACY_HEADER = struct.Struct(f"<I{PATH_SLOT}siiiiiiB3f")
# asset path, grid x/y, size, display name, hidden
LEGACY_TOKEN_BASE = struct.Struct(f"<{PATH_SLOT}siii{NAME_SLOT}sB")

# Per-token record size for legacy revisions 1-5:
# base, +damage, +squad, +opacity, +conditions
LEGACY_RECORD_SIZES = (
    LEGACY_TOKEN_BASE.size,
    LEGACY_TOKEN_BASE.size + INT32.size,
    LEGACY_TOKEN_BASE.size + 2 * INT32.size,
    LEGACY_TOKEN_BASE.size + 2 * INT32.size + BYTE.size,
    LEGACY_TOKEN_BASE.size + 2 * INT32.size + BYTE.size + CONDITIONS.size,
)
LEGACY_VERSIONS = len(LEGACY_RECORD_SIZES)

# magic, fog cols, fog rows, cell size, offset x/y, camera x/y/zoom
EMBEDDED_HEADER = struct.Struct("<Iiiiii3f")
# grid x/y, size, damage, squad, opacity, hidden, conditions
EMBEDDED_TOKEN = struct.Struct(f"<iiiiiBB{CONDITION_COUNT}B")

_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1


@dataclass
class EmbeddedAsset:
    """One embedded-asset record; ``png`` is None when unavailable or rejected."""
    path: str
    png: bytes | None = None
    error: str = ""


@dataclass
class TokenRecord:
    """A token as stored, before asset references are resolved."""
    grid_x: int
    grid_y: int
    size: int = 1
    damage: int = 0
    squad: int | None = None
    opacity: int = 255
    hidden: bool = False
    conditions: set[Condition] = field(default_factory=set)
    asset_path: str = ""
    embedded: EmbeddedAsset | None = None


@dataclass
class SaveSnapshot:
    """Parsed contents of a save file."""
    generation: int
    version: int
    fog_cols: int
    fog_rows: int
    cell_size: int
    offset_x: int
    offset_y: int
    camera: CameraState
    show_grid: bool | None = None
    map_path: str = ""
    map_embedded: EmbeddedAsset | None = None
    token_count: int = 0
    tokens: list[TokenRecord] = field(default_factory=list)
    fog: bytes = b""


@dataclass
class LoadResult:
    """What a load actually restored."""
    generation: int
    version: int
    tokens_loaded: int = 0
    tokens_dropped: int = 0
    unresolved: list[str] = field(default_factory=list)


class _Reader:
    """Cursor over a byte buffer; short reads return None and exhaust it."""

    def __init__(self, data: bytes):
        self._data = data
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.pos

    def read(self, n: int) -> bytes | None:
        if n < 0 or self.pos + n > len(self._data):
            self.pos = len(self._data)
            return None
        chunk = self._data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def read_available(self, n: int) -> bytes:
        """Up to n bytes, fewer if the buffer ends first."""
        n = max(0, min(n, self.remaining))
        chunk = self._data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def unpack(self, fmt: struct.Struct) -> tuple | None:
        chunk = self.read(fmt.size)
        if chunk is None:
            return None
        return fmt.unpack(chunk)


def legacy_expected_size(version: int, token_count: int, cols: int, rows: int) -> int:
    """File size a legacy save of the given revision would have."""
    record = LEGACY_RECORD_SIZES[version - 1]
    return LEGACY_HEADER.size + token_count * record + cols * rows


def detect_legacy_version(file_size: int, token_count: int, cols: int, rows: int) -> int:
    """
    Infer the revision (1-5) of a legacy save from its size.

    The file is classified as the highest revision whose expected size it
    reaches, less a fixed tolerance. The tolerance is capped one byte below
    the growth from the previous revision, so a file of exactly the size a
    revision predicts never classifies higher. With no tokens every
    revision predicts the same size and the highest one wins; the result
    is not meaningful then, but no token fields are read either.
    """
    version = 1
    previous = None
    for v in range(1, LEGACY_VERSIONS + 1):
        expected = legacy_expected_size(v, token_count, cols, rows)
        tolerance = VERSION_TOLERANCE
        if previous is not None and expected > previous:
            tolerance = min(tolerance, expected - previous - 1)
        if file_size >= expected - tolerance:
            version = v
        previous = expected
    return version


def _slot_text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _clamp_i32(value: int) -> int:
    return max(_INT32_MIN, min(_INT32_MAX, int(value)))


def _squad_from_stored(value: int) -> int | None:
    return value if 0 <= value < SQUAD_COUNT else None


def _conditions_from_bytes(flags: tuple[int, ...]) -> set[Condition]:
    return {condition for condition, flag in zip(Condition, flags) if flag}


def _validate_header(
    cols: int,
    rows: int,
    cell_size: int,
    camera: tuple[float, float, float],
) -> None:
    if cell_size < 1:
        raise FormatError(f"Invalid cell size {cell_size}")
    if not (0 <= cols <= MAX_FOG_DIM and 0 <= rows <= MAX_FOG_DIM) or cols * rows > MAX_FOG_CELLS:
        raise FormatError(f"Invalid fog dimensions {cols}x{rows}")
    if not all(math.isfinite(v) for v in camera):
        raise FormatError("Non-finite camera values")


class SaveCodec:
    """
    Reads and writes save files against a WorldState and AssetStore.

    Usage:
        codec = SaveCodec(store)
        codec.save(world, "saves/slot_0.vtt")
        result = codec.load(world, "saves/slot_0.vtt")
    """

    def __init__(self, store: AssetStore):
        self.store = store

    # Saving

    def save(self, world: WorldState, path: str | os.PathLike) -> None:
        """
        Write the world in the embedded-asset format.

        Raises:
            FormatError: If the world cannot be stored in a loadable file;
                nothing is written
            SaveIOError: If the file cannot be written
        """
        data = self.encode(world)
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise SaveIOError(f"Cannot write save file {path}: {e}") from e

    def encode(self, world: WorldState) -> bytes:
        """
        Serialize the world in the embedded-asset format.

        Raises:
            FormatError: If the fog grid or camera is outside what load accepts
        """
        camera = world.camera
        _validate_header(world.fog.cols, world.fog.rows, world.cell_size, (camera.x, camera.y, camera.zoom))

        png_cache: dict[int, bytes] = {}
        out = bytearray()
        out += EMBEDDED_HEADER.pack(
            EMBEDDED_MAGIC,
            world.fog.cols,
            world.fog.rows,
            world.cell_size,
            _clamp_i32(world.offset_x),
            _clamp_i32(world.offset_y),
            camera.x,
            camera.y,
            camera.zoom,
        )
        out += self._encode_embedded(world.map_asset, png_cache)

        out += INT32.pack(len(world.tokens))
        for token in world.tokens:
            out += EMBEDDED_TOKEN.pack(
                _clamp_i32(token.grid_x),
                _clamp_i32(token.grid_y),
                token.size,
                _clamp_i32(token.damage),
                -1 if token.squad is None else token.squad,
                token.opacity,
                token.hidden,
                *(condition in token.conditions for condition in Condition),
            )
            out += self._encode_embedded(token.asset, png_cache)

        out += world.fog.to_bytes()
        return bytes(out)

    def _encode_embedded(self, handle: int | None, png_cache: dict[int, bytes]) -> bytes:
        asset = self.store.get(handle)
        if asset is None:
            return INT32.pack(0) + INT32.pack(0)

        path = normalize_asset_path(asset.path).encode("utf-8")[:MAX_PATH_BYTES]
        if handle not in png_cache:
            png_cache[handle] = self.store.encode_png(handle)
            if not png_cache[handle]:
                logger.warning(f"Asset '{asset.path}' is unavailable; saved without image data")
        png = png_cache[handle]
        return INT32.pack(len(path)) + path + INT32.pack(len(png)) + png

    # Loading

    def load(self, world: WorldState, path: str | os.PathLike) -> LoadResult:
        """
        Read a save file of either generation into the world.

        Raises:
            SaveIOError: If the file cannot be read
            FormatError: Unknown magic or malformed header; world untouched
        """
        try:
            data = Path(path).read_bytes()
        except OSError as e:
            raise SaveIOError(f"Cannot read save file {path}: {e}") from e

        snapshot = self.parse(data)
        return self.apply(snapshot, world)

    def parse(self, data: bytes) -> SaveSnapshot:
        """
        Parse a save file without touching any state.

        Raises:
            FormatError: Unknown magic or malformed header
        """
        reader = _Reader(data)
        raw = reader.unpack(UINT32)
        if raw is None:
            raise FormatError("File too short for a save header")

        magic = raw[0]
        reader.pos = 0
        if magic == EMBEDDED_MAGIC:
            return self._parse_embedded(reader)
        if magic == LEGACY_MAGIC:
            return self._parse_legacy(reader, len(data))
        raise FormatError(f"Unrecognized save magic 0x{magic:08X}")

    def _parse_legacy(self, reader: _Reader, file_size: int) -> SaveSnapshot:
        header = reader.unpack(LEGACY_HEADER)
        if header is None:
            raise FormatError("Truncated legacy header")

        (_, map_slot, count, cols, rows, cell_size,
         offset_x, offset_y, show_grid, cam_x, cam_y, cam_zoom) = header
        _validate_header(cols, rows, cell_size, (cam_x, cam_y, cam_zoom))
        if count < 0:
            raise FormatError(f"Invalid token count {count}")

        version = detect_legacy_version(file_size, count, cols, rows)
        snapshot = SaveSnapshot(
            generation=1,
            version=version,
            fog_cols=cols,
            fog_rows=rows,
            cell_size=cell_size,
            offset_x=offset_x,
            offset_y=offset_y,
            camera=CameraState(cam_x, cam_y, cam_zoom),
            show_grid=bool(show_grid),
            map_path=_slot_text(map_slot),
            token_count=count,
        )

        for i in range(count):
            base = reader.unpack(LEGACY_TOKEN_BASE)
            if base is None:
                logger.warning(f"Legacy save ends after {i} of {count} tokens")
                break
            asset_slot, gx, gy, size, _name, hidden = base
            record = TokenRecord(
                grid_x=gx,
                grid_y=gy,
                size=size,
                hidden=bool(hidden),
                asset_path=_slot_text(asset_slot),
            )

            # Fields added by later revisions; a short read keeps the default
            if version >= 2:
                value = reader.unpack(INT32)
                if value is not None:
                    record.damage = value[0]
            if version >= 3:
                value = reader.unpack(INT32)
                if value is not None:
                    record.squad = _squad_from_stored(value[0])
            if version >= 4:
                value = reader.unpack(BYTE)
                if value is not None:
                    record.opacity = value[0]
            if version >= 5:
                value = reader.unpack(CONDITIONS)
                if value is not None:
                    record.conditions = _conditions_from_bytes(value)

            snapshot.tokens.append(record)

        snapshot.fog = reader.read_available(cols * rows)
        return snapshot

    def _parse_embedded(self, reader: _Reader) -> SaveSnapshot:
        header = reader.unpack(EMBEDDED_HEADER)
        if header is None:
            raise FormatError("Truncated header")

        _, cols, rows, cell_size, offset_x, offset_y, cam_x, cam_y, cam_zoom = header
        _validate_header(cols, rows, cell_size, (cam_x, cam_y, cam_zoom))

        snapshot = SaveSnapshot(
            generation=2,
            version=0,
            fog_cols=cols,
            fog_rows=rows,
            cell_size=cell_size,
            offset_x=offset_x,
            offset_y=offset_y,
            camera=CameraState(cam_x, cam_y, cam_zoom),
        )

        snapshot.map_embedded = self._read_embedded(reader)
        if snapshot.map_embedded is None:
            logger.warning("Save ends inside the map record")
            return snapshot
        snapshot.map_path = snapshot.map_embedded.path

        raw = reader.unpack(INT32)
        if raw is None:
            logger.warning("Save ends before the token list")
            return snapshot
        count = raw[0]
        if count < 0:
            raise FormatError(f"Invalid token count {count}")
        snapshot.token_count = count

        for i in range(count):
            fields = reader.unpack(EMBEDDED_TOKEN)
            if fields is None:
                logger.warning(f"Save ends after {i} of {count} tokens")
                return snapshot
            gx, gy, size, damage, squad, opacity, hidden, *flags = fields
            record = TokenRecord(
                grid_x=gx,
                grid_y=gy,
                size=size,
                damage=damage,
                squad=_squad_from_stored(squad),
                opacity=opacity,
                hidden=bool(hidden),
                conditions=_conditions_from_bytes(tuple(flags)),
            )
            record.embedded = self._read_embedded(reader)
            snapshot.tokens.append(record)
            if record.embedded is None:
                logger.warning(f"Save ends inside the image record of token {i}")
                return snapshot
            record.asset_path = record.embedded.path

        snapshot.fog = reader.read_available(cols * rows)
        return snapshot

    def _read_embedded(self, reader: _Reader) -> EmbeddedAsset | None:
        """
        Read one embedded-asset record.

        Returns:
            The record (with png None if unavailable or rejected), or None
            if the file ends inside it
        """
        raw = reader.unpack(INT32)
        if raw is None:
            return None
        path_len = raw[0]
        path = ""
        if 0 < path_len <= MAX_PATH_BYTES:
            chunk = reader.read(path_len)
            if chunk is None:
                return None
            path = chunk.decode("utf-8", errors="replace")

        raw = reader.unpack(INT32)
        if raw is None:
            return None
        png_len = raw[0]

        if png_len == 0:
            return EmbeddedAsset(path, None, NO_IMAGE_DATA)
        if png_len < 0 or png_len > MAX_EMBEDDED_BYTES:
            error = SizeSanityError(f"Embedded image '{path}' declares {png_len} bytes")
            logger.warning(str(error))
            return EmbeddedAsset(path, None, str(error))

        png = reader.read(png_len)
        if png is None:
            return None
        return EmbeddedAsset(path, png)

    # Applying

    def apply(self, snapshot: SaveSnapshot, world: WorldState) -> LoadResult:
        """Replace the world's persistent state with a parsed snapshot."""
        result = LoadResult(generation=snapshot.generation, version=snapshot.version)

        # Tokens past the limit are dropped before their images are registered
        records = snapshot.tokens[:world.max_tokens]
        result.tokens_dropped = len(snapshot.tokens) - len(records)

        # Assets first, so tokens can bind to handles straight away
        if snapshot.generation == 2:
            map_handle = self._resolve_embedded(snapshot.map_embedded, result)
            token_handles = [self._resolve_embedded(t.embedded, result) for t in records]
        else:
            map_handle = self._resolve_path(snapshot.map_path, result)
            token_handles = [self._resolve_path(t.asset_path, result) for t in records]

        world.cell_size = snapshot.cell_size
        world.offset_x = snapshot.offset_x
        world.offset_y = snapshot.offset_y

        map_asset = self.store.get(map_handle)
        world.map_asset = map_handle
        world.map_size = map_asset.size if map_asset is not None else (0, 0)

        world.fog.resize(snapshot.fog_cols, snapshot.fog_rows)
        world.fog.load_cells(snapshot.fog, snapshot.fog_cols, snapshot.fog_rows)

        tokens = []
        for record, handle in zip(records, token_handles):
            tokens.append(Token(
                id=world.next_token_id(),
                grid_x=record.grid_x,
                grid_y=record.grid_y,
                size=max(1, min(MAX_TOKEN_SIZE, record.size)),
                asset=handle,
                damage=max(0, record.damage),
                squad=record.squad,
                opacity=record.opacity & 0xFF,
                hidden=record.hidden,
                conditions=set(record.conditions),
            ))
        world.tokens = tokens
        result.tokens_loaded = len(tokens)
        if result.tokens_dropped:
            logger.warning(f"Token limit reached; dropped {result.tokens_dropped} saved tokens")

        if snapshot.show_grid is not None:
            world.show_grid = snapshot.show_grid

        camera = snapshot.camera
        world.camera = CameraState(camera.x, camera.y, max(MIN_ZOOM, min(MAX_ZOOM, camera.zoom)))
        return result

    def _resolve_embedded(self, embedded: EmbeddedAsset | None, result: LoadResult) -> int | None:
        if embedded is None or embedded.png is None:
            # An empty record with no path is a token that never had an image
            if embedded is not None and (embedded.path or embedded.error != NO_IMAGE_DATA):
                result.unresolved.append(embedded.path)
            return None

        handle = self.store.find(embedded.path) if embedded.path else None
        if handle is not None and self.store.ensure_loaded(handle):
            return handle

        try:
            handle = self.store.load_from_memory(embedded.png, embedded.path)
        except CapacityError as e:
            logger.warning(f"Cannot register embedded image '{embedded.path}': {e}")
            result.unresolved.append(embedded.path)
            return None

        if self.store.get(handle).failed:
            result.unresolved.append(embedded.path)
            return None
        return handle

    def _resolve_path(self, path: str, result: LoadResult) -> int | None:
        """Handle for a legacy path reference; a file that fails to decode keeps its entry for retry()."""
        if not path:
            return None
        try:
            handle = self.store.get_or_load(path)
        except CapacityError as e:
            logger.warning(f"Cannot register image '{path}': {e}")
            result.unresolved.append(path)
            return None
        if not self.store.ensure_loaded(handle):
            result.unresolved.append(path)
        return handle
