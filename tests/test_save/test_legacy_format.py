import pytest

from vtt.core.world import Condition, WorldState
from vtt.resources.assets import AssetStore
from vtt.save.codec import (
    BYTE,
    CONDITIONS,
    INT32,
    LEGACY_HEADER,
    LEGACY_MAGIC,
    LEGACY_TOKEN_BASE,
    LEGACY_VERSIONS,
    SaveCodec,
    detect_legacy_version,
    legacy_expected_size,
)


def legacy_token(version, path="", gx=0, gy=0, size=1, name="Goblin", hidden=0,
                 damage=0, squad=-1, opacity=255, conditions=(0,) * 8):
    data = LEGACY_TOKEN_BASE.pack(path.encode(), gx, gy, size, name.encode(), hidden)
    if version >= 2:
        data += INT32.pack(damage)
    if version >= 3:
        data += INT32.pack(squad)
    if version >= 4:
        data += BYTE.pack(opacity)
    if version >= 5:
        data += CONDITIONS.pack(*conditions)
    return data


def legacy_file(version, tokens=(), map_path="", cols=0, rows=0, cell=64, offset=(0, 0),
                show_grid=1, cam=(0.0, 0.0, 1.0), fog=None):
    data = LEGACY_HEADER.pack(
        LEGACY_MAGIC, map_path.encode(), len(tokens), cols, rows, cell,
        offset[0], offset[1], show_grid, *cam,
    )
    for token in tokens:
        data += legacy_token(version, **token)
    data += bytes([1] * (cols * rows)) if fog is None else fog
    return data


@pytest.mark.parametrize("version", range(1, LEGACY_VERSIONS + 1))
@pytest.mark.parametrize("count", [1, 2, 3, 7, 13, 24, 25, 26, 50])
@pytest.mark.parametrize("fog_shape", [(0, 0), (3, 2), (40, 30)])
def test_exact_sizes_classify_exactly(version, count, fog_shape):
    cols, rows = fog_shape
    size = legacy_expected_size(version, count, cols, rows)
    assert detect_legacy_version(size, count, cols, rows) == version


def test_built_files_match_expected_sizes():
    for version in range(1, LEGACY_VERSIONS + 1):
        data = legacy_file(version, tokens=[{}] * 4, cols=3, rows=2)
        assert len(data) == legacy_expected_size(version, 4, 3, 2)


@pytest.mark.parametrize("count", [1, 5, 20, 50])
def test_detection_is_monotonic_in_size(count):
    low = legacy_expected_size(1, count, 2, 2) - 200
    high = legacy_expected_size(LEGACY_VERSIONS, count, 2, 2) + 200
    previous = 1
    for size in range(low, high):
        version = detect_legacy_version(size, count, 2, 2)
        assert version >= previous
        previous = version


def test_small_shortfall_still_classifies():
    # 30 tokens: the conditions revision adds 240 bytes, so 100 bytes of slack applies
    size = legacy_expected_size(5, 30, 0, 0) - 100
    assert detect_legacy_version(size, 30, 0, 0) == 5
    assert detect_legacy_version(size - 1, 30, 0, 0) == 4


def test_load_every_revision(png_factory, workdir):
    png_factory("maps/keep.png", 100, 50)
    png_factory("tokens/orc.png")
    token = dict(path="tokens/orc.png", gx=3, gy=-2, size=2, hidden=1, damage=6,
                 squad=4, opacity=128, conditions=(0, 1, 0, 0, 0, 0, 1, 0))

    for version in range(1, LEGACY_VERSIONS + 1):
        data = legacy_file(version, tokens=[token, dict(token, gx=9)], map_path="maps/keep.png",
                           cols=2, rows=1, cell=50, offset=(4, 8), show_grid=0,
                           cam=(10.0, 20.0, 1.5), fog=bytes([0, 1]))
        (workdir / "old.vtt").write_bytes(data)

        world = WorldState()
        store = AssetStore()
        result = SaveCodec(store).load(world, "old.vtt")

        assert result.generation == 1
        assert result.version == version
        assert result.unresolved == []
        assert world.map_size == (100, 50)
        assert (world.cell_size, world.offset_x, world.offset_y) == (50, 4, 8)
        assert world.show_grid is False
        assert world.fog.to_bytes() == bytes([0, 1])
        assert (world.camera.x, world.camera.y, world.camera.zoom) == (10.0, 20.0, 1.5)

        loaded = world.tokens[0]
        assert (loaded.grid_x, loaded.grid_y, loaded.size, loaded.hidden) == (3, -2, 2, True)
        assert store.get(loaded.asset).path == "tokens/orc.png"
        assert world.tokens[1].grid_x == 9
        assert loaded.damage == (6 if version >= 2 else 0)
        assert loaded.squad == (4 if version >= 3 else None)
        assert loaded.opacity == (128 if version >= 4 else 255)
        expected = {Condition.DAZED, Condition.TAUNTED} if version >= 5 else set()
        assert loaded.conditions == expected


def test_short_optional_fields_fall_back_to_defaults(workdir):
    tokens = [dict(gx=i, damage=3, squad=2, opacity=64, conditions=(1,) * 8) for i in range(20)]
    data = legacy_file(5, tokens=tokens)
    # Last record loses its squad, opacity and conditions
    data = data[:-10]
    (workdir / "old.vtt").write_bytes(data)

    world = WorldState()
    result = SaveCodec(AssetStore()).load(world, "old.vtt")
    assert result.version == 5
    assert len(world.tokens) == 20

    last = world.tokens[-1]
    assert last.damage == 3
    assert last.squad is None
    assert last.opacity == 255
    assert last.conditions == set()
    assert world.tokens[-2].squad == 2


def test_missing_legacy_images_are_reported(workdir):
    data = legacy_file(3, tokens=[dict(path="tokens/lost.png")], map_path="maps/lost.png",
                       cols=1, rows=1)
    (workdir / "old.vtt").write_bytes(data)

    world = WorldState()
    store = AssetStore()
    result = SaveCodec(store).load(world, "old.vtt")
    assert sorted(result.unresolved) == ["maps/lost.png", "tokens/lost.png"]
    assert world.map_size == (0, 0)
    assert len(world.tokens) == 1
    assert store.get(world.tokens[0].asset).failed


def test_legacy_backslash_paths_share_handles(png_factory, workdir):
    png_factory("tokens/orc.png")
    data = legacy_file(2, tokens=[dict(path="tokens\\orc.png"), dict(path="Tokens/ORC.png")])
    (workdir / "old.vtt").write_bytes(data)

    world = WorldState()
    store = AssetStore()
    SaveCodec(store).load(world, "old.vtt")
    assert world.tokens[0].asset == world.tokens[1].asset
    assert len(store) == 1


def test_resave_upgrades_to_embedded_format(png_factory, workdir):
    png_factory("tokens/orc.png")
    data = legacy_file(4, tokens=[dict(path="tokens/orc.png", opacity=128)], cols=1, rows=1)
    (workdir / "old.vtt").write_bytes(data)

    store = AssetStore()
    codec = SaveCodec(store)
    world = WorldState()
    codec.load(world, "old.vtt")
    codec.save(world, "new.vtt")
    (workdir / "tokens" / "orc.png").unlink()

    reloaded = WorldState()
    result = SaveCodec(AssetStore()).load(reloaded, "new.vtt")
    assert result.generation == 2
    assert reloaded.tokens[0].opacity == 128
    assert result.unresolved == []
