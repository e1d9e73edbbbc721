import pytest

from vtt.core.world import WorldState
from vtt.resources.assets import AssetStore
from vtt.save.codec import SaveCodec
from vtt.save.manager import SaveEvent, SaveManager


@pytest.fixture
def manager(workdir, event_bus):
    world = WorldState()
    return SaveManager(SaveCodec(AssetStore()), world, save_path="saves", event_bus=event_bus)


def record(bus, *events):
    received = []
    for event in events:
        bus.subscribe(event, received.append, weak=False)
    return received


def test_slot_paths_are_zero_based_on_disk(manager, workdir):
    assert manager.slot_path(1).as_posix() == "saves/slot_0.vtt"
    assert manager.slot_path(12).as_posix() == "saves/slot_11.vtt"


@pytest.mark.parametrize("slot", [0, 13, -1])
def test_slot_out_of_range(manager, slot):
    with pytest.raises(ValueError):
        manager.slot_path(slot)


def test_save_creates_directory_and_reports(manager, event_bus, workdir):
    events = record(event_bus, SaveEvent.SAVE_STARTED, SaveEvent.SAVE_COMPLETED)
    manager.world.add_token(None, 4, 4)

    assert manager.save_slot(3)
    assert (workdir / "saves" / "slot_2.vtt").is_file()
    assert [e.type for e in events] == [SaveEvent.SAVE_STARTED, SaveEvent.SAVE_COMPLETED]
    assert events[0]["slot"] == 3
    assert manager.list_slots()[3] is True
    assert manager.list_slots()[4] is False


def test_load_round_trip(manager, event_bus):
    events = record(event_bus, SaveEvent.LOAD_COMPLETED)
    manager.world.add_token(None, 4, 5, damage=2)
    manager.save_slot(1)
    manager.world.tokens.clear()

    assert manager.load_slot(1)
    assert [(t.grid_x, t.grid_y, t.damage) for t in manager.world.tokens] == [(4, 5, 2)]
    assert events[0]["result"].tokens_loaded == 1
    assert manager.last_result is events[0]["result"]


def test_load_missing_slot_fails_cleanly(manager, event_bus):
    events = record(event_bus, SaveEvent.LOAD_FAILED)
    token = manager.world.add_token(None, 1, 1)
    assert manager.load_slot(5) is False
    assert manager.world.tokens == [token]
    assert len(events) == 1
    assert events[0]["slot"] == 5
    assert not manager.busy


def test_load_corrupt_slot_fails_cleanly(manager, workdir):
    (workdir / "saves").mkdir()
    (workdir / "saves" / "slot_0.vtt").write_bytes(b"garbage!")
    assert manager.load_slot(1) is False
    assert not manager.busy


def test_save_failure_is_reported(manager, event_bus, workdir):
    events = record(event_bus, SaveEvent.SAVE_FAILED)
    # A file where the directory should be
    (workdir / "saves").write_text("in the way")
    assert manager.save_slot(1) is False
    assert len(events) == 1
    assert not manager.busy


def test_overlapping_calls_are_refused(manager, event_bus):
    nested = []

    def on_started(event):
        nested.append(manager.save_slot(2))
        nested.append(manager.load_slot(2))

    event_bus.subscribe(SaveEvent.SAVE_STARTED, on_started, weak=False)
    assert manager.save_slot(1)
    assert nested == [False, False]
    assert not manager.busy


def test_delete_slot(manager):
    manager.save_slot(1)
    assert manager.delete_slot(1)
    assert not manager.delete_slot(1)
    assert manager.list_slots()[1] is False


def test_works_without_event_bus(workdir):
    manager = SaveManager(SaveCodec(AssetStore()), WorldState(), save_path=workdir / "s")
    assert manager.save_slot(1)
    assert manager.load_slot(1)


def test_unloadable_world_is_not_saved(manager, event_bus, workdir):
    from vtt.core.grid import GridCalibration

    events = record(event_bus, SaveEvent.SAVE_FAILED)
    manager.world.set_map(None, (9000, 4))
    manager.world.apply_calibration(GridCalibration(1, 0, 0))
    assert manager.save_slot(1) is False
    assert not manager.slot_path(1).exists()
    assert len(events) == 1
