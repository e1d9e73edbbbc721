import pytest
from pydantic import ValidationError

from vtt.core.grid import GridCalibration
from vtt.core.world import (
    CONDITION_COLORS,
    Condition,
    Drawing,
    Shape,
    Token,
    WorldState,
)
from vtt.exceptions import CapacityError


def test_token_defaults():
    token = Token()
    assert token.size == 1
    assert token.damage == 0
    assert token.squad is None
    assert token.opacity == 255
    assert token.conditions == set()


@pytest.mark.parametrize("field,value", [
    ("size", 0),
    ("size", 5),
    ("damage", -1),
    ("squad", 8),
    ("squad", -1),
    ("opacity", 256),
])
def test_token_rejects_out_of_range(field, value):
    token = Token()
    with pytest.raises(ValidationError):
        setattr(token, field, value)


def test_condition_metadata():
    assert [c.abbreviation for c in Condition] == ["BL", "DA", "FR", "GR", "RE", "SL", "TA", "WE"]
    assert Condition.WEAKENED.display_name == "Weakened"
    assert len(CONDITION_COLORS) == 8


def test_persistent_state_excludes_transient_fields():
    token = Token(id=4, selected=True, grid_x=2)
    state = token.persistent_state()
    assert "id" not in state
    assert "selected" not in state
    assert state["grid_x"] == 2


def test_set_map_resizes_fog_only_when_grid_changes(world):
    world.set_map(0, (640, 480))
    assert world.fog.shape == (10, 8)
    world.fog.set(1, 1, False)

    world.set_map(1, (630, 470))  # same grid
    assert world.fog.get(1, 1) is False

    world.set_map(2, (1280, 480))
    assert world.fog.shape == (20, 8)
    assert world.fog.get(1, 1) is True


def test_apply_calibration_resets_fog(world):
    world.set_map(0, (1000, 500))
    world.fog.hide_all()
    world.apply_calibration(GridCalibration(50, 7, 9))
    assert (world.cell_size, world.offset_x, world.offset_y) == (50, 7, 9)
    assert world.fog.shape == (20, 10)
    assert world.fog.cells.all()


def test_token_handles_survive_removal(world):
    a = world.add_token(0, 0, 0)
    b = world.add_token(0, 1, 0)
    c = world.add_token(0, 2, 0)
    world.remove_token(a.id)
    assert world.get_token(c.id) is c
    assert [t.id for t in world.tokens] == [b.id, c.id]
    assert world.remove_token(a.id) is None


def test_token_capacity():
    world = WorldState(max_tokens=2)
    world.add_token(None, 0, 0)
    first = world.add_token(None, 1, 1)
    with pytest.raises(CapacityError):
        world.add_token(None, 2, 2)
    with pytest.raises(CapacityError):
        world.copy_token(first.id, 3, 3)


def test_copy_token_duplicates_persistent_fields(world):
    source = world.add_token(3, 1, 1, size=2, damage=4, squad=5, opacity=128, hidden=True)
    source.conditions = {Condition.DAZED, Condition.SLOWED}
    source.selected = True

    copy = world.copy_token(source.id, 6, 7)
    assert copy.id != source.id
    assert (copy.grid_x, copy.grid_y) == (6, 7)
    assert copy.selected is False
    assert copy.conditions == source.conditions
    assert copy.conditions is not source.conditions
    expected = source.persistent_state()
    expected.update(grid_x=6, grid_y=7)
    assert copy.persistent_state() == expected


def test_copy_missing_token(world):
    assert world.copy_token(999, 0, 0) is None


def test_token_at_returns_topmost(world):
    world.add_token(0, 2, 2)
    top = world.add_token(1, 2, 2)
    assert world.token_at(2, 2) is top
    assert world.token_at(3, 3) is None
    assert len(world.tokens_at(2, 2)) == 2


def test_tokens_may_leave_the_map(world):
    world.set_map(0, (64, 64))
    token = world.add_token(0, 0, 0)
    world.move_token(token.id, -40, 900)
    assert (token.grid_x, token.grid_y) == (-40, 900)


def test_damage_is_clamped(world):
    token = world.add_token(0, 0, 0)
    world.adjust_damage(token.id, 7)
    world.adjust_damage(token.id, -3)
    assert token.damage == 4
    world.adjust_damage(token.id, -10)
    assert token.damage == 0


def test_resize_is_clamped(world):
    token = world.add_token(0, 0, 0)
    for _ in range(6):
        world.resize_token(token.id, 1)
    assert token.size == 4
    for _ in range(6):
        world.resize_token(token.id, -1)
    assert token.size == 1


def test_toggle_condition(world):
    token = world.add_token(0, 0, 0)
    world.toggle_condition(token.id, Condition.GRABBED)
    assert token.has_condition(Condition.GRABBED)
    world.toggle_condition(token.id, Condition.GRABBED)
    assert not token.has_condition(Condition.GRABBED)


def test_assign_squad_toggles(world):
    token = world.add_token(0, 0, 0)
    world.assign_squad(token.id, 3)
    assert token.squad == 3
    world.assign_squad(token.id, 5)
    assert token.squad == 5
    world.assign_squad(token.id, 5)
    assert token.squad is None
    world.assign_squad(token.id, 12)
    assert token.squad is None


def test_opacity_and_hidden(world):
    token = world.add_token(0, 0, 0)
    world.toggle_opacity(token.id)
    assert token.opacity == 128
    world.toggle_opacity(token.id)
    assert token.opacity == 255
    world.toggle_opacity(token.id)
    world.reset_opacity()
    assert token.opacity == 255
    world.toggle_hidden(token.id)
    assert token.hidden


def test_selection(world):
    a = world.add_token(0, 0, 0)
    b = world.add_token(0, 1, 0)
    world.select(a.id)
    world.select(b.id, additive=True)
    assert list(world.selected_tokens()) == [a, b]
    world.select(a.id)
    assert list(world.selected_tokens()) == [a]
    world.clear_selection()
    assert list(world.selected_tokens()) == []


def test_drawing_hit_tests():
    rect = Drawing(shape=Shape.RECTANGLE, x1=10, y1=10, x2=0, y2=0)
    assert rect.contains(5, 5)
    assert not rect.contains(11, 5)

    circle = Drawing(shape=Shape.CIRCLE, x1=0, y1=0, x2=20, y2=0)
    assert circle.contains(10, 9)
    assert not circle.contains(10, 11)


def test_drawing_removal_preserves_order(world):
    first = world.add_drawing(Drawing(x1=0, y1=0, x2=10, y2=10, color=1))
    middle = world.add_drawing(Drawing(x1=100, y1=100, x2=110, y2=110, color=2))
    last = world.add_drawing(Drawing(x1=200, y1=200, x2=210, y2=210, color=3))
    assert world.remove_drawing_at(105, 105) is middle
    assert world.drawings == [first, last]
    assert world.remove_drawing_at(500, 500) is None


def test_drawing_removal_takes_topmost(world):
    below = world.add_drawing(Drawing(x1=0, y1=0, x2=50, y2=50))
    above = world.add_drawing(Drawing(x1=10, y1=10, x2=40, y2=40))
    assert world.remove_drawing_at(20, 20) is above
    assert world.drawings == [below]


def test_drawing_capacity():
    world = WorldState(max_drawings=1)
    world.add_drawing(Drawing())
    with pytest.raises(CapacityError):
        world.add_drawing(Drawing())
    world.clear_drawings()
    world.add_drawing(Drawing())
