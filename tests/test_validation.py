from dataclasses import replace

from floorgen.layout import validate_layout
from floorgen.layout.model import Corridor, CorridorTag, Layout
from floorgen.layout.validation import clearance_violations, shared_cells

from tests.layout_test_utils import make_room, straight_cells, two_room_layout


def _doubled_layout():
    """Two rooms joined twice; the second corridor merges into the first for its last three cells."""
    layout = two_room_layout()
    a = layout.rooms[0]
    a = replace(a, doorways=a.doorways + ((3, 5),))
    detour = (
        straight_cells((3, 6), (7, 6))
        + straight_cells((7, 5), (7, 3))
        + straight_cells((8, 3), (9, 3))
    )
    second = Corridor(1, detour, 3, 0, 1, CorridorTag.SECONDARY)
    return layout.clone(rooms=(a, layout.rooms[1]), corridors=layout.corridors + (second,))


def _hallway(width, third_room=True):
    a = make_room(0, 1, 2, 4, 4, doorways=[(4, 3)])
    b = make_room(1, 19, 2, 4, 4, doorways=[(19, 3)])
    rooms = (a, b) + ((make_room(2, 10, 5, 3, 3),) if third_room else ())
    hall = Corridor(0, straight_cells((5, 3), (18, 3)), width, 0, 1, CorridorTag.PRIMARY)
    return Layout(24, 10, 3, rooms, (hall,))


def test_sound_layout_has_no_problems():
    assert validate_layout(two_room_layout()) == []
    assert shared_cells(two_room_layout().corridors) == {}


def test_shared_corridor_cells_are_reported():
    layout = _doubled_layout()
    assert shared_cells(layout.corridors) == {(7, 3): [0, 1], (8, 3): [0, 1], (9, 3): [0, 1]}
    problems = validate_layout(layout)
    assert problems == [
        "corridors [0, 1] share cell (7, 3)",
        "corridors [0, 1] share cell (8, 3)",
        "corridors [0, 1] share cell (9, 3)",
    ]


def test_recorded_junctions_may_be_shared():
    layout = _doubled_layout()
    assert validate_layout(layout, junctions={(7, 3), (8, 3), (9, 3)}) == []
    assert validate_layout(layout, junctions={(7, 3)}) == [
        "corridors [0, 1] share cell (8, 3)",
        "corridors [0, 1] share cell (9, 3)",
    ]


def test_wide_corridor_running_past_a_room_is_a_clearance_violation():
    problems = clearance_violations(_hallway(5))
    assert len(problems) == 7
    assert problems[0] == "corridor 0 (width 5) at (8, 3) runs into room 2"
    assert problems[-1] == "corridor 0 (width 5) at (14, 3) runs into room 2"


def test_narrow_corridor_and_doorway_approaches_are_clear():
    assert clearance_violations(_hallway(3)) == []
    assert clearance_violations(_hallway(5, third_room=False)) == []
    assert clearance_violations(two_room_layout()) == []


def test_clearance_is_only_checked_on_request():
    layout = _hallway(5, third_room=False)
    assert validate_layout(layout, clearance=True) == []
    crowded = _hallway(5)
    assert not any("runs into" in p for p in validate_layout(crowded))
    assert sum("runs into" in p for p in validate_layout(crowded, clearance=True)) == 7
