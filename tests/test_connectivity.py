import random

import pytest

from floorgen.layout import (
    ConnectivityBuilder,
    CorridorTag,
    GenerationFailure,
    GenerationRequest,
    Layout,
    ObstacleGrid,
    Rect,
    RoomType,
    build_partition,
    classify_rooms,
    is_connected,
    shortest_route,
    validate_layout,
)
from floorgen.layout.connectivity import build_connectivity, candidate_doorways, select_core_rooms, unreached

from tests.layout_test_utils import make_room, room_bfs, two_room_layout

# Room 2 sits inside a ring; rooms 0 and 1 are outside it.
RING = (Rect(4, 10, 8, 1), Rect(4, 17, 8, 1), Rect(4, 10, 1, 8), Rect(11, 10, 1, 8))


def _three_rooms():
    return [
        make_room(0, 2, 2, 4, 4, RoomType.OFFICE),
        make_room(1, 10, 2, 4, 4, RoomType.STORAGE),
        make_room(2, 6, 12, 4, 4, RoomType.OFFICE),
    ]


def _layout(builder, width, height):
    outcome = builder.result()
    return Layout(width=width, height=height, seed=0, rooms=tuple(outcome.rooms), corridors=tuple(outcome.corridors))


def _partitioned_rooms(seed=42, **kw):
    params = dict(seed=seed, width=40, height=40, min_rooms=12, max_rooms=12)
    params.update(kw)
    req = GenerationRequest(**params).validate()
    rng = random.Random(seed)
    rooms = build_partition(req, rng).rooms()
    return req, classify_rooms(rooms, req.width, req.height, rng)


def test_candidate_doorways_skip_corners_and_keep_existing_first():
    room = make_room(0, 2, 2, 5, 5, doorways=[(6, 4)])
    cells = candidate_doorways(room)
    assert cells[0] == (6, 4)
    assert len(cells) == len(set(cells))
    for cell in cells:
        assert room.bounds.on_perimeter(cell)
        assert not room.bounds.is_corner(cell)
    assert (4, 2) in cells  # top side midpoint


def test_core_rooms_include_largest_and_tagged():
    rooms = [make_room(i, i * 6, 0, 4, 4, RoomType.OFFICE) for i in range(10)]
    rooms[3] = make_room(3, 18, 0, 5, 5, RoomType.OFFICE)
    rooms[7] = make_room(7, 42, 0, 4, 4, RoomType.LOBBY)
    rooms[9] = make_room(9, 54, 0, 4, 4, RoomType.BOSS_ROOM)
    cores = select_core_rooms(rooms, 0.3)
    # 3 largest (room 3, then lowest ids) plus Lobby and BossRoom
    assert cores == [0, 1, 3, 7, 9]


def test_two_rooms_join_with_one_primary_corridor():
    rooms = [make_room(0, 2, 2, 4, 4, RoomType.OFFICE), make_room(1, 10, 2, 4, 4, RoomType.BOSS_ROOM)]
    builder = ConnectivityBuilder(rooms, 16, 8)
    outcome = builder.run()
    assert len(outcome.corridors) == 1
    corridor = outcome.corridors[0]
    assert corridor.tag is CorridorTag.PRIMARY
    assert corridor.width == 5
    assert corridor.cells[0] == (6, 3) and corridor.cells[-1] == (9, 3)
    assert outcome.metrics["backbone_corridors"] == 1
    assert outcome.metrics["redundant_corridors"] == 0
    layout = _layout(builder, 16, 8)
    assert validate_layout(layout) == []


def test_partitioned_rooms_are_all_connected():
    req, rooms = _partitioned_rooms()
    outcome = build_connectivity(rooms, req.width, req.height)
    layout = Layout(req.width, req.height, req.seed, tuple(outcome.rooms), tuple(outcome.corridors))
    assert room_bfs(layout) == {r.id for r in rooms}
    assert len(outcome.corridors) >= len(rooms) - 1
    assert validate_layout(layout, outcome.junctions) == []
    secondary = [c for c in outcome.corridors if c.tag is CorridorTag.SECONDARY]
    assert all(c.width == 3 for c in secondary)


def test_redundant_corridors_round_down():
    req, rooms = _partitioned_rooms()
    outcome = build_connectivity(rooms, req.width, req.height, redundancy_ratio=0.2)
    # floor(12 * 0.2) == 2
    assert outcome.metrics["redundant_corridors"] <= 2
    one = build_connectivity(rooms, req.width, req.height, redundancy_ratio=0.1)
    # floor(12 * 0.1) == 1
    assert one.metrics["redundant_corridors"] <= 1
    zero = build_connectivity(rooms, req.width, req.height, redundancy_ratio=0.0)
    assert zero.metrics["redundant_corridors"] == 0


def test_redundant_corridors_join_rooms_not_already_adjacent():
    req, rooms = _partitioned_rooms()
    outcome = build_connectivity(rooms, req.width, req.height, redundancy_ratio=0.5)
    pairs = [c.room_pair for c in outcome.corridors]
    assert len(pairs) == len(set(pairs))


def test_build_is_deterministic():
    req, rooms = _partitioned_rooms(seed=99)
    first = build_connectivity(rooms, req.width, req.height)
    second = build_connectivity(rooms, req.width, req.height)
    assert first.corridors == second.corridors
    assert first.rooms == second.rooms


def test_enclosed_room_is_reached_by_repair():
    rooms = _three_rooms()
    grid = ObstacleGrid.from_rooms(20, 22, rooms)
    for rect in RING:
        grid.burn_corridor(rect.cells())
    builder = ConnectivityBuilder(rooms, 20, 22, grid=grid)
    outcome = builder.run()
    assert outcome.metrics["repairs_performed"] == 1
    assert outcome.metrics["repair_corridors"] == 1
    assert outcome.metrics["paths_not_found"] > 0
    assert unreached([0, 1, 2], outcome.corridors) == []
    # Reaching room 2 means crossing the ring; the crossing is recorded.
    assert outcome.junctions
    assert outcome.metrics["junction_cells"] == len(outcome.junctions)
    repair = outcome.corridors[-1]
    assert outcome.junctions <= set(repair.cells)


def test_unreachable_room_after_repair_is_a_failure():
    rooms = _three_rooms()
    grid = ObstacleGrid.from_rooms(20, 22, rooms)
    for rect in RING:
        grid.mark_room(rect)
    builder = ConnectivityBuilder(rooms, 20, 22, grid=grid)
    with pytest.raises(GenerationFailure) as exc:
        builder.run()
    assert exc.value.stage == "connectivity"
    assert "[2]" in exc.value.message
    assert builder.metrics["repairs_performed"] == 1


def test_step_reports_phases_in_order():
    rooms = _three_rooms()
    builder = ConnectivityBuilder(rooms, 20, 22)
    seen = []
    while not builder.done:
        phase = builder.step()
        if not seen or seen[-1] != phase:
            seen.append(phase)
        assert 0.0 <= builder.progress() <= 1.0
    assert seen == ["backbone", "branch", "validate", "redundancy"]
    assert builder.progress() == 1.0


def test_single_room_needs_no_corridors():
    outcome = build_connectivity([make_room(0, 2, 2, 4, 4)], 10, 10)
    assert outcome.corridors == []


def test_shortest_route_over_corridors():
    layout = two_room_layout()
    assert shortest_route(layout, 0, 1) == [0, 1]
    assert shortest_route(layout, 1, 1) == [1]
    assert shortest_route(layout.clone(corridors=()), 0, 1) is None
    assert shortest_route(layout, 0, 99) is None


def test_unreached_lists_rooms_outside_the_component():
    layout = two_room_layout()
    assert unreached([0, 1], layout.corridors) == []
    assert unreached([0, 1, 2], layout.corridors) == [2]
    assert unreached([], ()) == []
    assert is_connected(layout.rooms, layout.corridors)
    assert not is_connected(layout.rooms, ())


def test_redundancy_waits_for_full_connectivity():
    rooms = _three_rooms()
    grid = ObstacleGrid.from_rooms(20, 22, rooms)
    for rect in RING:
        grid.burn_corridor(rect.cells())
    builder = ConnectivityBuilder(rooms, 20, 22, grid=grid, redundancy_ratio=1.0)
    seen = []
    while not builder.done:
        if builder.phase == "redundancy":
            assert builder.unreached_rooms() == []
        phase = builder.step()
        if not seen or seen[-1] != phase:
            seen.append(phase)
    assert seen == ["backbone", "branch", "validate", "repair", "validate", "redundancy"]


def test_backbone_is_priced_for_its_width():
    # Room 2 sits just below the straight line between rooms 0 and 1.
    rooms = [
        make_room(0, 1, 6, 4, 4, RoomType.OFFICE),
        make_room(1, 25, 6, 4, 4, RoomType.BOSS_ROOM),
        make_room(2, 13, 9, 3, 3, RoomType.STORAGE),
    ]
    builder = ConnectivityBuilder(rooms, 30, 20)
    conn = builder.connect(0, 1, width=5)
    grid = builder.grid
    start, goal = conn.path.cells[0], conn.path.cells[-1]
    for x, y in conn.path.cells:
        if min(abs(x - start[0]) + abs(y - start[1]), abs(x - goal[0]) + abs(y - goal[1])) > 2:
            assert grid.fits(x, y, 2), (x, y)
    narrow = builder.connect(0, 1, width=1)
    assert conn.path.cost > narrow.path.cost
