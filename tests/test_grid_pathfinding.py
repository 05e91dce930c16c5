from floorgen.layout import ObstacleGrid, PathFinder, Rect
from floorgen.layout.pathfinding import PathCache, path_cost, path_turns, smooth_path
from floorgen.layout.tiles import CORRIDOR, DOORWAY, FREE, HALO, ROOM

from tests.layout_test_utils import make_room


def _contiguous(cells):
    return all(abs(a[0] - b[0]) + abs(a[1] - b[1]) == 1 for a, b in zip(cells, cells[1:]))


def test_rooms_are_marked_with_a_halo():
    grid = ObstacleGrid.from_rooms(10, 10, [make_room(0, 3, 3, 3, 3)])
    assert grid.state(4, 4) == ROOM
    assert grid.state(2, 2) == HALO
    assert grid.state(6, 4) == HALO
    assert grid.state(0, 0) == FREE
    assert grid.count(ROOM) == 9
    assert grid.count(HALO) == 16


def test_step_costs_and_relaxed_corridors():
    grid = ObstacleGrid.from_rooms(10, 10, [make_room(0, 3, 3, 3, 3)])
    grid.burn_corridor([(0, 5), (1, 5)])
    assert grid.step_cost(0, 0) == 1
    assert grid.step_cost(2, 2) == 2
    assert grid.step_cost(4, 4) is None
    assert grid.step_cost(0, 5) is None
    assert grid.step_cost(0, 5, relaxed=True) == 2
    assert grid.step_cost(-1, 0) is None


def test_doorways_open_room_walls_and_bump_revision():
    grid = ObstacleGrid.from_rooms(10, 10, [make_room(0, 3, 3, 3, 3)])
    rev = grid.revision
    grid.open_doorway((5, 4))
    assert grid.state(5, 4) == DOORWAY
    assert grid.revision == rev + 1
    # Free cells are never turned into doorways
    grid.open_doorway((0, 0))
    assert grid.state(0, 0) == FREE


def test_burn_corridor_reports_changed_cells_only():
    grid = ObstacleGrid(5, 5)
    assert grid.burn_corridor([(0, 0), (1, 0)]) == 2
    assert grid.burn_corridor([(1, 0), (2, 0)]) == 1
    assert grid.state(2, 0) == CORRIDOR


def test_copy_is_independent():
    grid = ObstacleGrid(4, 4)
    clone = grid.copy()
    clone.burn_corridor([(0, 0)])
    assert grid.state(0, 0) == FREE


def test_straight_path_on_empty_grid():
    finder = PathFinder(ObstacleGrid(10, 10))
    result = finder.find((0, 0), (0, 6))
    assert result.cells == tuple((0, y) for y in range(7))
    assert result.cost == 6


def test_path_routes_around_rooms():
    grid = ObstacleGrid.from_rooms(20, 12, [make_room(0, 8, 1, 4, 10)])
    result = PathFinder(grid).find((2, 5), (17, 5))
    assert result is not None
    assert result.cells[0] == (2, 5) and result.cells[-1] == (17, 5)
    assert _contiguous(result.cells)
    assert not any(Rect(8, 1, 4, 10).contains(c) for c in result.cells)


def test_not_found_is_a_value_not_an_error():
    grid = ObstacleGrid(7, 7)
    grid.mark_room(Rect(0, 3, 7, 1))
    assert PathFinder(grid).find((3, 0), (3, 6)) is None


def test_blocked_endpoints_return_none():
    grid = ObstacleGrid.from_rooms(10, 10, [make_room(0, 3, 3, 3, 3)])
    assert PathFinder(grid).find((4, 4), (0, 0)) is None


def test_equal_cost_ties_resolve_identically():
    grid = ObstacleGrid(12, 12)
    a = PathFinder(grid).find((0, 0), (9, 7))
    b = PathFinder(grid.copy()).find((0, 0), (9, 7))
    assert a.cells == b.cells
    assert a.cost == 16


def test_smoothed_path_has_few_turns_on_open_grid():
    result = PathFinder(ObstacleGrid(12, 12)).find((0, 0), (9, 7))
    assert path_turns(result.cells) <= 1


def test_smoothing_never_raises_cost_and_keeps_endpoints():
    grid = ObstacleGrid(10, 10)
    zigzag = [(0, 0), (1, 0), (1, 1), (2, 1), (2, 2), (3, 2), (3, 3)]
    smoothed = smooth_path(grid, zigzag)
    assert smoothed[0] == (0, 0) and smoothed[-1] == (3, 3)
    assert _contiguous(smoothed)
    assert path_cost(grid, smoothed) <= path_cost(grid, zigzag)
    assert path_turns(smoothed) < path_turns(zigzag)


def test_smoothing_respects_obstacles():
    grid = ObstacleGrid(10, 10)
    grid.mark_room(Rect(2, 2, 2, 2))
    # Detour around the room must not be straightened through it
    path = [(1, 3), (1, 4), (1, 5), (2, 5), (3, 5), (4, 5), (5, 5), (5, 4), (5, 3)]
    smoothed = smooth_path(grid, path)
    assert all(grid.step_cost(x, y) is not None for x, y in smoothed[1:])


def test_cache_hits_until_grid_changes():
    grid = ObstacleGrid(10, 10)
    cache = PathCache()
    finder = PathFinder(grid, cache=cache)
    finder.find((0, 0), (5, 5))
    finder.find((0, 0), (5, 5))
    assert cache.hits == 1
    assert finder.searches == 1
    grid.burn_corridor([(9, 9)])
    finder.find((0, 0), (5, 5))
    assert finder.searches == 2
    assert cache.stats() == {"entries": 1, "hits": 1, "misses": 2}


def test_clearance_tracks_distance_to_nearest_room():
    grid = ObstacleGrid.from_rooms(12, 12, [make_room(0, 4, 4, 3, 3)])
    assert grid.clearance_at(5, 5) == 0
    assert grid.clearance_at(3, 3) == 1
    assert grid.clearance_at(2, 5) == 2
    assert grid.clearance_at(0, 0) == 3
    assert grid.fits(9, 5, 2) and not grid.fits(8, 5, 2)
    assert grid.copy().clearance == grid.clearance


def test_wide_footprint_is_surcharged_near_rooms():
    grid = ObstacleGrid.from_rooms(12, 12, [make_room(0, 4, 4, 3, 3)])
    assert grid.step_cost(2, 5) == 1
    assert grid.step_cost(2, 5, radius=1) == 1
    assert grid.step_cost(2, 5, radius=2) == 3
    assert grid.step_cost(3, 5, radius=1) == 4  # halo plus surcharge
    assert grid.step_cost(5, 5, radius=2) is None


def test_wide_corridor_keeps_its_distance_from_rooms():
    grid = ObstacleGrid.from_rooms(16, 14, [make_room(0, 7, 5, 2, 3)])
    finder = PathFinder(grid)
    plain = finder.find((0, 6), (15, 6))
    wide = finder.find((0, 6), (15, 6), radius=2)
    assert plain.cost == 21
    assert wide.cost == 23
    assert any(not grid.fits(x, y, 2) for x, y in plain.cells)
    assert all(grid.fits(x, y, 2) for x, y in wide.cells)
    assert wide.cells[0] == (0, 6) and wide.cells[-1] == (15, 6)
