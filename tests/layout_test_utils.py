from collections import deque

from floorgen.layout.geometry import Rect
from floorgen.layout.model import Corridor, CorridorTag, Layout, Room, RoomType

# Tile characters used by render(); kept local for test independence.
ROOM = "R"
CORRIDOR = "T"
DOOR = "D"
EMPTY = "."


def make_room(room_id, x, y, w, h, room_type=None, doorways=(), depth=0):
    return Room(id=room_id, bounds=Rect(x, y, w, h), room_type=room_type, doorways=tuple(doorways), depth=depth)


def straight_cells(start, end):
    """Inclusive straight run of cells between two aligned points."""
    (sx, sy), (ex, ey) = start, end
    if sx == ex:
        step = 1 if ey >= sy else -1
        return tuple((sx, y) for y in range(sy, ey + step, step))
    step = 1 if ex >= sx else -1
    return tuple((x, sy) for x in range(sx, ex + step, step))


def two_room_layout(seed=7):
    """Two rooms side by side joined by a straight primary corridor."""
    a = make_room(0, 2, 2, 4, 4, RoomType.OFFICE, doorways=[(5, 3)], depth=1)
    b = make_room(1, 10, 2, 4, 4, RoomType.BOSS_ROOM, doorways=[(10, 3)], depth=1)
    corridor = Corridor(
        id=0,
        cells=straight_cells((6, 3), (9, 3)),
        width=5,
        room_a=0,
        room_b=1,
        tag=CorridorTag.PRIMARY,
    )
    return Layout(width=16, height=8, seed=seed, rooms=(a, b), corridors=(corridor,))


def room_bfs(layout, start=None):
    """Set of room ids reachable from start over the corridor graph."""
    adj = layout.adjacency()
    if not adj:
        return set()
    start = min(adj) if start is None else start
    seen = {start}
    q = deque([start])
    while q:
        cur = q.popleft()
        for nxt in adj[cur]:
            if nxt not in seen:
                seen.add(nxt)
                q.append(nxt)
    return seen


def render(layout):
    """ASCII rendering (rows of characters) for debugging failed assertions."""
    grid = [[EMPTY for _ in range(layout.width)] for _ in range(layout.height)]
    for room in layout.rooms:
        for x, y in room.bounds.cells():
            grid[y][x] = ROOM
        for x, y in room.doorways:
            grid[y][x] = DOOR
    for corridor in layout.corridors:
        for x, y in corridor.cells:
            if grid[y][x] == EMPTY:
                grid[y][x] = CORRIDOR
    return "\n".join("".join(row) for row in grid)
