"""Corridor network construction with guaranteed room connectivity.

Phases, each advanced one bounded unit of work per :meth:`ConnectivityBuilder.step`:

1. backbone   - Prim's MST over the core rooms (largest by area plus Lobby /
                BossRoom), edge weight = path cost between nearest doorways.
                Accepted edges become primary corridors.
2. branch     - every other room joins its nearest connected room (by path
                cost) through a secondary corridor.
3. validate   - BFS over the room graph. Unreached rooms trigger exactly one
                repair (branch pass with corridors passable), after which a
                remaining gap is a GenerationFailure.
4. redundancy - once every room is reached, floor(n * redundancy_ratio) extra
                corridors between the shortest not-yet-adjacent room pairs,
                creating loops.

Each corridor is burnt into the obstacle grid as soon as it is accepted, one
at a time and in a fixed order; later searches depend on it. Ties are broken
by ascending room-id pair throughout. Paths are priced for the corridor's
width (see ``pathfinding``). Cells where a repair corridor runs over an
earlier corridor are recorded as junctions; no other corridor cell is shared.
"""
from __future__ import annotations

import heapq
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..logging_utils import get_logger
from .errors import GenerationFailure
from .geometry import Cell, manhattan
from .grid import ObstacleGrid
from .model import Corridor, CorridorTag, Room, RoomType, build_adjacency
from .pathfinding import PathCache, PathFinder, PathResult, smooth_path
from .tiles import CORRIDOR

log = get_logger("floorgen.connectivity")

BACKBONE, BRANCH, REDUNDANCY, VALIDATE, REPAIR, DONE = (
    "backbone",
    "branch",
    "redundancy",
    "validate",
    "repair",
    "done",
)

CORE_TYPES = (RoomType.LOBBY, RoomType.BOSS_ROOM)
BRANCH_TARGETS = 4  # nearest connected rooms tried per branch attempt
PAIR_ATTEMPTS = 3  # doorway pairs tried per room pair


@dataclass
class Connection:
    room_a: int
    room_b: int
    door_a: Cell
    door_b: Cell
    path: PathResult
    relaxed: bool = False
    radius: int = 0

    @property
    def key(self) -> Tuple[int, int, int]:
        return (self.path.cost, min(self.room_a, self.room_b), max(self.room_a, self.room_b))


@dataclass
class ConnectivityResult:
    rooms: List[Room]
    corridors: List[Corridor]
    grid: ObstacleGrid
    metrics: Dict[str, int] = field(default_factory=dict)
    junctions: Set[Cell] = field(default_factory=set)


def select_core_rooms(rooms: Sequence[Room], ratio: float) -> List[int]:
    if not rooms:
        return []
    k = min(len(rooms), max(2, int(len(rooms) * ratio)))
    largest = sorted(rooms, key=lambda r: (-r.area, r.id))[:k]
    tagged = [r for r in rooms if r.room_type in CORE_TYPES]
    return sorted({r.id for r in largest} | {r.id for r in tagged})


def candidate_doorways(room: Room) -> List[Cell]:
    """Fixed doorway candidates: quarter points of each side, corners excluded."""
    b = room.bounds
    sides = [
        [(x, b.y) for x in range(b.x + 1, b.right - 1)],
        [(x, b.bottom - 1) for x in range(b.x + 1, b.right - 1)],
        [(b.x, y) for y in range(b.y + 1, b.bottom - 1)],
        [(b.right - 1, y) for y in range(b.y + 1, b.bottom - 1)],
    ]
    out: List[Cell] = list(room.doorways)
    for side in sides:
        if not side:
            continue
        n = len(side)
        for k in (2, 1, 3):
            cell = side[((n - 1) * k) // 4]
            if cell not in out:
                out.append(cell)
    return out


class ConnectivityBuilder:
    def __init__(
        self,
        rooms: Sequence[Room],
        width: int,
        height: int,
        primary_width: int = 5,
        secondary_width: int = 3,
        core_ratio: float = 0.3,
        redundancy_ratio: float = 0.15,
        grid: Optional[ObstacleGrid] = None,
    ):
        self.rooms: Dict[int, Room] = {r.id: r for r in sorted(rooms, key=lambda r: r.id)}
        self.order: List[int] = sorted(self.rooms)
        self.width = width
        self.height = height
        self.primary_width = primary_width
        self.secondary_width = secondary_width
        self.core_ratio = core_ratio
        self.redundancy_ratio = redundancy_ratio
        self.grid = grid if grid is not None else ObstacleGrid.from_rooms(width, height, self.rooms.values())
        self.cache = PathCache()
        # Candidates are priced unsmoothed; only accepted corridors get smoothed.
        self.finder = PathFinder(self.grid, cache=self.cache, smooth=False)
        self.doorways: Dict[int, List[Cell]] = {rid: list(r.doorways) for rid, r in self.rooms.items()}
        self.corridors: List[Corridor] = []
        self.junctions: Set[Cell] = set()
        self.phase = BACKBONE
        self.metrics: Dict[str, int] = {
            "backbone_corridors": 0,
            "branch_corridors": 0,
            "redundant_corridors": 0,
            "repair_corridors": 0,
            "repairs_performed": 0,
            "paths_not_found": 0,
        }
        self._repaired = False
        self._phase_started = False
        # backbone state
        self._tree: Set[int] = set()
        self._heap: List[Tuple[int, int, int, int, int]] = []
        self._pending: Dict[Tuple[int, int], Tuple[Connection, int]] = {}
        # branch / repair state
        self._connected: Set[int] = set()
        self._deferred: Set[int] = set()
        # redundancy state
        self._extra_target = 0
        self._extra_queue: List[Tuple[int, int, int]] = []

    # -- public driver ----------------------------------------------------------------------------

    @property
    def done(self) -> bool:
        return self.phase == DONE

    def progress(self) -> float:
        if not self.order:
            return 1.0
        if self.done:
            return 1.0
        joined = len(self._connected) if self._connected else len(self._tree)
        return min(0.99, joined / len(self.order))

    def step(self) -> str:
        """Advance by one bounded unit of work; returns the phase that ran."""
        phase = self.phase
        if phase == BACKBONE:
            self._step_backbone()
        elif phase == BRANCH:
            self._step_branch(relaxed=False)
        elif phase == REDUNDANCY:
            self._step_redundancy()
        elif phase == VALIDATE:
            self._step_validate()
        elif phase == REPAIR:
            self._step_branch(relaxed=True)
        return phase

    def run(self) -> ConnectivityResult:
        while not self.done:
            self.step()
        return self.result()

    def result(self) -> ConnectivityResult:
        rooms = [replace(self.rooms[rid], doorways=tuple(self.doorways[rid])) for rid in self.order]
        metrics = dict(self.metrics)
        metrics.update(
            path_searches=self.finder.searches,
            nodes_explored=self.finder.nodes_explored,
            path_cache_hits=self.cache.hits,
            junction_cells=len(self.junctions),
        )
        return ConnectivityResult(rooms, list(self.corridors), self.grid, metrics, set(self.junctions))

    # -- connection primitives --------------------------------------------------------------------

    def _approach(self, room_id: int, door: Cell) -> Cell:
        dx, dy = self.rooms[room_id].bounds.outward(door)
        return (door[0] + dx, door[1] + dy)

    def _usable_doors(self, room_id: int, relaxed: bool) -> List[Tuple[Cell, Cell]]:
        out = []
        for door in candidate_doorways(self.rooms[room_id]):
            approach = self._approach(room_id, door)
            if self.grid.is_passable(approach[0], approach[1], relaxed):
                out.append((door, approach))
        return out

    def connect(self, a: int, b: int, relaxed: bool = False, width: Optional[int] = None) -> Optional[Connection]:
        """Search a corridor path between the nearest usable doorways of rooms a and b.

        The path is priced for a corridor of ``width`` (secondary width by
        default), so routes with room for the full corridor win.
        """
        radius = (width or self.secondary_width) // 2
        doors_a = self._usable_doors(a, relaxed)
        doors_b = self._usable_doors(b, relaxed)
        pairs = []
        for ia, (da, pa) in enumerate(doors_a):
            for ib, (db, pb) in enumerate(doors_b):
                pairs.append((manhattan(pa, pb), ia, ib, da, pa, db, pb))
        pairs.sort(key=lambda p: p[:3])
        for _dist, _ia, _ib, da, pa, db, pb in pairs[:PAIR_ATTEMPTS]:
            path = self.finder.find(pa, pb, relaxed=relaxed, radius=radius)
            if path is not None:
                return Connection(a, b, da, db, path, relaxed, radius)
        self.metrics["paths_not_found"] += 1
        return None

    def _accept(self, conn: Connection, tag: CorridorTag, width: int) -> Corridor:
        for rid, door in ((conn.room_a, conn.door_a), (conn.room_b, conn.door_b)):
            if door not in self.doorways[rid]:
                self.doorways[rid].append(door)
            self.grid.open_doorway(door)
        cells = smooth_path(self.grid, conn.path.cells, conn.relaxed, conn.radius)
        if conn.relaxed:
            self.junctions.update(c for c in cells if self.grid.state(*c) == CORRIDOR)
        self.grid.burn_corridor(cells)
        corridor = Corridor(
            id=len(self.corridors),
            cells=cells,
            width=width,
            room_a=conn.room_a,
            room_b=conn.room_b,
            tag=tag,
        )
        self.corridors.append(corridor)
        return corridor

    def _center_distance(self, a: int, b: int) -> int:
        return manhattan(self.rooms[a].center, self.rooms[b].center)

    # -- backbone ---------------------------------------------------------------------------------

    def _push_edges_from(self, src: int, cores: Sequence[int]) -> None:
        for dst in cores:
            if dst in self._tree:
                continue
            conn = self.connect(src, dst, width=self.primary_width)
            if conn is None:
                continue
            self._pending[(src, dst)] = (conn, self.grid.revision)
            lo, hi = min(src, dst), max(src, dst)
            heapq.heappush(self._heap, (conn.path.cost, lo, hi, src, dst))

    def _step_backbone(self) -> None:
        if not self._phase_started:
            self._phase_started = True
            self._cores = select_core_rooms(list(self.rooms.values()), self.core_ratio)
            if len(self._cores) < 2:
                self._tree = set(self._cores[:1] or self.order[:1])
                self._finish_backbone()
                return
            self._tree = {self._cores[0]}
            self._push_edges_from(self._cores[0], self._cores)
            return
        while self._heap:
            cost, lo, hi, src, dst = heapq.heappop(self._heap)
            if dst in self._tree:
                continue
            conn, revision = self._pending.pop((src, dst))
            if revision != self.grid.revision:
                # Grid changed since this edge was priced: re-search and re-queue if it got worse.
                fresh = self.connect(src, dst, width=self.primary_width)
                if fresh is None:
                    continue
                if fresh.path.cost > cost:
                    self._pending[(src, dst)] = (fresh, self.grid.revision)
                    heapq.heappush(self._heap, (fresh.path.cost, lo, hi, src, dst))
                    return
                conn = fresh
            self._accept(conn, CorridorTag.PRIMARY, self.primary_width)
            self.metrics["backbone_corridors"] += 1
            self._tree.add(dst)
            self._push_edges_from(dst, self._cores)
            return
        self._finish_backbone()

    def _finish_backbone(self) -> None:
        self._connected = set(self._tree)
        self._deferred = set()
        self.phase = BRANCH
        log.debug(event="backbone_complete", cores=len(self._tree), corridors=len(self.corridors))

    # -- branch / repair --------------------------------------------------------------------------

    def _next_branch_room(self) -> Optional[int]:
        best = None
        for rid in self.order:
            if rid in self._connected or rid in self._deferred:
                continue
            dist = min(self._center_distance(rid, c) for c in self._connected)
            if best is None or (dist, rid) < best:
                best = (dist, rid)
        return best[1] if best else None

    def _step_branch(self, relaxed: bool) -> None:
        if not self._connected:
            self._connected = {self.order[0]} if self.order else set()
        rid = self._next_branch_room()
        if rid is None:
            # Both the branch pass and the repair pass end in a connectivity check.
            self.phase = VALIDATE
            return
        targets = sorted(self._connected, key=lambda c: (self._center_distance(rid, c), c))
        if not relaxed:
            targets = targets[:BRANCH_TARGETS]
        best: Optional[Connection] = None
        for target in targets:
            conn = self.connect(rid, target, relaxed=relaxed)
            if conn is not None and (best is None or conn.key < best.key):
                best = conn
            if relaxed and best is not None:
                break
        if best is None:
            self._deferred.add(rid)
            return
        self._accept(best, CorridorTag.SECONDARY, self.secondary_width)
        self.metrics["repair_corridors" if relaxed else "branch_corridors"] += 1
        self._connected.add(rid)
        # New targets exist now, so previously stuck rooms get another chance.
        self._deferred.clear()

    # -- redundancy -------------------------------------------------------------------------------

    def _start_redundancy(self) -> None:
        self._extra_target = int(len(self.order) * self.redundancy_ratio)
        self.phase = REDUNDANCY
        if self._extra_target > 0:
            self._extra_queue = self._rank_extra_pairs()

    def _rank_extra_pairs(self) -> List[Tuple[int, int, int]]:
        adj = build_adjacency(self.order, self.corridors)
        pairs = []
        for i, a in enumerate(self.order):
            for b in self.order[i + 1 :]:
                if b not in adj[a]:
                    pairs.append((self._center_distance(a, b), a, b))
        pairs.sort()
        ranked = []
        for _dist, a, b in pairs[: self._extra_target * 3]:
            conn = self.connect(a, b)
            if conn is not None:
                ranked.append((conn.path.cost, a, b))
        ranked.sort(reverse=True)  # popped from the end: shortest first
        return ranked

    def _step_redundancy(self) -> None:
        added = self.metrics["redundant_corridors"]
        if added >= self._extra_target or not self._extra_queue:
            self.phase = DONE
            return
        _cost, a, b = self._extra_queue.pop()
        conn = self.connect(a, b)
        if conn is None:
            return
        self._accept(conn, CorridorTag.SECONDARY, self.secondary_width)
        self.metrics["redundant_corridors"] += 1

    # -- validation -------------------------------------------------------------------------------

    def unreached_rooms(self) -> List[int]:
        return unreached(self.order, self.corridors)

    def _step_validate(self) -> None:
        missing = self.unreached_rooms()
        if not missing:
            self._start_redundancy()
            return
        if self._repaired:
            raise GenerationFailure(
                "connectivity",
                f"rooms {missing} remain unreachable after connectivity repair",
            )
        self._repaired = True
        self.metrics["repairs_performed"] += 1
        log.info(event="connectivity_repair", unreached=len(missing), rooms=len(self.order))
        self._connected = set(self.order) - set(missing)
        self._deferred = set()
        self.phase = REPAIR


def unreached(room_ids: Sequence[int], corridors: Sequence[Corridor]) -> List[int]:
    """Rooms not reachable (BFS over corridor adjacency) from the lowest room id."""
    if not room_ids:
        return []
    adj = build_adjacency(list(room_ids), corridors)
    start = min(room_ids)
    seen = {start}
    q = deque([start])
    while q:
        cur = q.popleft()
        for nxt in adj[cur]:
            if nxt not in seen:
                seen.add(nxt)
                q.append(nxt)
    return sorted(rid for rid in room_ids if rid not in seen)


def shortest_route(layout, start: int, goal: int) -> Optional[List[int]]:
    """Fewest-corridor route between two rooms as a list of room ids (None if unreachable)."""
    adj = layout.adjacency()
    if start not in adj or goal not in adj:
        return None
    parent: Dict[int, Optional[int]] = {start: None}
    q = deque([start])
    while q:
        cur = q.popleft()
        if cur == goal:
            break
        for nxt in adj[cur]:
            if nxt not in parent:
                parent[nxt] = cur
                q.append(nxt)
    if goal not in parent:
        return None
    route = [goal]
    while parent[route[-1]] is not None:
        route.append(parent[route[-1]])
    route.reverse()
    return route


def build_connectivity(rooms: Sequence[Room], width: int, height: int, **kwargs) -> ConnectivityResult:
    return ConnectivityBuilder(rooms, width, height, **kwargs).run()


__all__ = [
    "ConnectivityBuilder",
    "ConnectivityResult",
    "Connection",
    "build_connectivity",
    "candidate_doorways",
    "select_core_rooms",
    "shortest_route",
    "unreached",
]
