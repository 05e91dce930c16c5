"""Weighted A* search over the obstacle grid plus path smoothing.

Costs are integers (see ``tiles``), the heuristic is Manhattan distance
(admissible because the cheapest step costs 1 and surcharges only add)
and the open set is a binary heap keyed by ``(f, g, y, x)`` so equal-cost
alternatives always resolve the same way. A search that cannot reach the
goal returns ``None``; callers decide what a missing path means.

A search for a corridor of width ``w`` passes ``radius=w // 2``: cells whose
footprint would reach into a room are surcharged, except within ``radius``
steps of either end where the corridor meets its doorways.
"""
from __future__ import annotations

import heapq
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .geometry import DIRECTIONS, Cell, manhattan
from .grid import ObstacleGrid


@dataclass(frozen=True)
class PathResult:
    cells: Tuple[Cell, ...]
    cost: int
    explored: int = 0

    @property
    def length(self) -> int:
        return len(self.cells)


class PathCache:
    """Memoizes searches per grid revision; any grid mutation invalidates it."""

    def __init__(self, max_entries: int = 4096):
        self.max_entries = max_entries
        self._entries: Dict[tuple, Optional[PathResult]] = {}
        self._revision: Optional[int] = None
        self.hits = 0
        self.misses = 0

    def get(self, revision: int, key: tuple):
        if revision != self._revision:
            self._entries.clear()
            self._revision = revision
            return False, None
        if key in self._entries:
            self.hits += 1
            return True, self._entries[key]
        return False, None

    def put(self, revision: int, key: tuple, result: Optional[PathResult]) -> None:
        self.misses += 1
        if revision != self._revision:
            self._entries.clear()
            self._revision = revision
        if len(self._entries) >= self.max_entries:
            self._entries.pop(next(iter(self._entries)))
        self._entries[key] = result

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}


class PathFinder:
    def __init__(self, grid: ObstacleGrid, cache: Optional[PathCache] = None, smooth: bool = True):
        self.grid = grid
        self.cache = cache
        self.smooth = smooth
        self.searches = 0
        self.nodes_explored = 0

    def find(self, start: Cell, goal: Cell, relaxed: bool = False, radius: int = 0) -> Optional[PathResult]:
        key = (start, goal, relaxed, radius)
        if self.cache is not None:
            found, cached = self.cache.get(self.grid.revision, key)
            if found:
                return cached
        result = self._search(start, goal, relaxed, radius)
        if result is not None and self.smooth:
            cells = smooth_path(self.grid, result.cells, relaxed, radius)
            result = PathResult(cells, path_cost(self.grid, cells, relaxed, radius), result.explored)
        if self.cache is not None:
            self.cache.put(self.grid.revision, key, result)
        return result

    def _search(self, start: Cell, goal: Cell, relaxed: bool, radius: int = 0) -> Optional[PathResult]:
        grid = self.grid
        self.searches += 1
        if grid.step_cost(*start, relaxed=relaxed) is None or grid.step_cost(*goal, relaxed=relaxed) is None:
            return None
        if start == goal:
            return PathResult((start,), 0, 1)
        g_score: Dict[Cell, int] = {start: 0}
        parent: Dict[Cell, Cell] = {}
        heap: List[Tuple[int, int, int, int]] = [(manhattan(start, goal), 0, start[1], start[0])]
        closed = set()
        explored = 0
        while heap:
            _f, g, y, x = heapq.heappop(heap)
            cur = (x, y)
            if cur in closed:
                continue
            closed.add(cur)
            explored += 1
            if cur == goal:
                self.nodes_explored += explored
                return PathResult(_reconstruct(parent, goal), g, explored)
            for dx, dy in DIRECTIONS:
                nxt = (x + dx, y + dy)
                if nxt in closed:
                    continue
                step = grid.step_cost(nxt[0], nxt[1], relaxed, _radius_at(nxt, radius, start, goal))
                if step is None:
                    continue
                ng = g + step
                if ng < g_score.get(nxt, ng + 1):
                    g_score[nxt] = ng
                    parent[nxt] = cur
                    heapq.heappush(heap, (ng + manhattan(nxt, goal), ng, nxt[1], nxt[0]))
        self.nodes_explored += explored
        return None


def _reconstruct(parent: Dict[Cell, Cell], goal: Cell) -> Tuple[Cell, ...]:
    out = [goal]
    cur = goal
    while cur in parent:
        cur = parent[cur]
        out.append(cur)
    out.reverse()
    return tuple(out)


def _radius_at(cell: Cell, radius: int, start: Cell, goal: Cell) -> int:
    """Footprint radius checked at ``cell``; zero on the doorway approaches."""
    if radius and manhattan(cell, start) > radius and manhattan(cell, goal) > radius:
        return radius
    return 0


def path_cost(grid: ObstacleGrid, cells: Sequence[Cell], relaxed: bool = False, radius: int = 0) -> int:
    total = 0
    for x, y in cells[1:]:
        step = grid.step_cost(x, y, relaxed, _radius_at((x, y), radius, cells[0], cells[-1]))
        if step is None:
            raise ValueError(f"path crosses obstacle at {(x, y)}")
        total += step
    return total


def path_turns(cells: Sequence[Cell]) -> int:
    turns = 0
    prev = None
    for a, b in zip(cells, cells[1:]):
        d = (b[0] - a[0], b[1] - a[1])
        if prev is not None and d != prev:
            turns += 1
        prev = d
    return turns


def _straight(a: Cell, b: Cell) -> List[Cell]:
    """Cells strictly after a up to and including b along one axis."""
    (ax, ay), (bx, by) = a, b
    if ax == bx:
        step = 1 if by > ay else -1
        return [(ax, yy) for yy in range(ay + step, by + step, step)]
    step = 1 if bx > ax else -1
    return [(xx, ay) for xx in range(ax + step, bx + step, step)]


def _substitutes(a: Cell, b: Cell) -> List[List[Cell]]:
    if a[0] == b[0] or a[1] == b[1]:
        return [_straight(a, b)]
    out = []
    for corner in ((b[0], a[1]), (a[0], b[1])):
        out.append(_straight(a, corner) + _straight(corner, b))
    return out


def smooth_path(
    grid: ObstacleGrid,
    cells: Sequence[Cell],
    relaxed: bool = False,
    radius: int = 0,
) -> Tuple[Cell, ...]:
    """Greedy turn reduction that keeps both endpoints and never raises the path cost.

    For each cell, the farthest later cell reachable by a straight (or single
    corner) run of passable cells replaces the sub-path in between when that
    lowers the turn count without increasing cost or self-intersecting.
    """
    path = list(cells)
    if len(path) < 3:
        return tuple(path)
    start, goal = path[0], path[-1]

    def cost(cell: Cell) -> Optional[int]:
        return grid.step_cost(cell[0], cell[1], relaxed, _radius_at(cell, radius, start, goal))

    i = 0
    while i < len(path) - 2:
        replaced = False
        for j in range(len(path) - 1, i + 1, -1):
            old_mid = path[i + 1 : j]
            for sub in _substitutes(path[i], path[j]):
                new_mid = sub[:-1]
                if new_mid == old_mid:
                    continue
                if any(cost(c) is None for c in new_mid):
                    continue
                outside = set(path[:i + 1]) | set(path[j:])
                if any(c in outside for c in new_mid) or len(set(new_mid)) != len(new_mid):
                    continue
                old_cost = sum(cost(c) for c in old_mid)
                new_cost = sum(cost(c) for c in new_mid)
                if new_cost > old_cost:
                    continue
                lo = max(0, i - 1)
                old_window = path[lo : j + 2]
                new_window = path[lo : i + 1] + new_mid + path[j : j + 2]
                if path_turns(new_window) < path_turns(old_window) or new_cost < old_cost:
                    path = path[: i + 1] + new_mid + path[j:]
                    replaced = True
                    break
            if replaced:
                break
        if not replaced:
            i += 1
    return tuple(path)


__all__ = ["PathFinder", "PathResult", "PathCache", "smooth_path", "path_turns", "path_cost"]
