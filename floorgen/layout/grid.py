"""Rasterized occupancy map consulted by the pathfinder.

The grid is column-major (``grid[x][y]``) and holds one tile character per
cell. Rooms are burnt once when the grid is created; accepted corridors are
burnt incrementally so later searches see earlier corridors without a
rebuild. Doorway cells are carved into a room's perimeter and stay passable.

Alongside the tiles the grid keeps, per cell, the Chebyshev distance to the
nearest room cell (capped at ``CLEARANCE_CAP``). A corridor of width ``w``
centred on a cell fits there when that distance exceeds ``w // 2``.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from .geometry import Cell, Rect
from .tiles import (
    CLEARANCE_CAP,
    CORRIDOR,
    CORRIDOR_COST,
    DOORWAY,
    DOORWAY_COST,
    FREE,
    FREE_COST,
    HALO,
    HALO_COST,
    NARROW_COST,
    ROOM,
)


class ObstacleGrid:
    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.grid: List[List[str]] = [[FREE for _ in range(height)] for _ in range(width)]
        self.clearance: List[List[int]] = [[CLEARANCE_CAP for _ in range(height)] for _ in range(width)]
        # Bumped on every mutation; used as the path cache key.
        self.revision = 0

    @classmethod
    def from_rooms(cls, width: int, height: int, rooms) -> "ObstacleGrid":
        grid = cls(width, height)
        for room in rooms:
            grid.mark_room(room.bounds)
            for cell in room.doorways:
                grid.open_doorway(cell)
        return grid

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def state(self, x: int, y: int) -> str:
        return self.grid[x][y]

    def clearance_at(self, x: int, y: int) -> int:
        return self.clearance[x][y]

    def fits(self, x: int, y: int, radius: int) -> bool:
        """True when a footprint of ``radius`` cells around (x, y) touches no room."""
        return self.clearance[x][y] > radius

    def step_cost(self, x: int, y: int, relaxed: bool = False, radius: int = 0) -> Optional[int]:
        """Cost of entering (x, y), or None when the cell is an obstacle.

        With ``radius`` > 0 the cost is surcharged when the corridor footprint
        around the cell would reach into a room.
        """
        if not (0 <= x < self.width and 0 <= y < self.height):
            return None
        tile = self.grid[x][y]
        if tile == FREE:
            cost = FREE_COST
        elif tile == HALO:
            cost = HALO_COST
        elif tile == DOORWAY:
            cost = DOORWAY_COST
        elif tile == CORRIDOR and relaxed:
            cost = CORRIDOR_COST
        else:
            return None
        if radius and self.clearance[x][y] <= radius:
            cost += NARROW_COST
        return cost

    def is_passable(self, x: int, y: int, relaxed: bool = False) -> bool:
        return self.step_cost(x, y, relaxed) is not None

    def mark_room(self, rect: Rect) -> None:
        for x, y in rect.cells():
            if self.in_bounds(x, y):
                self.grid[x][y] = ROOM
        for x in range(rect.x - 1, rect.right + 1):
            for y in range(rect.y - 1, rect.bottom + 1):
                if self.in_bounds(x, y) and self.grid[x][y] == FREE:
                    self.grid[x][y] = HALO
        for x in range(max(0, rect.x - CLEARANCE_CAP), min(self.width, rect.right + CLEARANCE_CAP)):
            dx = max(rect.x - x, 0, x - (rect.right - 1))
            for y in range(max(0, rect.y - CLEARANCE_CAP), min(self.height, rect.bottom + CLEARANCE_CAP)):
                dy = max(rect.y - y, 0, y - (rect.bottom - 1))
                d = max(dx, dy)
                if d < self.clearance[x][y]:
                    self.clearance[x][y] = d
        self.revision += 1

    def open_doorway(self, cell: Cell) -> None:
        x, y = cell
        if self.in_bounds(x, y) and self.grid[x][y] == ROOM:
            self.grid[x][y] = DOORWAY
            self.revision += 1

    def burn_corridor(self, cells: Iterable[Cell]) -> int:
        """Mark corridor cells; returns how many cells changed state."""
        changed = 0
        for x, y in cells:
            if self.in_bounds(x, y) and self.grid[x][y] in (FREE, HALO):
                self.grid[x][y] = CORRIDOR
                changed += 1
        if changed:
            self.revision += 1
        return changed

    def count(self, tile: str) -> int:
        return sum(col.count(tile) for col in self.grid)

    def copy(self) -> "ObstacleGrid":
        clone = ObstacleGrid(self.width, self.height)
        clone.grid = [col[:] for col in self.grid]
        clone.clearance = [col[:] for col in self.clearance]
        clone.revision = self.revision
        return clone


__all__ = ["ObstacleGrid"]
