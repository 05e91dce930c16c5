"""Integer rectangle primitive shared by every generation stage."""
from __future__ import annotations

from typing import Iterator, NamedTuple, Tuple

Cell = Tuple[int, int]

# Orthogonal neighbour offsets in the fixed order used everywhere a stable
# iteration order matters (pathfinding, BFS, doorway discovery).
DIRECTIONS: Tuple[Cell, ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))


class Rect(NamedTuple):
    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    @property
    def area(self) -> int:
        return self.w * self.h

    @property
    def center(self) -> Cell:
        return (self.x + self.w // 2, self.y + self.h // 2)

    def contains(self, cell: Cell) -> bool:
        cx, cy = cell
        return self.x <= cx < self.right and self.y <= cy < self.bottom

    def contains_rect(self, other: "Rect") -> bool:
        return (
            self.x <= other.x
            and self.y <= other.y
            and other.right <= self.right
            and other.bottom <= self.bottom
        )

    def intersects(self, other: "Rect") -> bool:
        return self.x < other.right and other.x < self.right and self.y < other.bottom and other.y < self.bottom

    def gap_to(self, other: "Rect") -> int:
        """Chebyshev gap in cells between two rectangles (negative when overlapping)."""
        gx = max(other.x - self.right, self.x - other.right)
        gy = max(other.y - self.bottom, self.y - other.bottom)
        return max(gx, gy)

    def translate(self, dx: int, dy: int) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.w, self.h)

    def shrink(self, margin: int) -> "Rect":
        return Rect(self.x + margin, self.y + margin, self.w - 2 * margin, self.h - 2 * margin)

    def cells(self) -> Iterator[Cell]:
        for ix in range(self.x, self.right):
            for iy in range(self.y, self.bottom):
                yield ix, iy

    def on_perimeter(self, cell: Cell) -> bool:
        if not self.contains(cell):
            return False
        cx, cy = cell
        return cx in (self.x, self.right - 1) or cy in (self.y, self.bottom - 1)

    def is_corner(self, cell: Cell) -> bool:
        cx, cy = cell
        return cx in (self.x, self.right - 1) and cy in (self.y, self.bottom - 1)

    def outward(self, cell: Cell) -> Cell:
        """Unit vector pointing out of the rectangle from a non-corner perimeter cell."""
        cx, cy = cell
        if cx == self.x:
            return (-1, 0)
        if cx == self.right - 1:
            return (1, 0)
        if cy == self.y:
            return (0, -1)
        return (0, 1)


def manhattan(a: Cell, b: Cell) -> int:
    return abs(a[0] - b[0]) + abs(a[1] - b[1])


__all__ = ["Cell", "DIRECTIONS", "Rect", "manhattan"]
