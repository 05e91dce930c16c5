"""Layout data model: rooms, corridors and the finished layout.

All structures are frozen and use tuples so that a validated Layout cannot be
mutated by downstream consumers and compares structurally (round-trip tests
rely on plain ``==``). Cross references are integer ids, never object links.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from .geometry import Cell, Rect

SCHEMA_VERSION = 2


class RoomType(str, enum.Enum):
    OFFICE = "Office"
    CONFERENCE = "Conference"
    BREAK_ROOM = "BreakRoom"
    STORAGE = "Storage"
    LOBBY = "Lobby"
    SERVER_ROOM = "ServerRoom"
    SECURITY = "Security"
    BOSS_ROOM = "BossRoom"


# Stable ordinal used by the binary codec; never reorder.
ROOM_TYPE_CODES: Dict[RoomType, int] = {t: i for i, t in enumerate(RoomType)}


class CorridorTag(str, enum.Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class Room:
    id: int
    bounds: Rect
    room_type: Optional[RoomType] = None
    doorways: Tuple[Cell, ...] = ()
    depth: int = 0

    @property
    def area(self) -> int:
        return self.bounds.area

    @property
    def center(self) -> Cell:
        return self.bounds.center

    def translated(self, dx: int, dy: int) -> "Room":
        return replace(
            self,
            bounds=self.bounds.translate(dx, dy),
            doorways=tuple((x + dx, y + dy) for x, y in self.doorways),
        )


@dataclass(frozen=True)
class Corridor:
    id: int
    cells: Tuple[Cell, ...]
    width: int
    room_a: int
    room_b: int
    tag: CorridorTag = CorridorTag.SECONDARY

    @property
    def length(self) -> int:
        return len(self.cells)

    @property
    def room_pair(self) -> Tuple[int, int]:
        return (min(self.room_a, self.room_b), max(self.room_a, self.room_b))


@dataclass(frozen=True)
class Layout:
    width: int
    height: int
    seed: int
    rooms: Tuple[Room, ...]
    corridors: Tuple[Corridor, ...]
    schema_version: int = SCHEMA_VERSION
    _index: Dict[int, Room] = field(default=None, init=False, repr=False, compare=False)  # type: ignore[assignment]

    def __post_init__(self):
        object.__setattr__(self, "_index", {r.id: r for r in self.rooms})

    def room(self, room_id: int) -> Room:
        return self._index[room_id]

    def adjacency(self) -> Dict[int, List[int]]:
        return build_adjacency([r.id for r in self.rooms], self.corridors)

    def clone(self, **changes) -> "Layout":
        """Return a modified copy; the receiver itself is never changed."""
        return replace(self, **changes)

    def summary(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for r in self.rooms:
            key = r.room_type.value if r.room_type else "Unassigned"
            counts[key] = counts.get(key, 0) + 1
        return {
            "width": self.width,
            "height": self.height,
            "seed": self.seed,
            "rooms": len(self.rooms),
            "corridors": len(self.corridors),
            "primary_corridors": sum(1 for c in self.corridors if c.tag is CorridorTag.PRIMARY),
            "corridor_cells": sum(c.length for c in self.corridors),
            "room_types": counts,
        }


def build_adjacency(room_ids: List[int], corridors) -> Dict[int, List[int]]:
    """Room-adjacency lists (sorted) induced by corridors."""
    adj: Dict[int, List[int]] = {rid: [] for rid in room_ids}
    for c in corridors:
        if c.room_a in adj and c.room_b in adj and c.room_a != c.room_b:
            if c.room_b not in adj[c.room_a]:
                adj[c.room_a].append(c.room_b)
            if c.room_a not in adj[c.room_b]:
                adj[c.room_b].append(c.room_a)
    for rid in adj:
        adj[rid].sort()
    return adj


__all__ = [
    "SCHEMA_VERSION",
    "RoomType",
    "ROOM_TYPE_CODES",
    "CorridorTag",
    "Room",
    "Corridor",
    "Layout",
    "build_adjacency",
]
