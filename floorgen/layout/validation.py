"""Structural checks applied to every finished layout.

``validate_layout`` returns a list of human readable problems (empty when the
layout is sound), mirroring how the partition tree reports its own issues.

Corridors never share a cell, except at junctions: cells where a repair
corridor was laid over an earlier one. The generator records those cells and
hands them in; a decoded layout carries no such record, so every shared cell
of it is reported.

``clearance_violations`` is a separate, softer report: a corridor of width
``w`` whose ``w // 2`` footprint reaches into a room it does not join, away
from its doorway approaches. Tight maps produce some of these by design, so
they are counted and logged rather than failing generation.
"""
from __future__ import annotations

from typing import AbstractSet, Dict, Iterable, List, Optional, Sequence

from .connectivity import unreached
from .geometry import Cell, Rect, manhattan
from .model import Corridor, Layout, Room

VALID_WIDTHS = (3, 5)


def is_connected(rooms: Sequence[Room], corridors: Sequence[Corridor]) -> bool:
    return not unreached([r.id for r in rooms], corridors)


def shared_cells(corridors: Iterable[Corridor]) -> Dict[Cell, List[int]]:
    """Cells used by more than one corridor, mapped to the corridor ids using them."""
    owners: Dict[Cell, List[int]] = {}
    for c in corridors:
        for cell in set(c.cells):
            owners.setdefault(cell, []).append(c.id)
    return {cell: ids for cell, ids in owners.items() if len(ids) > 1}


def _room_problems(layout: Layout) -> List[str]:
    problems = []
    area = Rect(0, 0, layout.width, layout.height)
    rooms = list(layout.rooms)
    for room in rooms:
        if room.bounds.w <= 0 or room.bounds.h <= 0:
            problems.append(f"room {room.id} has non-positive size")
        if not area.contains_rect(room.bounds):
            problems.append(f"room {room.id} lies outside the map")
        for door in room.doorways:
            if not room.bounds.on_perimeter(door) or room.bounds.is_corner(door):
                problems.append(f"room {room.id} doorway {door} is not on a wall")
    for i, a in enumerate(rooms):
        for b in rooms[i + 1 :]:
            if a.bounds.intersects(b.bounds):
                problems.append(f"rooms {a.id} and {b.id} overlap")
    return problems


def _corridor_problems(layout: Layout, junctions: AbstractSet[Cell]) -> List[str]:
    problems = []
    by_id: Dict[int, Room] = {r.id: r for r in layout.rooms}
    doorways: Dict[Cell, int] = {}
    for room in layout.rooms:
        for door in room.doorways:
            doorways[door] = room.id
    for c in layout.corridors:
        if c.width not in VALID_WIDTHS:
            problems.append(f"corridor {c.id} has invalid width {c.width}")
        if c.room_a not in by_id or c.room_b not in by_id:
            problems.append(f"corridor {c.id} references a missing room")
            continue
        if not c.cells:
            problems.append(f"corridor {c.id} has no cells")
            continue
        for (ax, ay), (bx, by) in zip(c.cells, c.cells[1:]):
            if abs(ax - bx) + abs(ay - by) != 1:
                problems.append(f"corridor {c.id} is not contiguous at {(ax, ay)} -> {(bx, by)}")
                break
        for end, rid in ((c.cells[0], c.room_a), (c.cells[-1], c.room_b)):
            room = by_id[rid]
            if not any(abs(end[0] - d[0]) + abs(end[1] - d[1]) == 1 for d in room.doorways):
                problems.append(f"corridor {c.id} end {end} is not attached to a doorway of room {rid}")
        for cell in c.cells:
            if cell in doorways:
                continue
            inside = [r.id for r in layout.rooms if r.bounds.contains(cell)]
            if inside:
                problems.append(f"corridor {c.id} cell {cell} lies inside room {inside[0]}")
                break
    for cell, ids in sorted(shared_cells(layout.corridors).items()):
        if cell not in junctions:
            problems.append(f"corridors {ids} share cell {cell}")
    return problems


def clearance_violations(layout: Layout) -> List[str]:
    """Corridor cells whose full-width footprint reaches into a room the corridor does not join."""
    problems = []
    for c in layout.corridors:
        radius = c.width // 2
        if not radius or not c.cells:
            continue
        start, goal = c.cells[0], c.cells[-1]
        others = [r for r in layout.rooms if r.id not in (c.room_a, c.room_b)]
        for cell in c.cells:
            if manhattan(cell, start) <= radius or manhattan(cell, goal) <= radius:
                continue
            footprint = Rect(cell[0] - radius, cell[1] - radius, 2 * radius + 1, 2 * radius + 1)
            hit = [r.id for r in others if r.bounds.intersects(footprint)]
            if hit:
                problems.append(f"corridor {c.id} (width {c.width}) at {cell} runs into room {hit[0]}")
    return problems


def validate_layout(
    layout: Layout,
    junctions: Optional[Iterable[Cell]] = None,
    clearance: bool = False,
) -> List[str]:
    """Structural problems of ``layout``; ``clearance=True`` adds the footprint report."""
    problems = _room_problems(layout) + _corridor_problems(layout, frozenset(junctions or ()))
    missing = unreached([r.id for r in layout.rooms], layout.corridors)
    if missing:
        problems.append(f"rooms {missing} are not reachable")
    if clearance:
        problems.extend(clearance_violations(layout))
    return problems


__all__ = ["validate_layout", "is_connected", "clearance_violations", "shared_cells", "VALID_WIDTHS"]
