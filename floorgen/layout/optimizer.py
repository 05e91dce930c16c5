"""Force-directed relaxation of room positions.

The simulation is a pure function over :class:`OptimizerState`: ``step``
never mutates its input and returns the next state, so the loop can be driven
one iteration at a time by a host scheduler (see ``pipeline``) or run to
completion with :meth:`LayoutOptimizer.optimize`.

Score is a cost (lower is better): overlapping pairs weigh heavily, then the
spacing deficit below ``min_spacing`` and finally the axis misalignment of
corridor-connected rooms.

Committing turns the best float positions back into integer rooms. Each room
(ascending id) tries its ``snap_step``-aligned position, then the plain
rounded position, then stays where it was; a candidate is rejected when it
overlaps another room, swallows a corridor cell or cannot have its corridors
re-stitched to its moved doorways. A re-stitched walk never enters a room or
a cell of another corridor.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import AbstractSet, Dict, List, Optional, Sequence, Tuple

from ..logging_utils import get_logger
from .errors import ConvergenceWarning
from .geometry import Cell, Rect, manhattan
from .model import Corridor, Room

log = get_logger("floorgen.optimizer")

Vec = Tuple[float, float]


@dataclass(frozen=True)
class OptimizerSettings:
    min_spacing: int = 2
    damping: float = 0.1
    max_delta: float = 1.0
    epsilon: float = 0.05
    patience: int = 5
    # Score gains smaller than this count as stagnation.
    tolerance: float = 0.01
    repulsion: float = 1.0
    spring: float = 0.05
    alignment: float = 0.2
    overlap_weight: float = 10.0
    spacing_weight: float = 1.0
    alignment_weight: float = 0.1


@dataclass(frozen=True)
class OptimizerContext:
    sizes: Tuple[Tuple[int, int], ...]
    edges: Tuple[Tuple[int, int], ...]
    rest: Tuple[float, ...]
    width: int
    height: int
    settings: OptimizerSettings
    bounds: Tuple[Tuple[float, float, float, float], ...] = ()  # per room (min_x, max_x, min_y, max_y)


@dataclass(frozen=True)
class OptimizerState:
    positions: Tuple[Vec, ...]
    velocities: Tuple[Vec, ...]
    score: float
    iteration: int = 0
    stale: int = 0
    displacement: float = math.inf
    best_positions: Tuple[Vec, ...] = ()
    best_score: float = math.inf
    converged: bool = False
    reason: str = ""


@dataclass
class OptimizerResult:
    rooms: List[Room]
    corridors: List[Corridor]
    state: OptimizerState
    converged: bool
    moved: List[int] = field(default_factory=list)
    reverted: List[int] = field(default_factory=list)
    warnings: List[ConvergenceWarning] = field(default_factory=list)


def _center(pos: Vec, size: Tuple[int, int]) -> Vec:
    return (pos[0] + size[0] / 2.0, pos[1] + size[1] / 2.0)


def _gap(pa: Vec, sa: Tuple[int, int], pb: Vec, sb: Tuple[int, int]) -> float:
    gx = max(pb[0] - (pa[0] + sa[0]), pa[0] - (pb[0] + sb[0]))
    gy = max(pb[1] - (pa[1] + sa[1]), pa[1] - (pb[1] + sb[1]))
    return max(gx, gy)


def score_positions(positions: Sequence[Vec], ctx: OptimizerContext) -> float:
    s = ctx.settings
    overlaps = 0
    deficit = 0.0
    n = len(positions)
    for i in range(n):
        for j in range(i + 1, n):
            gap = _gap(positions[i], ctx.sizes[i], positions[j], ctx.sizes[j])
            if gap < 0:
                overlaps += 1
            if gap < s.min_spacing:
                deficit += s.min_spacing - gap
    misalign = 0.0
    for i, j in ctx.edges:
        ci, cj = _center(positions[i], ctx.sizes[i]), _center(positions[j], ctx.sizes[j])
        misalign += min(abs(ci[0] - cj[0]), abs(ci[1] - cj[1]))
    return s.overlap_weight * overlaps + s.spacing_weight * deficit + s.alignment_weight * misalign


def build_context(
    rooms: Sequence[Room],
    corridors: Sequence[Corridor],
    width: int,
    height: int,
    settings: Optional[OptimizerSettings] = None,
) -> OptimizerContext:
    settings = settings or OptimizerSettings()
    index = {r.id: i for i, r in enumerate(rooms)}
    edges = sorted({(min(index[c.room_a], index[c.room_b]), max(index[c.room_a], index[c.room_b])) for c in corridors})
    rest = []
    for i, j in edges:
        ci, cj = rooms[i].center, rooms[j].center
        rest.append(math.hypot(ci[0] - cj[0], ci[1] - cj[1]))
    bounds = []
    for r in rooms:
        b = r.bounds
        # Never force a room that already sits in the outer ring to move.
        bounds.append(
            (
                float(min(1, b.x)),
                float(max(width - b.w - 1, b.x)),
                float(min(1, b.y)),
                float(max(height - b.h - 1, b.y)),
            )
        )
    return OptimizerContext(
        sizes=tuple((r.bounds.w, r.bounds.h) for r in rooms),
        edges=tuple(edges),
        rest=tuple(rest),
        width=width,
        height=height,
        settings=settings,
        bounds=tuple(bounds),
    )


def initial_state(rooms: Sequence[Room], ctx: OptimizerContext) -> OptimizerState:
    positions = tuple((float(r.bounds.x), float(r.bounds.y)) for r in rooms)
    score = score_positions(positions, ctx)
    return OptimizerState(
        positions=positions,
        velocities=tuple((0.0, 0.0) for _ in rooms),
        score=score,
        best_positions=positions,
        best_score=score,
    )


def _forces(positions: Sequence[Vec], ctx: OptimizerContext) -> List[List[float]]:
    s = ctx.settings
    n = len(positions)
    forces = [[0.0, 0.0] for _ in range(n)]
    centers = [_center(positions[i], ctx.sizes[i]) for i in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            gap = _gap(positions[i], ctx.sizes[i], positions[j], ctx.sizes[j])
            if gap >= s.min_spacing:
                continue
            dx = centers[i][0] - centers[j][0]
            dy = centers[i][1] - centers[j][1]
            dist = math.hypot(dx, dy)
            if dist == 0.0:
                dx, dy, dist = 1.0, 0.0, 1.0
            push = s.repulsion * (s.min_spacing - gap)
            fx, fy = push * dx / dist, push * dy / dist
            forces[i][0] += fx
            forces[i][1] += fy
            forces[j][0] -= fx
            forces[j][1] -= fy
    for (i, j), rest in zip(ctx.edges, ctx.rest):
        dx = centers[j][0] - centers[i][0]
        dy = centers[j][1] - centers[i][1]
        dist = math.hypot(dx, dy)
        if dist > 0.0:
            pull = s.spring * (dist - rest)
            forces[i][0] += pull * dx / dist
            forces[i][1] += pull * dy / dist
            forces[j][0] -= pull * dx / dist
            forces[j][1] -= pull * dy / dist
        # Pull the smaller offset towards zero so the corridor can run straight.
        if abs(dx) < abs(dy):
            forces[i][0] += s.alignment * dx
            forces[j][0] -= s.alignment * dx
        else:
            forces[i][1] += s.alignment * dy
            forces[j][1] -= s.alignment * dy
    return forces


def _cap(v: float, limit: float) -> float:
    return max(-limit, min(limit, v))


def step(state: OptimizerState, ctx: OptimizerContext) -> OptimizerState:
    """Advance the simulation by one iteration; returns a new state."""
    if state.converged:
        return state
    s = ctx.settings
    forces = _forces(state.positions, ctx)
    positions = []
    velocities = []
    moved = 0.0
    for i, (x, y) in enumerate(state.positions):
        vx = _cap(forces[i][0] * s.damping, s.max_delta)
        vy = _cap(forces[i][1] * s.damping, s.max_delta)
        lo_x, hi_x, lo_y, hi_y = ctx.bounds[i]
        nx = min(hi_x, max(lo_x, x + vx))
        ny = min(hi_y, max(lo_y, y + vy))
        moved += abs(nx - x) + abs(ny - y)
        positions.append((nx, ny))
        velocities.append((nx - x, ny - y))
    positions_t = tuple(positions)
    score = score_positions(positions_t, ctx)
    stale = 0 if score < state.best_score - s.tolerance else state.stale + 1
    if score < state.best_score:
        best_positions, best_score = positions_t, score
    else:
        best_positions, best_score = state.best_positions, state.best_score
    converged, reason = False, ""
    if moved < s.epsilon:
        converged, reason = True, "displacement"
    elif stale >= s.patience:
        converged, reason = True, "stagnation"
    return OptimizerState(
        positions=positions_t,
        velocities=tuple(velocities),
        score=score,
        iteration=state.iteration + 1,
        stale=stale,
        displacement=moved,
        best_positions=best_positions,
        best_score=best_score,
        converged=converged,
        reason=reason,
    )


# -- commit -----------------------------------------------------------------------------------------


def _l_walk(start: Cell, end: Cell, horizontal_first: bool) -> List[Cell]:
    """Cells from start to end (both included) with at most one turn."""
    (sx, sy), (ex, ey) = start, end
    corner = (ex, sy) if horizontal_first else (sx, ey)
    out = [start]
    cur = start
    for target in (corner, end):
        while cur != target:
            if cur[0] != target[0]:
                cur = (cur[0] + (1 if target[0] > cur[0] else -1), cur[1])
            else:
                cur = (cur[0], cur[1] + (1 if target[1] > cur[1] else -1))
            out.append(cur)
    return out


def restitch(
    cells: Sequence[Cell],
    approach: Cell,
    blocked: Sequence[Rect],
    width: int,
    height: int,
    occupied: AbstractSet[Cell] = frozenset(),
) -> Optional[Tuple[Cell, ...]]:
    """Reconnect the head of a corridor to a new approach cell.

    Joins ``approach`` to the nearest existing corridor cell with an L-walk
    and drops the stale prefix. Returns None when no walk stays in bounds,
    clear of ``blocked`` rectangles and off the ``occupied`` cells of other
    corridors.
    """
    if cells and cells[0] == approach:
        return tuple(cells)
    k = min(range(len(cells)), key=lambda i: (manhattan(approach, cells[i]), i))
    tail = list(cells[k + 1 :])
    for horizontal_first in (True, False):
        walk = _l_walk(approach, cells[k], horizontal_first)
        candidate = walk + tail
        if len(set(candidate)) != len(candidate):
            continue
        if any(not (0 <= x < width and 0 <= y < height) for x, y in walk):
            continue
        if any(rect.contains(c) for rect in blocked for c in walk):
            continue
        if any(c in occupied for c in walk):
            continue
        return tuple(candidate)
    return None


def _approach_for(room: Room, door: Cell) -> Cell:
    dx, dy = room.bounds.outward(door)
    return (door[0] + dx, door[1] + dy)


def _end_door(room: Room, cell: Cell) -> Optional[Cell]:
    for door in room.doorways:
        if manhattan(door, cell) == 1:
            return door
    return None


class LayoutOptimizer:
    def __init__(self, width: int, height: int, snap_step: int = 2, settings: Optional[OptimizerSettings] = None):
        self.width = width
        self.height = height
        self.snap_step = max(1, snap_step)
        self.settings = settings or OptimizerSettings()

    def start(self, rooms: Sequence[Room], corridors: Sequence[Corridor]) -> Tuple[OptimizerContext, OptimizerState]:
        ordered = sorted(rooms, key=lambda r: r.id)
        ctx = build_context(ordered, corridors, self.width, self.height, self.settings)
        return ctx, initial_state(ordered, ctx)

    def optimize(
        self,
        rooms: Sequence[Room],
        corridors: Sequence[Corridor],
        max_iterations: int = 50,
    ) -> OptimizerResult:
        ctx, state = self.start(rooms, corridors)
        for _ in range(max_iterations):
            state = step(state, ctx)
            if state.converged:
                break
        return self.finish(rooms, corridors, state, max_iterations)

    def finish(
        self,
        rooms: Sequence[Room],
        corridors: Sequence[Corridor],
        state: OptimizerState,
        max_iterations: int,
    ) -> OptimizerResult:
        ordered = sorted(rooms, key=lambda r: r.id)
        warnings: List[ConvergenceWarning] = []
        if not state.converged:
            warnings.append(
                ConvergenceWarning(
                    f"optimizer stopped after {state.iteration} of {max_iterations} iterations without converging"
                )
            )
            log.warn(
                event="optimizer_not_converged",
                iterations=state.iteration,
                best_score=round(state.best_score, 3),
            )
        if state.iteration == 0:
            return OptimizerResult(list(ordered), list(corridors), state, state.converged, warnings=warnings)
        new_rooms, new_corridors, moved, reverted = self.commit(ordered, corridors, state.best_positions)
        log.debug(
            event="optimizer_complete",
            iterations=state.iteration,
            reason=state.reason or "cap",
            moved=len(moved),
            reverted=len(reverted),
        )
        return OptimizerResult(new_rooms, new_corridors, state, state.converged, moved, reverted, warnings)

    def _candidates(self, room: Room, pos: Vec) -> List[Tuple[int, int]]:
        snap = self.snap_step
        snapped = (int(round(pos[0] / snap)) * snap, int(round(pos[1] / snap)) * snap)
        rounded = (int(round(pos[0])), int(round(pos[1])))
        out = []
        for cand in (snapped, rounded):
            if cand != (room.bounds.x, room.bounds.y) and cand not in out:
                out.append(cand)
        return out

    def commit(
        self,
        rooms: Sequence[Room],
        corridors: Sequence[Corridor],
        positions: Sequence[Vec],
    ) -> Tuple[List[Room], List[Corridor], List[int], List[int]]:
        current: Dict[int, Room] = {r.id: r for r in rooms}
        paths: Dict[int, Corridor] = {c.id: c for c in corridors}
        moved: List[int] = []
        reverted: List[int] = []
        for room, pos in zip(rooms, positions):
            candidates = self._candidates(room, pos)
            accepted = False
            for x, y in candidates:
                trial = room.translated(x - room.bounds.x, y - room.bounds.y)
                stitched = self._try_move(room, trial, current, paths)
                if stitched is not None:
                    current[room.id] = trial
                    paths.update(stitched)
                    moved.append(room.id)
                    accepted = True
                    break
            if candidates and not accepted:
                reverted.append(room.id)
        ordered_rooms = [current[r.id] for r in rooms]
        ordered_corridors = [paths[c.id] for c in corridors]
        return ordered_rooms, ordered_corridors, moved, reverted

    def _try_move(
        self,
        old: Room,
        new: Room,
        current: Dict[int, Room],
        paths: Dict[int, Corridor],
    ) -> Optional[Dict[int, Corridor]]:
        b = new.bounds
        if b.x < 0 or b.y < 0 or b.right > self.width or b.bottom > self.height:
            return None
        others = [r.bounds for rid, r in current.items() if rid != new.id]
        if any(b.intersects(o) for o in others):
            return None
        blocked = others + [b]
        dx, dy = b.x - old.bounds.x, b.y - old.bounds.y
        updated: Dict[int, Corridor] = {}
        for cid, corridor in paths.items():
            if new.id not in (corridor.room_a, corridor.room_b):
                continue
            cells = list(corridor.cells)
            for at_head in (True, False):
                owner = corridor.room_a if at_head else corridor.room_b
                if owner != new.id:
                    continue
                end = cells[0] if at_head else cells[-1]
                door = _end_door(old, end)
                if door is None:
                    return None
                approach = _approach_for(new, (door[0] + dx, door[1] + dy))
                seq = cells if at_head else cells[::-1]
                occupied = {
                    c for oid, other in paths.items() if oid != cid for c in updated.get(oid, other).cells
                }
                stitched = restitch(seq, approach, blocked, self.width, self.height, occupied)
                if stitched is None:
                    return None
                cells = list(stitched) if at_head else list(stitched)[::-1]
            updated[cid] = replace(corridor, cells=tuple(cells))
        # The moved room may not swallow any corridor, its own or another's.
        for cid, corridor in paths.items():
            for cell in updated.get(cid, corridor).cells:
                if b.contains(cell):
                    return None
        return updated


def optimize_layout(
    rooms: Sequence[Room],
    corridors: Sequence[Corridor],
    width: int,
    height: int,
    max_iterations: int = 50,
    snap_step: int = 2,
    settings: Optional[OptimizerSettings] = None,
) -> OptimizerResult:
    return LayoutOptimizer(width, height, snap_step, settings).optimize(rooms, corridors, max_iterations)


__all__ = [
    "LayoutOptimizer",
    "OptimizerContext",
    "OptimizerResult",
    "OptimizerSettings",
    "OptimizerState",
    "build_context",
    "initial_state",
    "optimize_layout",
    "restitch",
    "score_positions",
    "step",
]
