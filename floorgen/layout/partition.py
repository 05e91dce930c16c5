"""Binary space partitioning of the map into room-bearing leaves.

The tree is stored as an arena (``PartitionTree.nodes``) and nodes refer to
their parent and children by index. Splits are biased toward the longer side
and placed inside an asymmetry band (35-65% by default) instead of the
midpoint, which is what keeps the layouts from looking like a uniform grid.

Every random draw happens in recursion order (left subtree before right), so
for a given seed the tree shape and every rectangle are reproducible.
"""
from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import List, Optional

from ..logging_utils import get_logger
from .config import GenerationRequest
from .errors import GenerationFailure
from .geometry import Rect
from .model import Room

log = get_logger("floorgen.partition")


@dataclass
class PartitionNode:
    index: int
    bounds: Rect
    depth: int
    parent: Optional[int] = None
    left: Optional[int] = None
    right: Optional[int] = None
    room: Optional[Rect] = None
    horizontal: Optional[bool] = None  # True when the cut runs along x (children stacked in y)

    @property
    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


@dataclass
class PartitionStatistics:
    total_nodes: int = 0
    internal_nodes: int = 0
    leaf_nodes: int = 0
    rooms_generated: int = 0
    max_depth: int = 0
    horizontal_splits: int = 0
    vertical_splits: int = 0
    total_room_area: int = 0


@dataclass
class PartitionTree:
    bounds: Rect
    max_depth: int
    nodes: List[PartitionNode] = field(default_factory=list)
    target_rooms: int = 0

    @property
    def root(self) -> PartitionNode:
        return self.nodes[0]

    def leaves(self) -> List[PartitionNode]:
        """Leaves in left-to-right recursion order (this order defines room ids)."""
        out: List[PartitionNode] = []
        stack = [0]
        while stack:
            node = self.nodes[stack.pop()]
            if node.is_leaf:
                out.append(node)
            else:
                # Right pushed first so the left subtree is visited first.
                stack.append(node.right)
                stack.append(node.left)
        return out

    def rooms(self) -> List[Room]:
        return [Room(id=i, bounds=leaf.room, depth=leaf.depth) for i, leaf in enumerate(self.leaves())]

    def depth(self) -> int:
        return max(n.depth for n in self.nodes)

    def statistics(self) -> PartitionStatistics:
        stats = PartitionStatistics()
        for node in self.nodes:
            stats.total_nodes += 1
            stats.max_depth = max(stats.max_depth, node.depth)
            if node.is_leaf:
                stats.leaf_nodes += 1
                if node.room is not None:
                    stats.rooms_generated += 1
                    stats.total_room_area += node.room.area
            else:
                stats.internal_nodes += 1
                if node.horizontal:
                    stats.horizontal_splits += 1
                else:
                    stats.vertical_splits += 1
        return stats

    def validate(self) -> List[str]:
        """Return structural problems (empty list when the tree is well formed)."""
        problems: List[str] = []
        for node in self.nodes:
            b = node.bounds
            if b.w <= 0 or b.h <= 0:
                problems.append(f"node {node.index} has empty bounds {b}")
            if node.depth > self.max_depth:
                problems.append(f"node {node.index} exceeds max depth {self.max_depth}")
            if node.is_leaf:
                if node.room is None:
                    problems.append(f"leaf {node.index} has no room")
                elif not b.contains_rect(node.room):
                    problems.append(f"room {node.room} escapes partition {b}")
                continue
            if node.left is None or node.right is None:
                problems.append(f"internal node {node.index} is missing a child")
                continue
            if node.room is not None:
                problems.append(f"internal node {node.index} carries a room")
            lb, rb = self.nodes[node.left].bounds, self.nodes[node.right].bounds
            if lb.intersects(rb):
                problems.append(f"children of node {node.index} overlap")
            if lb.area + rb.area != b.area or not (b.contains_rect(lb) and b.contains_rect(rb)):
                problems.append(f"children of node {node.index} do not tile it")
        return problems


class PartitionBuilder:
    """Builds a PartitionTree for one request using the shared seeded generator."""

    def __init__(self, request: GenerationRequest, rng: random.Random):
        self.request = request
        self.rng = rng
        margin = request.corridor_margin
        # Smallest partition span that still yields a minimum room once the
        # corridor margin is reserved on both sides.
        self.min_span_w = request.min_room_width + 2 * margin
        self.min_span_h = request.min_room_height + 2 * margin
        self.max_depth = max(1, math.ceil(math.log2(request.max_rooms)))

    def build(self) -> PartitionTree:
        req = self.request
        bounds = Rect(0, 0, req.width, req.height)
        too_small = bounds.w < self.min_span_w or bounds.h < self.min_span_h
        if too_small or (bounds.w < 2 * self.min_span_w and bounds.h < 2 * self.min_span_h):
            raise GenerationFailure(
                "partition",
                f"insufficient space: {req.width}x{req.height} map cannot hold two "
                f"{req.min_room_width}x{req.min_room_height} rooms with margin {req.corridor_margin}",
            )
        target = self.rng.randint(req.min_rooms, req.max_rooms)
        tree = PartitionTree(bounds=bounds, max_depth=self.max_depth, target_rooms=target)
        tree.nodes.append(PartitionNode(index=0, bounds=bounds, depth=0))
        self._split(tree, 0, target)
        leaves = tree.leaves()
        if len(leaves) < req.min_rooms:
            raise GenerationFailure(
                "partition",
                f"only {len(leaves)} rooms fit in a {req.width}x{req.height} map (min_rooms={req.min_rooms})",
            )
        log.debug(event="partition_complete", target=target, rooms=len(leaves), depth=tree.depth())
        return tree

    # -- recursion --------------------------------------------------------------------------------

    def _split(self, tree: PartitionTree, index: int, budget: int) -> None:
        node = tree.nodes[index]
        if budget <= 1 or node.depth >= self.max_depth:
            node.room = self._place_room(node.bounds)
            return
        plan = self._choose_cut(node.bounds, budget)
        if plan is None:
            node.room = self._place_room(node.bounds)
            return
        horizontal, offset, first_budget, second_budget = plan
        b = node.bounds
        if horizontal:
            first = Rect(b.x, b.y, b.w, offset)
            second = Rect(b.x, b.y + offset, b.w, b.h - offset)
        else:
            first = Rect(b.x, b.y, offset, b.h)
            second = Rect(b.x + offset, b.y, b.w - offset, b.h)
        node.horizontal = horizontal
        node.left = len(tree.nodes)
        tree.nodes.append(PartitionNode(index=node.left, bounds=first, depth=node.depth + 1, parent=index))
        node.right = len(tree.nodes)
        tree.nodes.append(PartitionNode(index=node.right, bounds=second, depth=node.depth + 1, parent=index))
        self._split(tree, node.left, first_budget)
        self._split(tree, node.right, second_budget)

    def _choose_cut(self, b: Rect, budget: int):
        """Pick (horizontal, offset, first_budget, second_budget) or None when no split fits."""
        # Same bias trick as a classic BSP: near-square rects pick either axis,
        # elongated ones are cut across their long side.
        horizontal = (b.w / b.h) < self.rng.uniform(0.8, 1.25)
        ratio = self.rng.uniform(self.request.split_ratio_min, self.request.split_ratio_max)
        big, small = budget - budget // 2, budget // 2
        for axis in (horizontal, not horizontal):
            span = b.h if axis else b.w
            desired = int(span * ratio)
            # The larger half of the budget goes to the larger child.
            first_budget, second_budget = (big, small) if desired * 2 >= span else (small, big)
            offset = self._feasible_offset(b, axis, desired, first_budget, second_budget)
            if offset is not None:
                return axis, offset, first_budget, second_budget
        return None

    def _feasible_offset(self, b: Rect, horizontal: bool, desired: int, first_budget: int, second_budget: int):
        span, min_span = (b.h, self.min_span_h) if horizontal else (b.w, self.min_span_w)
        lo, hi = min_span, span - min_span
        if lo > hi:
            return None
        best = None
        fallback = None
        for offset in range(lo, hi + 1):
            if horizontal:
                cap_a = self._capacity(b.w, offset)
                cap_b = self._capacity(b.w, b.h - offset)
            else:
                cap_a = self._capacity(offset, b.h)
                cap_b = self._capacity(b.w - offset, b.h)
            dist = abs(offset - desired)
            if fallback is None or dist < fallback[0]:
                fallback = (dist, offset)
            if cap_a >= first_budget and cap_b >= second_budget:
                if best is None or dist < best[0]:
                    best = (dist, offset)
        # Without a capacity-respecting offset the split still happens; the
        # subtree just yields fewer rooms than budgeted.
        chosen = best or fallback
        return chosen[1] if chosen else None

    def _capacity(self, w: int, h: int) -> int:
        return (w // self.min_span_w) * (h // self.min_span_h)

    def _place_room(self, b: Rect) -> Rect:
        req = self.request
        inner = b.shrink(req.corridor_margin)
        w = min(inner.w, req.max_room_width)
        h = min(inner.h, req.max_room_height)
        dx = self.rng.randint(0, inner.w - w)
        dy = self.rng.randint(0, inner.h - h)
        return Rect(inner.x + dx, inner.y + dy, w, h)


def build_partition(request: GenerationRequest, rng: random.Random) -> PartitionTree:
    return PartitionBuilder(request, rng).build()


__all__ = ["PartitionNode", "PartitionTree", "PartitionStatistics", "PartitionBuilder", "build_partition"]
