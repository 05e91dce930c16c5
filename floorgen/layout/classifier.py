"""Rule-based room type assignment.

Each room is described by three coarse features: a size bucket (area relative
to the spread of room areas), a depth bucket (partition depth) and its
centrality (distance of its centre to the map centre). The feature triple
selects an integer-weighted distribution over room types which is sampled
with the shared seeded generator, one draw per room in ascending id order.

Exactly one BossRoom is picked up front (largest area, then closest to the
map centre, then lowest id). Types whose minimum size a room does not meet
are skipped in favour of the next eligible entry of the same distribution;
rooms are never resized to fit a type.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .model import Room, RoomType

SizeBucket = str  # "small" | "medium" | "large"
DepthBucket = str  # "shallow" | "deep"
Centrality = str  # "central" | "peripheral"
Distribution = Tuple[Tuple[RoomType, int], ...]

# (min width/height side, min area) per type. Boss rooms are chosen by size
# and do not need a floor.
DEFAULT_MIN_SIZES: Dict[RoomType, Tuple[int, int]] = {
    RoomType.OFFICE: (3, 9),
    RoomType.STORAGE: (3, 9),
    RoomType.SECURITY: (3, 9),
    RoomType.SERVER_ROOM: (3, 12),
    RoomType.BREAK_ROOM: (4, 16),
    RoomType.CONFERENCE: (4, 24),
    RoomType.LOBBY: (5, 30),
    RoomType.BOSS_ROOM: (1, 1),
}

_BASE: Dict[SizeBucket, Dict[Centrality, Distribution]] = {
    "small": {
        "central": ((RoomType.OFFICE, 5), (RoomType.SECURITY, 3), (RoomType.STORAGE, 2), (RoomType.SERVER_ROOM, 1)),
        "peripheral": ((RoomType.STORAGE, 5), (RoomType.OFFICE, 4), (RoomType.SERVER_ROOM, 2), (RoomType.SECURITY, 1)),
    },
    "medium": {
        "central": ((RoomType.OFFICE, 5), (RoomType.BREAK_ROOM, 3), (RoomType.CONFERENCE, 2), (RoomType.SECURITY, 1)),
        "peripheral": ((RoomType.OFFICE, 6), (RoomType.BREAK_ROOM, 2), (RoomType.STORAGE, 2), (RoomType.SERVER_ROOM, 1)),
    },
    "large": {
        "central": ((RoomType.LOBBY, 4), (RoomType.CONFERENCE, 4), (RoomType.OFFICE, 2), (RoomType.BREAK_ROOM, 1)),
        "peripheral": ((RoomType.CONFERENCE, 4), (RoomType.OFFICE, 4), (RoomType.BREAK_ROOM, 2), (RoomType.LOBBY, 1)),
    },
}

# Deep leaves come from repeated subdivision: tucked-away rooms lean toward
# back-of-house types.
_DEEP_BONUS: Dict[RoomType, int] = {RoomType.STORAGE: 2, RoomType.SERVER_ROOM: 2}


def default_distributions() -> Dict[Tuple[SizeBucket, DepthBucket, Centrality], Distribution]:
    table: Dict[Tuple[SizeBucket, DepthBucket, Centrality], Distribution] = {}
    for size, by_centrality in _BASE.items():
        for centrality, dist in by_centrality.items():
            table[(size, "shallow", centrality)] = dist
            deep = [(t, w + _DEEP_BONUS.get(t, 0)) for t, w in dist]
            present = {t for t, _ in deep}
            for t, bonus in _DEEP_BONUS.items():
                if t not in present:
                    deep.append((t, bonus))
            table[(size, "deep", centrality)] = tuple(deep)
    return table


@dataclass
class ClassificationSettings:
    distributions: Dict[Tuple[SizeBucket, DepthBucket, Centrality], Distribution] = field(
        default_factory=default_distributions
    )
    min_sizes: Dict[RoomType, Tuple[int, int]] = field(default_factory=lambda: dict(DEFAULT_MIN_SIZES))
    max_counts: Dict[RoomType, int] = field(default_factory=lambda: {RoomType.LOBBY: 2, RoomType.SECURITY: 3})
    # Designer overrides: room id -> forced type (no draw consumed for that room).
    overrides: Dict[int, RoomType] = field(default_factory=dict)
    # Fraction of the max centre distance under which a room counts as central.
    central_fraction: float = 0.35
    fallback_type: RoomType = RoomType.OFFICE

    def validate(self) -> List[str]:
        problems = []
        for key, dist in self.distributions.items():
            if not dist:
                problems.append(f"empty distribution for {key}")
            elif any(w < 0 for _, w in dist) or sum(w for _, w in dist) <= 0:
                problems.append(f"distribution for {key} needs positive weights")
            elif any(t is RoomType.BOSS_ROOM for t, _ in dist):
                problems.append(f"distribution for {key} may not contain BossRoom")
        boss_overrides = [rid for rid, t in self.overrides.items() if t is RoomType.BOSS_ROOM]
        if len(boss_overrides) > 1:
            problems.append("at most one room may be overridden to BossRoom")
        return problems


class RoomClassifier:
    def __init__(self, map_width: int, map_height: int, settings: Optional[ClassificationSettings] = None):
        self.map_width = map_width
        self.map_height = map_height
        self.settings = settings or ClassificationSettings()

    # -- features ---------------------------------------------------------------------------------

    def _center_distance2(self, room: Room) -> int:
        # Doubled coordinates keep everything integral.
        cx2 = 2 * room.bounds.x + room.bounds.w
        cy2 = 2 * room.bounds.y + room.bounds.h
        return (cx2 - self.map_width) ** 2 + (cy2 - self.map_height) ** 2

    def features(self, room: Room, rooms: Sequence[Room]) -> Tuple[SizeBucket, DepthBucket, Centrality]:
        areas = sorted(r.area for r in rooms)
        lo_cut = areas[len(areas) // 3]
        hi_cut = areas[(2 * len(areas)) // 3]
        if room.area < lo_cut:
            size = "small"
        elif room.area > hi_cut or room.area == areas[-1]:
            size = "large"
        else:
            size = "medium"
        max_depth = max(r.depth for r in rooms)
        depth = "deep" if max_depth > 0 and room.depth >= max_depth else "shallow"
        max_d2 = self.map_width ** 2 + self.map_height ** 2
        limit = (self.settings.central_fraction ** 2) * max_d2
        centrality = "central" if self._center_distance2(room) <= limit else "peripheral"
        return size, depth, centrality

    def pick_boss(self, rooms: Sequence[Room]) -> Room:
        forced = [r for r in rooms if self.settings.overrides.get(r.id) is RoomType.BOSS_ROOM]
        if forced:
            return forced[0]
        return max(rooms, key=lambda r: (r.area, -self._center_distance2(r), -r.id))

    def _eligible(self, room: Room, room_type: RoomType, counts: Dict[RoomType, int]) -> bool:
        min_side, min_area = self.settings.min_sizes.get(room_type, (1, 1))
        if min(room.bounds.w, room.bounds.h) < min_side or room.area < min_area:
            return False
        cap = self.settings.max_counts.get(room_type)
        return cap is None or counts.get(room_type, 0) < cap

    # -- classification ---------------------------------------------------------------------------

    def classify(self, rooms: Sequence[Room], rng: random.Random) -> List[Room]:
        """Return new Room objects with ``room_type`` assigned; input rooms are untouched."""
        if not rooms:
            return []
        ordered = sorted(rooms, key=lambda r: r.id)
        boss = self.pick_boss(ordered)
        counts: Dict[RoomType, int] = {RoomType.BOSS_ROOM: 1}
        assigned: Dict[int, RoomType] = {boss.id: RoomType.BOSS_ROOM}
        for room in ordered:
            if room.id == boss.id:
                continue
            override = self.settings.overrides.get(room.id)
            if override is not None and override is not RoomType.BOSS_ROOM:
                chosen = override
            else:
                dist = self.settings.distributions[self.features(room, ordered)]
                chosen = self._sample(room, dist, counts, rng)
            assigned[room.id] = chosen
            counts[chosen] = counts.get(chosen, 0) + 1
        return [replace(r, room_type=assigned[r.id]) for r in rooms]

    def _sample(self, room: Room, dist: Distribution, counts: Dict[RoomType, int], rng: random.Random) -> RoomType:
        total = sum(w for _, w in dist)
        roll = rng.randrange(total)
        start = 0
        for i, (_, w) in enumerate(dist):
            if roll < w:
                start = i
                break
            roll -= w
        for step in range(len(dist)):
            candidate = dist[(start + step) % len(dist)][0]
            if self._eligible(room, candidate, counts):
                return candidate
        return self.settings.fallback_type


def classify_rooms(
    rooms: Sequence[Room],
    map_width: int,
    map_height: int,
    rng: random.Random,
    settings: Optional[ClassificationSettings] = None,
) -> List[Room]:
    return RoomClassifier(map_width, map_height, settings).classify(rooms, rng)


__all__ = [
    "ClassificationSettings",
    "RoomClassifier",
    "classify_rooms",
    "default_distributions",
    "DEFAULT_MIN_SIZES",
]
