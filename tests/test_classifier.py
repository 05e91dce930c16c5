import random

import pytest

from floorgen.layout import ClassificationSettings, RoomClassifier, RoomType, build_partition, GenerationRequest
from floorgen.layout.classifier import DEFAULT_MIN_SIZES, default_distributions

from tests.layout_test_utils import make_room


def _rooms(seed=42):
    req = GenerationRequest(seed=seed, min_rooms=20, max_rooms=20).validate()
    rng = random.Random(seed)
    return build_partition(req, rng).rooms(), rng


def test_exactly_one_boss_room():
    rooms, rng = _rooms()
    typed = RoomClassifier(40, 40).classify(rooms, rng)
    assert sum(1 for r in typed if r.room_type is RoomType.BOSS_ROOM) == 1
    assert all(r.room_type is not None for r in typed)


def test_boss_is_largest_room_closest_to_centre():
    rooms = [
        make_room(0, 1, 1, 6, 6),
        make_room(1, 17, 17, 6, 6),  # same area, dead centre of a 40x40 map
        make_room(2, 30, 30, 4, 4),
    ]
    typed = RoomClassifier(40, 40).classify(rooms, random.Random(1))
    assert typed[1].room_type is RoomType.BOSS_ROOM


def test_classification_is_idempotent_for_same_rng_state():
    rooms, _ = _rooms()
    a = RoomClassifier(40, 40).classify(rooms, random.Random(7))
    b = RoomClassifier(40, 40).classify(rooms, random.Random(7))
    assert [r.room_type for r in a] == [r.room_type for r in b]


def test_input_rooms_are_not_mutated():
    rooms, rng = _rooms()
    before = list(rooms)
    RoomClassifier(40, 40).classify(rooms, rng)
    assert rooms == before
    assert all(r.room_type is None for r in rooms)


def test_minimum_sizes_are_respected():
    rooms, rng = _rooms()
    typed = RoomClassifier(40, 40).classify(rooms, rng)
    for room in typed:
        if room.room_type is RoomType.BOSS_ROOM:
            continue
        min_side, min_area = DEFAULT_MIN_SIZES[room.room_type]
        assert min(room.bounds.w, room.bounds.h) >= min_side or room.room_type is RoomType.OFFICE
        assert room.area >= min_area or room.room_type is RoomType.OFFICE


def test_caps_limit_lobbies():
    rooms = [make_room(i, (i % 5) * 8, (i // 5) * 8, 7, 7) for i in range(20)]
    typed = RoomClassifier(40, 40).classify(rooms, random.Random(3))
    assert sum(1 for r in typed if r.room_type is RoomType.LOBBY) <= 2


def test_overrides_force_types_without_drawing():
    rooms, _ = _rooms()
    settings = ClassificationSettings(overrides={3: RoomType.SECURITY, 5: RoomType.BOSS_ROOM})
    typed = RoomClassifier(40, 40, settings).classify(rooms, random.Random(11))
    by_id = {r.id: r for r in typed}
    assert by_id[3].room_type is RoomType.SECURITY
    assert by_id[5].room_type is RoomType.BOSS_ROOM
    assert sum(1 for r in typed if r.room_type is RoomType.BOSS_ROOM) == 1


def test_small_rooms_never_get_large_only_types():
    rooms = [make_room(i, i * 5, 0, 3, 3) for i in range(6)]
    typed = RoomClassifier(40, 40).classify(rooms, random.Random(2))
    for room in typed:
        assert room.room_type not in (RoomType.LOBBY, RoomType.CONFERENCE, RoomType.BREAK_ROOM)


def test_default_distributions_cover_every_feature_combination():
    table = default_distributions()
    for size in ("small", "medium", "large"):
        for depth in ("shallow", "deep"):
            for centrality in ("central", "peripheral"):
                dist = table[(size, depth, centrality)]
                assert sum(w for _, w in dist) > 0


def test_deep_rooms_lean_toward_back_of_house():
    table = default_distributions()
    shallow = dict(table[("medium", "shallow", "central")])
    deep = dict(table[("medium", "deep", "central")])
    assert deep.get(RoomType.STORAGE, 0) > shallow.get(RoomType.STORAGE, 0)
    assert deep.get(RoomType.SERVER_ROOM, 0) > shallow.get(RoomType.SERVER_ROOM, 0)


@pytest.mark.parametrize(
    "settings,needle",
    [
        (ClassificationSettings(overrides={1: RoomType.BOSS_ROOM, 2: RoomType.BOSS_ROOM}), "BossRoom"),
        (ClassificationSettings(distributions={("small", "deep", "central"): ()}), "empty"),
    ],
)
def test_settings_validation_reports_problems(settings, needle):
    problems = settings.validate()
    assert any(needle in p for p in problems)
