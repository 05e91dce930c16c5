import random

import pytest

from floorgen.layout import GenerationFailure, GenerationRequest, build_partition


def _tree(seed=42, **kw):
    params = dict(seed=seed, width=40, height=40, min_rooms=20, max_rooms=20)
    params.update(kw)
    req = GenerationRequest(**params).validate()
    return req, build_partition(req, random.Random(seed))


def test_reference_partition_yields_requested_room_count():
    _, tree = _tree()
    assert len(tree.leaves()) == 20
    assert tree.validate() == []


def test_depth_bounded_by_log2_of_max_rooms():
    _, tree = _tree()
    assert tree.depth() <= 5
    assert tree.max_depth == 5


def test_rooms_respect_size_limits_and_margin():
    req, tree = _tree()
    for leaf in tree.leaves():
        room = leaf.room
        assert req.min_room_width <= room.w <= req.max_room_width
        assert req.min_room_height <= room.h <= req.max_room_height
        inner = leaf.bounds.shrink(req.corridor_margin)
        assert inner.contains_rect(room)


def test_rooms_never_overlap_and_keep_a_corridor_gap():
    _, tree = _tree()
    rooms = tree.rooms()
    for i, a in enumerate(rooms):
        for b in rooms[i + 1 :]:
            assert a.bounds.gap_to(b.bounds) >= 2


def test_room_ids_follow_leaf_order_and_carry_depth():
    _, tree = _tree()
    rooms = tree.rooms()
    assert [r.id for r in rooms] == list(range(len(rooms)))
    assert [r.depth for r in rooms] == [leaf.depth for leaf in tree.leaves()]


def test_arena_links_are_consistent():
    _, tree = _tree()
    for node in tree.nodes:
        if node.parent is not None:
            parent = tree.nodes[node.parent]
            assert node.index in (parent.left, parent.right)
            assert node.depth == parent.depth + 1
    stats = tree.statistics()
    assert stats.leaf_nodes == 20
    assert stats.internal_nodes == 19
    assert stats.horizontal_splits + stats.vertical_splits == 19


def test_split_offsets_stay_within_map():
    _, tree = _tree()
    for node in tree.nodes:
        if node.is_leaf:
            continue
        left, right = tree.nodes[node.left].bounds, tree.nodes[node.right].bounds
        assert left.area + right.area == node.bounds.area


def test_partition_is_deterministic_per_seed():
    _, a = _tree(seed=99)
    _, b = _tree(seed=99)
    _, c = _tree(seed=100)
    assert [n.bounds for n in a.nodes] == [n.bounds for n in b.nodes]
    assert [r.bounds for r in a.rooms()] == [r.bounds for r in b.rooms()]
    assert [r.bounds for r in a.rooms()] != [r.bounds for r in c.rooms()]


def test_too_small_map_fails_at_partition_stage():
    # 8x8 cannot hold two 5x5 spans (3x3 room + margin 1 each side)
    req = GenerationRequest(seed=1, width=8, height=8, min_rooms=2, max_rooms=4).validate()
    with pytest.raises(GenerationFailure) as exc:
        build_partition(req, random.Random(1))
    assert exc.value.stage == "partition"
    assert "insufficient space" in str(exc.value)


def test_narrow_map_fails_even_when_tall():
    req = GenerationRequest(seed=1, width=4, height=200, min_rooms=2, max_rooms=4).validate()
    with pytest.raises(GenerationFailure) as exc:
        build_partition(req, random.Random(1))
    assert exc.value.stage == "partition"


def test_too_many_rooms_for_area_fails():
    req = GenerationRequest(seed=5, width=12, height=12, min_rooms=8, max_rooms=8).validate()
    with pytest.raises(GenerationFailure) as exc:
        build_partition(req, random.Random(5))
    assert exc.value.stage == "partition"
