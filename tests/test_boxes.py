import itertools

import numpy as np
import pytest

from anonymizer.boxes import Box, ScoredBox, clamp_boxes, iou, largest_box, merge_boxes, round_half_up


def test_iou_identical_is_one():
    b = Box(5, 7, 30, 20)
    assert iou(b, b) == pytest.approx(1.0)


def test_iou_disjoint_is_zero():
    assert iou(Box(0, 0, 10, 10), Box(20, 20, 10, 10)) == 0.0
    # touching edges share no area
    assert iou(Box(0, 0, 10, 10), Box(10, 0, 10, 10)) == 0.0


def test_iou_partial_overlap():
    # 20x10 and 10x10 sharing the left half: 100 / (200 + 100 - 100)
    assert iou(Box(0, 0, 20, 10), Box(0, 0, 10, 10)) == pytest.approx(0.5)


def test_iou_degenerate_does_not_divide_by_zero():
    assert iou(Box(0, 0, 0, 0), Box(0, 0, 0, 0)) == 0.0


def test_merge_keeps_larger_of_overlapping_pair():
    big = Box(0, 0, 20, 10)
    small = Box(0, 0, 10, 10)
    assert merge_boxes([small], [big], 0.3) == [big]
    assert merge_boxes([big, small], [], 0.3) == [big]


def test_merge_keeps_boxes_at_threshold():
    a = Box(0, 0, 40, 40)
    b = Box(0, 0, 20, 20)  # IOU 0.25
    assert merge_boxes([a], [b], 0.25) == [a, b]
    assert merge_boxes([a], [b], 0.2) == [a]


def test_merge_rounds_scored_boxes():
    out = merge_boxes([ScoredBox(10.4, 10.5, 20.6, 19.5, 0.8)], [])
    assert out == [Box(10, 11, 21, 20)]


def test_merge_empty():
    assert merge_boxes([], []) == []


def _random_boxes(seed, n=40):
    rng = np.random.default_rng(seed)
    out = []
    for _ in range(n):
        x, y = rng.integers(0, 200, size=2)
        w, h = rng.integers(5, 60, size=2)
        out.append(Box(int(x), int(y), int(w), int(h)))
    return out


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
@pytest.mark.parametrize("thr", [0.1, 0.3, 0.5])
def test_merge_output_pairwise_iou_within_threshold(seed, thr):
    boxes = _random_boxes(seed)
    kept = merge_boxes(boxes[:20], boxes[20:], thr)
    for a, b in itertools.combinations(kept, 2):
        assert iou(a, b) <= thr
    assert set(kept) <= set(boxes)


def test_merge_prefers_larger_area_first():
    boxes = _random_boxes(7)
    kept = merge_boxes(boxes, [], 0.3)
    areas = [b.area for b in kept]
    assert areas == sorted(areas, reverse=True)
    assert kept[0].area == max(b.area for b in boxes)


def test_merge_membership_independent_of_input_order():
    # distinct areas, several overlap groups
    boxes = [
        Box(0, 0, 50, 50), Box(5, 5, 45, 44), Box(60, 0, 30, 30),
        Box(62, 2, 29, 29), Box(0, 80, 20, 21), Box(100, 100, 10, 11),
    ]
    expected = set(merge_boxes(boxes, [], 0.3))
    for perm in itertools.permutations(boxes):
        assert set(merge_boxes(list(perm[:3]), list(perm[3:]), 0.3)) == expected


def test_merge_equal_area_tie_keeps_first_listed():
    first = Box(0, 0, 20, 20)
    second = Box(2, 2, 20, 20)
    assert merge_boxes([first], [second]) == [first]
    assert merge_boxes([second], [first]) == [second]


def test_scaled_box_maps_back_to_original_coordinates():
    mapped = ScoredBox(100, 50, 40, 40, 0.7).scaled(2.0).rounded()
    assert mapped == Box(50, 25, 20, 20)


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.49) == 2
    assert ScoredBox(0.5, 1.5, 2.5, 3.49).rounded() == Box(1, 2, 3, 3)


def test_clamp_and_inflate():
    assert Box(-5, -5, 20, 20).clamp(10, 10) == Box(0, 0, 10, 10)
    assert Box(20, 20, 5, 5).clamp(10, 10) is None
    assert Box(3, 3, 0, 4).clamp(10, 10) is None
    assert Box(10, 10, 10, 10).inflate(3, 100, 100) == Box(7, 7, 16, 16)
    assert Box(0, 0, 10, 10).inflate(3, 12, 12) == Box(0, 0, 12, 12)


def test_clamp_boxes_drops_degenerate():
    out = clamp_boxes([Box(90, 90, 30, 30), Box(200, 0, 5, 5), ScoredBox(-2.4, 0, 10, 10)], 100, 100)
    assert out == [Box(90, 90, 10, 10), Box(0, 0, 8, 10)]


def test_largest_box_first_wins_ties():
    a, b, c = Box(0, 0, 10, 10), Box(50, 50, 10, 10), Box(0, 0, 5, 5)
    assert largest_box([c, a, b]) is a
