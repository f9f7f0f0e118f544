import numpy as np

from anonymizer.boxes import Box
from anonymizer.mask import build_mask


def test_no_boxes_gives_empty_mask(backend):
    mask = build_mask(backend, 50, 40, [], pad=5, feather=8)
    assert mask.shape == (40, 50)
    assert mask.dtype == np.uint8
    assert not mask.any()


def test_mask_is_opaque_inside_and_clear_far_away(backend):
    mask = build_mask(backend, 200, 200, [Box(80, 80, 40, 40)], pad=5, feather=8)
    assert mask.shape == (200, 200)
    assert mask[100, 100] == 255
    assert mask[10, 10] == 0
    assert mask[190, 100] == 0


def test_mask_edges_are_feathered(backend):
    mask = build_mask(backend, 200, 200, [Box(80, 80, 40, 40)], pad=5, feather=8)
    row = mask[100]
    partial = (row > 0) & (row < 255)
    assert partial.any()
    # opacity only falls off moving away from the face
    left = row[:101].astype(int)
    assert np.all(np.diff(left) >= 0)


def test_padding_reaches_outside_the_box(backend):
    tight = build_mask(backend, 200, 200, [Box(80, 80, 40, 40)], pad=0, feather=8)
    padded = build_mask(backend, 200, 200, [Box(80, 80, 40, 40)], pad=12, feather=8)
    assert int(padded[100, 72]) > int(tight[100, 72])


def test_multiple_boxes_each_get_coverage(backend):
    boxes = [Box(10, 10, 30, 30), Box(150, 150, 30, 30)]
    mask = build_mask(backend, 200, 200, boxes, pad=3, feather=8)
    assert mask[25, 25] > 200
    assert mask[165, 165] > 200
    assert mask[100, 100] == 0


def test_pad_is_clamped_to_image(backend):
    mask = build_mask(backend, 60, 60, [Box(0, 0, 20, 20)], pad=50, feather=8)
    assert mask.shape == (60, 60)
    assert mask[0, 0] == 255
