"""Feathered inclusion mask for the blur renderer."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .boxes import Box
from .raster import RasterBackend, soften


def build_mask(backend: RasterBackend, width: int, height: int, boxes: Sequence[Box], pad: int, feather: float) -> np.ndarray:
    """Single-channel uint8 mask: 255 over each padded box, fading out over roughly `feather` px."""
    mask = np.zeros((height, width), dtype=np.uint8)
    for b in boxes:
        grown = b.inflate(pad, width, height)
        if grown is not None:
            backend.fill_rect(mask, grown, 255)
    if not mask.any():
        return mask
    return soften(backend, mask, feather)
