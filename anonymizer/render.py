"""
Region-confined rendering of the three obfuscation modes.

Blur is a single whole-image pass (downscale/upscale) shown only through a
feathered mask around the faces, so overlapping boxes never leave seams.
Pixelate and Box work per rectangle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from .boxes import Box, clamp_boxes, largest_box, round_half_up
from .errors import InvalidInput
from .mask import build_mask
from .raster import (
    OpenCVBackend,
    RasterBackend,
    RenderCapabilities,
    soften,
    soften_factor,
    solid_color,
)

logger = logging.getLogger(__name__)

PARAM_MIN = 4
PARAM_MAX = 40
PIXEL_BLOCK_STEP = 2
DEFAULT_BLUR_RADIUS = 12
DEFAULT_PIXEL_BLOCK = 16
MIN_PIXEL_BLOCK = 4

# blur strength adapts to face size; slider value 12 means "use the base strength"
BLUR_REFERENCE_RADIUS = 12.0
MIN_BASE_STRENGTH = 6.0
MAX_BASE_STRENGTH = 30.0
MASK_PAD_FRAC = 0.12
MIN_FEATHER = 8
FEATHER_FRAC = 0.9


class Mode(Enum):
    BLUR = "blur"
    PIXELATE = "pixelate"
    BOX = "box"

    @classmethod
    def parse(cls, name) -> "Mode":
        if isinstance(name, Mode):
            return name
        m = (name or "blur").lower().strip()
        if m in ("pixelate", "pixelation", "pixel", "mosaic", "tiles"):
            return cls.PIXELATE
        if m in ("box", "bar", "blackbar", "black_bar", "fill", "censor"):
            return cls.BOX
        if m in ("blur", "gaussian", "gaussian_blur"):
            return cls.BLUR
        raise InvalidInput(f"unknown render mode: {name!r}")


def _clamp_param(v, step: int = 1) -> int:
    v = max(PARAM_MIN, min(PARAM_MAX, int(v)))
    return PARAM_MIN + (v - PARAM_MIN) // step * step


@dataclass
class RenderParams:
    blur_radius: int = DEFAULT_BLUR_RADIUS
    pixel_block_size: int = DEFAULT_PIXEL_BLOCK

    def __post_init__(self) -> None:
        self.blur_radius = _clamp_param(self.blur_radius)
        self.pixel_block_size = _clamp_param(self.pixel_block_size, PIXEL_BLOCK_STEP)


def blur_strength(img_w: int, img_h: int, largest: Box, blur_radius: float) -> float:
    """Face-size adaptive strength, scaled linearly by the user's blur radius."""
    rel_area = largest.area / float(img_w * img_h)
    base = max(MIN_BASE_STRENGTH, min(MAX_BASE_STRENGTH, 10.0 * rel_area * 100.0))
    return base * (blur_radius / BLUR_REFERENCE_RADIUS)


def pixel_grid(width: int, height: int, block_size: int) -> Tuple[int, int]:
    block = max(MIN_PIXEL_BLOCK, int(block_size))
    return max(1, width // block), max(1, height // block)


class Renderer:
    def __init__(
        self,
        backend: Optional[RasterBackend] = None,
        capabilities: Optional[RenderCapabilities] = None,
        fill_color=(0, 0, 0),
    ):
        self.backend = backend or OpenCVBackend()
        self.capabilities = capabilities or RenderCapabilities()
        self.fill_color = fill_color

    def render(self, img: np.ndarray, boxes: Sequence[Box], mode=Mode.BLUR, params: Optional[RenderParams] = None) -> np.ndarray:
        """Return an obfuscated copy of `img`; `img` itself is never modified."""
        mode = Mode.parse(mode)
        params = params or RenderParams()
        h, w = img.shape[:2]
        rects = clamp_boxes(boxes, w, h)
        out = img.copy()
        if not rects:
            return out
        if mode is Mode.BOX:
            self._fill(out, rects)
        elif mode is Mode.PIXELATE:
            self._pixelate(out, rects, params.pixel_block_size)
        elif self.capabilities.smooth_filter:
            out = self._blur(out, rects, params.blur_radius)
        else:
            self._blur_per_box(out, rects, params.blur_radius)
        return out

    def _fill(self, out: np.ndarray, rects: Sequence[Box]) -> None:
        color = solid_color(out, self.fill_color)
        for r in rects:
            self.backend.fill_rect(out, r, color)

    def _pixelate(self, out: np.ndarray, rects: Sequence[Box], block_size: int) -> None:
        for r in rects:
            w_blocks, h_blocks = pixel_grid(r.width, r.height, block_size)
            roi = self.backend.copy_region(out, r)
            small = self.backend.resample(roi, w_blocks, h_blocks, smooth=False)
            blocks = self.backend.resample(small, r.width, r.height, smooth=False)
            self.backend.paste(out, blocks, r.x, r.y)

    def _blur(self, img: np.ndarray, rects: Sequence[Box], blur_radius: int) -> np.ndarray:
        h, w = img.shape[:2]
        largest = largest_box(rects)
        strength = blur_strength(w, h, largest, blur_radius)
        blurred = soften(self.backend, img, strength)
        pad = round_half_up(MASK_PAD_FRAC * min(largest.width, largest.height))
        feather = max(MIN_FEATHER, round_half_up(strength * FEATHER_FRAC))
        mask = build_mask(self.backend, w, h, rects, pad, feather)
        logger.debug("blur strength=%.2f k=%d pad=%d feather=%d", strength, soften_factor(strength), pad, feather)
        return self.backend.composite_with_mask(img, blurred, mask)

    def _blur_per_box(self, out: np.ndarray, rects: Sequence[Box], blur_radius: int) -> None:
        h, w = out.shape[:2]
        strength = blur_strength(w, h, largest_box(rects), blur_radius)
        for r in rects:
            roi = self.backend.copy_region(out, r)
            self.backend.paste(out, soften(self.backend, roi, strength, smooth=False), r.x, r.y)
