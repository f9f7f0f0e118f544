"""
Raster surface primitives.

Images are numpy arrays of shape (H, W) or (H, W, C). Every drawing operation
the renderer needs goes through a RasterBackend so the same pipeline can run on
the OpenCV fast path in production and on a plain numpy buffer in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import cv2
import numpy as np

from .boxes import Box, round_half_up
from .errors import UnsupportedCapability

logger = logging.getLogger(__name__)

# clamp range for the downscale factor of the blur approximation
MIN_SOFTEN_FACTOR = 2
MAX_SOFTEN_FACTOR = 16


class RasterBackend:
    """Minimal set of pixel operations the renderer is written against."""

    name = "abstract"

    def resample(self, img: np.ndarray, width: int, height: int, smooth: bool) -> np.ndarray:
        raise NotImplementedError

    def fill_rect(self, img: np.ndarray, box: Box, color) -> None:
        """Paint `box` in place with a solid color."""
        img[box.y:box.bottom, box.x:box.right] = color

    def copy_region(self, img: np.ndarray, box: Box) -> np.ndarray:
        return img[box.y:box.bottom, box.x:box.right].copy()

    def paste(self, dst: np.ndarray, src: np.ndarray, x: int, y: int) -> None:
        h, w = src.shape[:2]
        dst[y:y + h, x:x + w] = src

    def composite_with_mask(self, base: np.ndarray, overlay: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Blend `overlay` over `base`; mask 255 shows overlay, 0 shows base."""
        alpha = mask.astype(np.float32) / 255.0
        if base.ndim == 3:
            alpha = alpha[..., np.newaxis]
        blended = overlay.astype(np.float32) * alpha + base.astype(np.float32) * (1.0 - alpha)
        return np.clip(np.rint(blended), 0, 255).astype(base.dtype)


def _nearest_index(src: int, dst: int) -> np.ndarray:
    idx = np.floor((np.arange(dst) + 0.5) * (src / float(dst))).astype(np.intp)
    return np.clip(idx, 0, src - 1)


def _linear_taps(src: int, dst: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    pos = (np.arange(dst) + 0.5) * (src / float(dst)) - 0.5
    pos = np.clip(pos, 0.0, src - 1)
    i0 = np.floor(pos).astype(np.intp)
    i1 = np.minimum(i0 + 1, src - 1)
    return i0, i1, (pos - i0).astype(np.float32)


def _area_weights(src: int, dst: int) -> np.ndarray:
    """(dst, src) matrix of source-pixel coverage for each destination pixel."""
    scale = src / float(dst)
    edges = np.arange(dst + 1) * scale
    lo = edges[:-1, np.newaxis]
    hi = edges[1:, np.newaxis]
    j = np.arange(src)[np.newaxis, :]
    overlap = np.clip(np.minimum(hi, j + 1) - np.maximum(lo, j), 0.0, None)
    return (overlap / scale).astype(np.float32)


def _resample_axis(arr: np.ndarray, size: int, axis: int, smooth: bool) -> np.ndarray:
    src = arr.shape[axis]
    if src == size:
        return arr
    if not smooth:
        return np.take(arr, _nearest_index(src, size), axis=axis)
    if size < src:
        out = np.tensordot(_area_weights(src, size), arr, axes=([1], [axis]))
        return np.moveaxis(out, 0, axis)
    i0, i1, frac = _linear_taps(src, size)
    shape = [1] * arr.ndim
    shape[axis] = size
    frac = frac.reshape(shape)
    a = np.take(arr, i0, axis=axis)
    b = np.take(arr, i1, axis=axis)
    return a + (b - a) * frac


class NumpyBackend(RasterBackend):
    """Software buffer implementation; no graphics library involved.

    `smoothing=False` models a platform without a filtered resample path: asking
    for smoothing then raises UnsupportedCapability.
    """

    name = "numpy"

    def __init__(self, smoothing: bool = True):
        self.smoothing = smoothing

    def resample(self, img: np.ndarray, width: int, height: int, smooth: bool) -> np.ndarray:
        if smooth and not self.smoothing:
            raise UnsupportedCapability("numpy backend configured without smoothed resampling")
        width = max(1, int(width)); height = max(1, int(height))
        if not smooth:
            out = _resample_axis(img, height, 0, False)
            return np.ascontiguousarray(_resample_axis(out, width, 1, False))
        work = img.astype(np.float32)
        work = _resample_axis(work, height, 0, True)
        work = _resample_axis(work, width, 1, True)
        if np.issubdtype(img.dtype, np.integer):
            info = np.iinfo(img.dtype)
            work = np.clip(np.rint(work), info.min, info.max)
        return np.ascontiguousarray(work.astype(img.dtype))


class OpenCVBackend(RasterBackend):
    """Production backend on top of cv2.resize / cv2.blendLinear."""

    name = "opencv"

    def resample(self, img: np.ndarray, width: int, height: int, smooth: bool) -> np.ndarray:
        width = max(1, int(width)); height = max(1, int(height))
        h, w = img.shape[:2]
        if not smooth:
            interp = cv2.INTER_NEAREST
        else:
            interp = cv2.INTER_AREA if width * height < w * h else cv2.INTER_LINEAR
        out = cv2.resize(img, (width, height), interpolation=interp)
        if img.ndim == 3 and out.ndim == 2:
            out = out[..., np.newaxis]
        return out

    def composite_with_mask(self, base: np.ndarray, overlay: np.ndarray, mask: np.ndarray) -> np.ndarray:
        w1 = mask.astype(np.float32) / 255.0
        w2 = 1.0 - w1
        out = cv2.blendLinear(overlay, base, w1, w2)
        return out.reshape(base.shape)


@dataclass(frozen=True)
class RenderCapabilities:
    """What the active backend can do; computed once and handed to the renderer."""

    smooth_filter: bool = True


def probe_capabilities(backend: RasterBackend) -> RenderCapabilities:
    """Check whether `backend` offers a real smoothed resample (interpolated output)."""
    probe = np.zeros((4, 4), dtype=np.uint8)
    probe[:, 2:] = 255
    try:
        up = backend.resample(probe, 8, 8, smooth=True)
    except (UnsupportedCapability, NotImplementedError, cv2.error) as ex:
        logger.info("Smoothed resampling unavailable on %s backend (%s); using per-box fallback", backend.name, ex)
        return RenderCapabilities(smooth_filter=False)
    interpolated = bool(np.any((up > 0) & (up < 255)))
    if not interpolated:
        logger.info("%s backend resample is not interpolating; using per-box fallback", backend.name)
    return RenderCapabilities(smooth_filter=interpolated)


def soften_factor(strength: float) -> int:
    return max(MIN_SOFTEN_FACTOR, min(MAX_SOFTEN_FACTOR, round_half_up(strength / 2.0)))


def soften(backend: RasterBackend, img: np.ndarray, strength: float, smooth: bool = True) -> np.ndarray:
    """Downscale/upscale blur approximation; larger strength shrinks harder."""
    h, w = img.shape[:2]
    k = soften_factor(strength)
    small_w = max(1, round_half_up(w / float(k)))
    small_h = max(1, round_half_up(h / float(k)))
    small = backend.resample(img, small_w, small_h, smooth=smooth)
    return backend.resample(small, w, h, smooth=smooth)


def fit_to_bound(backend: RasterBackend, img: np.ndarray, max_dimension) -> Tuple[np.ndarray, float]:
    """Shrink so the longest side is at most `max_dimension`; returns (image, scale)."""
    h, w = img.shape[:2]
    if not max_dimension or max(h, w) <= max_dimension:
        return img, 1.0
    scale = float(max_dimension) / float(max(h, w))
    nw = max(1, round_half_up(w * scale))
    nh = max(1, round_half_up(h * scale))
    return backend.resample(img, nw, nh, smooth=True), scale


def solid_color(img: np.ndarray, color: Sequence[int]):
    """Adapt an RGB/BGR triple to the channel count of `img`."""
    if img.ndim == 2:
        return int(color[0])
    channels = img.shape[2]
    vals = list(color)[:channels]
    while len(vals) < channels:
        vals.append(255)
    return tuple(int(v) for v in vals)
