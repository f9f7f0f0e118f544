"""
Detection escalation cascade.

The fast profile runs first. The accurate profile only runs when the fast pass
finds too few faces, and an upscaled accurate pass only runs when the result
is still thin or contains suspiciously small faces.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .boxes import Box, ScoredBox, clamp_boxes, merge_boxes, round_half_up
from .config import CascadeSettings
from .detectors import DetectionProfile, FaceDetector, accurate_profile, fast_profile
from .errors import DetectionFailure, InvalidInput
from .raster import OpenCVBackend, RasterBackend, RenderCapabilities

logger = logging.getLogger(__name__)


def validate_image(img) -> np.ndarray:
    """Reject anything that cannot go through the cascade."""
    if img is None:
        raise InvalidInput("no image")
    if not isinstance(img, np.ndarray):
        raise InvalidInput(f"expected numpy array, got {type(img).__name__}")
    if img.ndim not in (2, 3) or (img.ndim == 3 and img.shape[2] not in (1, 3, 4)):
        raise InvalidInput(f"unsupported image shape {img.shape}")
    if img.shape[0] == 0 or img.shape[1] == 0:
        raise InvalidInput(f"degenerate image size {img.shape[1]}x{img.shape[0]}")
    if img.dtype != np.uint8:
        raise InvalidInput(f"unsupported image dtype {img.dtype}")
    return img


class DetectionCascade:
    def __init__(
        self,
        detector: FaceDetector,
        settings: Optional[CascadeSettings] = None,
        backend: Optional[RasterBackend] = None,
        capabilities: Optional[RenderCapabilities] = None,
    ):
        self.detector = detector
        self.settings = settings or CascadeSettings()
        self.backend = backend or OpenCVBackend()
        self.capabilities = capabilities or RenderCapabilities()
        self.fast = fast_profile(self.settings.fast_score_threshold, self.settings.fast_input_size)
        self.accurate = accurate_profile(self.settings.accurate_min_confidence)

    def _run(self, img: np.ndarray, profile: DetectionProfile) -> List[ScoredBox]:
        try:
            found = list(self.detector.detect(img, profile))
        except Exception as ex:
            raise DetectionFailure(f"{profile.name} detector pass failed: {ex}") from ex
        logger.debug("%s pass on %dx%d: %d boxes", profile.name, img.shape[1], img.shape[0], len(found))
        return found

    def _has_small_face(self, rects: List[ScoredBox], img_area: int) -> bool:
        limit = img_area * self.settings.small_face_ratio
        return any(r.area < limit for r in rects)

    def _upscaled_pass(self, img: np.ndarray) -> List[ScoredBox]:
        factor = self.settings.upscale_factor
        h, w = img.shape[:2]
        up = self.backend.resample(img, round_half_up(w * factor), round_half_up(h * factor), smooth=self.capabilities.smooth_filter)
        return [r.scaled(factor) for r in self._run(up, self.accurate)]

    def detect(self, img: np.ndarray) -> List[Box]:
        validate_image(img)
        s = self.settings
        h, w = img.shape[:2]

        current = self._run(img, self.fast)
        stages = [f"fast={len(current)}"]
        if len(current) < s.fast_min_count:
            accurate = self._run(img, self.accurate)
            stages.append(f"accurate={len(accurate)}")
            if len(accurate) > len(current):
                current = accurate

        small = self._has_small_face(current, w * h)
        if len(current) < s.upscale_min_count or small:
            mapped = self._upscaled_pass(img)
            stages.append(f"upscaled={len(mapped)}{' (small faces)' if small else ''}")
            # merge clipped boxes: survivors must stay under merge_iou after clipping
            boxes = merge_boxes(clamp_boxes(current, w, h), clamp_boxes(mapped, w, h), s.merge_iou)
        else:
            boxes = clamp_boxes(current, w, h)

        logger.info("Cascade %s -> %d faces", ", ".join(stages), len(boxes))
        return boxes
