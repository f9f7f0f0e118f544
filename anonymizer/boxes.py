"""
Face rectangles and the overlap-based merge used to combine detector passes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np

IOU_EPS = 1e-9
DEFAULT_MERGE_IOU = 0.3


def round_half_up(v: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""
    return int(math.floor(v + 0.5))


@dataclass(frozen=True)
class Box:
    """Integer pixel rectangle, top-left origin."""

    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def as_xyxy(self):
        return (self.x, self.y, self.right, self.bottom)

    def clamp(self, img_w: int, img_h: int) -> Optional["Box"]:
        """Intersect with the image bounds; None when nothing with positive size is left."""
        x0 = max(0, min(img_w, self.x))
        y0 = max(0, min(img_h, self.y))
        x1 = max(0, min(img_w, self.right))
        y1 = max(0, min(img_h, self.bottom))
        if x1 <= x0 or y1 <= y0:
            return None
        return Box(x0, y0, x1 - x0, y1 - y0)

    def inflate(self, pad: int, img_w: int, img_h: int) -> Optional["Box"]:
        grown = Box(self.x - pad, self.y - pad, self.width + 2 * pad, self.height + 2 * pad)
        return grown.clamp(img_w, img_h)

    def to_dict(self):
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class ScoredBox:
    """Detector candidate in (possibly fractional) pixel coordinates plus its confidence."""

    x: float
    y: float
    width: float
    height: float
    score: float = 1.0

    @property
    def area(self) -> float:
        return self.width * self.height

    def scaled(self, factor: float) -> "ScoredBox":
        """Map back from an image that was resized by `factor`."""
        return ScoredBox(self.x / factor, self.y / factor, self.width / factor, self.height / factor, self.score)

    def rounded(self) -> Box:
        return Box(
            round_half_up(self.x),
            round_half_up(self.y),
            round_half_up(self.width),
            round_half_up(self.height),
        )


BoxLike = Union[Box, ScoredBox]


def to_box(b: BoxLike) -> Box:
    return b.rounded() if isinstance(b, ScoredBox) else b


def iou(a: BoxLike, b: BoxLike) -> float:
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.x + a.width, b.x + b.width)
    y2 = min(a.y + a.height, b.y + b.height)
    inter = max(0, x2 - x1) * max(0, y2 - y1)
    return float(inter / (a.width * a.height + b.width * b.height - inter + IOU_EPS))


def merge_boxes(a: Iterable[BoxLike], b: Iterable[BoxLike], iou_threshold: float = DEFAULT_MERGE_IOU) -> List[Box]:
    """Union of two candidate lists with overlapping duplicates removed.

    Boxes are ranked by area (largest first, stable so earlier boxes win ties) and
    a box survives only if its IOU against every survivor so far is <= iou_threshold.
    """
    rects: List[Box] = [to_box(r) for r in a] + [to_box(r) for r in b]
    if not rects:
        return []
    arr = np.array([r.as_xyxy() for r in rects], dtype=np.float64)
    x1 = arr[:, 0]; y1 = arr[:, 1]
    x2 = arr[:, 2]; y2 = arr[:, 3]
    areas = (x2 - x1) * (y2 - y1)
    order = np.argsort(-areas, kind="stable")
    keep: List[Box] = []
    while order.size > 0:
        i = order[0]
        keep.append(rects[i])
        rest = order[1:]
        xx1 = np.maximum(x1[i], x1[rest])
        yy1 = np.maximum(y1[i], y1[rest])
        xx2 = np.minimum(x2[i], x2[rest])
        yy2 = np.minimum(y2[i], y2[rest])
        inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
        ovr = inter / (areas[i] + areas[rest] - inter + IOU_EPS)
        order = rest[ovr <= iou_threshold]
    return keep


def clamp_boxes(boxes: Sequence[BoxLike], img_w: int, img_h: int) -> List[Box]:
    """Round, clip to the image and drop anything left without positive size."""
    out: List[Box] = []
    for b in boxes:
        c = to_box(b).clamp(img_w, img_h)
        if c is not None:
            out.append(c)
    return out


def largest_box(boxes: Sequence[Box]) -> Box:
    """First box with the greatest area."""
    best = boxes[0]
    for b in boxes[1:]:
        if b.area > best.area:
            best = b
    return best
