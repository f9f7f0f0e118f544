"""
Face detector collaborators.

A detector maps (image, profile) to scored candidate boxes. Two profiles exist:
a fast low-threshold pass and a slower accurate pass with a low confidence
cutoff. DnnFaceDetector wraps OpenCV DNN models; StaticDetector returns canned
results for tests and offline runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .boxes import ScoredBox
from .errors import InitializationFailure

logger = logging.getLogger(__name__)

FAST = "fast"
ACCURATE = "accurate"

CAFFE_PROTO_NAMES = ("deploy.prototxt", "deploy.prototxt.txt")
CAFFE_WEIGHTS_NAME = "res10_300x300_ssd_iter_140000.caffemodel"
ONNX_MODEL_NAME = "scrfd_2.5g.onnx"

# res10 SSD was trained on 300x300; the accurate pass without SCRFD runs it larger
_ACCURATE_CAFFE_MAX_SIDE = 1024


@dataclass(frozen=True)
class DetectionProfile:
    name: str
    min_score: float
    input_size: Optional[int] = None


def fast_profile(min_score: float = 0.1, input_size: int = 512) -> DetectionProfile:
    return DetectionProfile(FAST, min_score, input_size)


def accurate_profile(min_confidence: float = 0.15) -> DetectionProfile:
    return DetectionProfile(ACCURATE, min_confidence, None)


class FaceDetector:
    """Interface: detect(image, profile) -> list of ScoredBox in image coordinates."""

    def detect(self, img: np.ndarray, profile: DetectionProfile) -> List[ScoredBox]:
        raise NotImplementedError


class StaticDetector(FaceDetector):
    """Deterministic detector returning canned boxes per profile name.

    Canned entries are ScoredBox or (x, y, w, h[, score]) tuples given in the
    coordinates of the image they will be reported for. Every call is recorded
    as (profile name, image shape) in `calls`.
    """

    def __init__(self, results: Optional[Dict[str, Sequence]] = None, error: Optional[Exception] = None):
        self.results: Dict[str, List[ScoredBox]] = {}
        for name, rects in (results or {}).items():
            self.results[name] = [self._coerce(r) for r in rects]
        self.error = error
        self.calls: List[Tuple[str, Tuple[int, ...]]] = []

    @staticmethod
    def _coerce(r) -> ScoredBox:
        if isinstance(r, ScoredBox):
            return r
        if len(r) == 4:
            return ScoredBox(float(r[0]), float(r[1]), float(r[2]), float(r[3]), 1.0)
        return ScoredBox(float(r[0]), float(r[1]), float(r[2]), float(r[3]), float(r[4]))

    def calls_for(self, name: str) -> int:
        return sum(1 for (n, _) in self.calls if n == name)

    def detect(self, img: np.ndarray, profile: DetectionProfile) -> List[ScoredBox]:
        self.calls.append((profile.name, tuple(img.shape)))
        if self.error is not None:
            raise self.error
        return [b for b in self.results.get(profile.name, []) if b.score >= profile.min_score]


def _as_bgr(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    return img


def _clip_rect(x1: float, y1: float, x2: float, y2: float, w: int, h: int, score: float) -> Optional[ScoredBox]:
    x1 = max(0.0, min(float(w), x1)); y1 = max(0.0, min(float(h), y1))
    x2 = max(0.0, min(float(w), x2)); y2 = max(0.0, min(float(h), y2))
    if x2 > x1 and y2 > y1:
        return ScoredBox(x1, y1, x2 - x1, y2 - y1, score)
    return None


def _configure_backend(net: cv2.dnn_Net, prefer_cuda: bool, probe_size: int = 300) -> str:
    """Pick the compute backend, falling back once from CUDA to the CPU path."""
    if prefer_cuda:
        try:
            net.setPreferableBackend(cv2.dnn.DNN_BACKEND_CUDA)
            net.setPreferableTarget(cv2.dnn.DNN_TARGET_CUDA)
            dummy = np.zeros((probe_size, probe_size, 3), dtype=np.uint8)
            net.setInput(cv2.dnn.blobFromImage(dummy, 1.0, (probe_size, probe_size)))
            net.forward()
            return "cuda"
        except cv2.error as ex:
            logger.warning("CUDA backend unavailable (%s); falling back to CPU", ex)
    net.setPreferableBackend(cv2.dnn.DNN_BACKEND_OPENCV)
    net.setPreferableTarget(cv2.dnn.DNN_TARGET_CPU)
    return "cpu"


class DnnFaceDetector(FaceDetector):
    """OpenCV DNN face detector.

    FAST runs the res10 SSD (Caffe) at the profile's square input size. ACCURATE
    runs SCRFD (ONNX) when the model file is present, otherwise the res10 SSD at
    close to native resolution.
    """

    def __init__(self, caffe_net: cv2.dnn_Net, onnx_net: Optional[cv2.dnn_Net] = None, compute: str = "cpu"):
        self.caffe_net = caffe_net
        self.onnx_net = onnx_net
        self.compute = compute

    @classmethod
    def load(cls, model_dir: Path, prefer_cuda: bool = False) -> "DnnFaceDetector":
        model_dir = Path(model_dir)
        proto = None
        for name in CAFFE_PROTO_NAMES:
            p = model_dir / name
            if p.exists():
                proto = p
                break
        weights = model_dir / CAFFE_WEIGHTS_NAME
        if proto is None or not weights.exists():
            raise InitializationFailure(
                f"res10 SSD model files not found in {model_dir} (run scripts/fetch_dnn_models.py)"
            )
        try:
            caffe_net = cv2.dnn.readNetFromCaffe(str(proto), str(weights))
        except cv2.error as ex:
            raise InitializationFailure(f"Failed to load Caffe DNN net: {ex}") from ex
        compute = _configure_backend(caffe_net, prefer_cuda)
        logger.info("Loaded DNN detector from %s and %s (%s)", proto, weights, compute)

        onnx_net = None
        onnx_path = model_dir / ONNX_MODEL_NAME
        if onnx_path.exists():
            try:
                onnx_net = cv2.dnn.readNetFromONNX(str(onnx_path))
                _configure_backend(onnx_net, compute == "cuda", probe_size=640)
                logger.info("Loaded ONNX detector from %s", onnx_path)
            except cv2.error as ex:
                logger.warning("Failed to load ONNX net, accurate profile uses res10: %s", ex)
                onnx_net = None
        else:
            logger.debug("ONNX model not found (%s).", onnx_path)
        return cls(caffe_net, onnx_net, compute)

    def detect(self, img: np.ndarray, profile: DetectionProfile) -> List[ScoredBox]:
        bgr = _as_bgr(img)
        if profile.name == FAST:
            size = profile.input_size or 300
            return self._detect_caffe(bgr, (size, size), profile.min_score)
        if self.onnx_net is not None:
            return self._detect_onnx(bgr, profile.min_score)
        h, w = bgr.shape[:2]
        scale = min(1.0, _ACCURATE_CAFFE_MAX_SIDE / float(max(h, w)))
        size = (max(32, int(w * scale) // 32 * 32), max(32, int(h * scale) // 32 * 32))
        return self._detect_caffe(bgr, size, profile.min_score)

    def _detect_caffe(self, bgr: np.ndarray, size: Tuple[int, int], conf_thresh: float) -> List[ScoredBox]:
        h, w = bgr.shape[:2]
        blob = cv2.dnn.blobFromImage(bgr, 1.0, size, (104.0, 177.0, 123.0), swapRB=False, crop=False)
        self.caffe_net.setInput(blob)
        out = self.caffe_net.forward()
        rects: List[ScoredBox] = []
        for i in range(out.shape[2]):
            conf = float(out[0, 0, i, 2])
            if conf < conf_thresh:
                continue
            r = _clip_rect(
                float(out[0, 0, i, 3]) * w, float(out[0, 0, i, 4]) * h,
                float(out[0, 0, i, 5]) * w, float(out[0, 0, i, 6]) * h,
                w, h, conf,
            )
            if r is not None:
                rects.append(r)
        return rects

    def _detect_onnx(self, bgr: np.ndarray, conf_thresh: float) -> List[ScoredBox]:
        """Parser for SCRFD-like outputs laid out as rows of x1, y1, x2, y2, ..., score."""
        h, w = bgr.shape[:2]
        blob = cv2.dnn.blobFromImage(bgr, 1.0 / 255.0, (640, 640), (0, 0, 0), swapRB=True, crop=False)
        self.onnx_net.setInput(blob)
        arr = np.asarray(self.onnx_net.forward())
        if arr.ndim < 2 or arr.shape[-1] < 5:
            logger.debug("Unexpected ONNX output shape %s", arr.shape)
            return []
        rects: List[ScoredBox] = []
        for row in arr.reshape(-1, arr.shape[-1]):
            score = float(row[-1])
            if score < conf_thresh:
                continue
            x1, y1, x2, y2 = (float(v) for v in row[:4])
            if 0.0 <= x1 <= 1.0 and 0.0 <= x2 <= 1.0:
                x1 *= w; x2 *= w; y1 *= h; y2 *= h
            else:
                # absolute coordinates in the 640x640 network input
                x1 *= w / 640.0; x2 *= w / 640.0; y1 *= h / 640.0; y2 *= h / 640.0
            r = _clip_rect(x1, y1, x2, y2, w, h, score)
            if r is not None:
                rects.append(r)
        return rects
