"""
Face anonymizer.

Finds faces with an escalating detector cascade and hides them with one of three
render modes (blur, pixelate, box). Public entry points:
- DetectionCascade.detect, merge_boxes, iou
- Renderer.render, build_mask
- AnonymizerSession (initialize / process / update / export)
- process_array: one-shot detect + render for a decoded image
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np

# Package logger
logger = logging.getLogger(__name__)
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(h)
logger.setLevel(logging.INFO)

from .boxes import Box, ScoredBox, iou, merge_boxes  # noqa: E402
from .cascade import DetectionCascade  # noqa: E402
from .codec import decode_image, encode_image, export_raster  # noqa: E402
from .config import AnonymizerConfig, CascadeSettings  # noqa: E402
from .detectors import DnnFaceDetector, FaceDetector, StaticDetector  # noqa: E402
from .errors import (  # noqa: E402
    AnonymizerError,
    DetectionFailure,
    InitializationFailure,
    InvalidInput,
    SessionBusy,
    UnsupportedCapability,
)
from .initializer import InitResult, ModelInitializer, get_default_initializer  # noqa: E402
from .mask import build_mask  # noqa: E402
from .raster import NumpyBackend, OpenCVBackend, RenderCapabilities, probe_capabilities  # noqa: E402
from .render import Mode, RenderParams, Renderer  # noqa: E402
from .session import AnonymizerSession, SessionState  # noqa: E402


def process_array(
    img: np.ndarray,
    mode="blur",
    params: Optional[RenderParams] = None,
    session: Optional[AnonymizerSession] = None,
) -> Tuple[np.ndarray, List[Box]]:
    """Detect and anonymize faces in `img`; returns (rendered image, boxes)."""
    session = session or AnonymizerSession()
    session.mode = Mode.parse(mode)
    if params is not None:
        session.params = params
    boxes = session.process(img)
    return session.result, boxes


__all__ = [
    "AnonymizerConfig",
    "AnonymizerError",
    "AnonymizerSession",
    "Box",
    "CascadeSettings",
    "DetectionCascade",
    "DetectionFailure",
    "DnnFaceDetector",
    "FaceDetector",
    "InitResult",
    "InitializationFailure",
    "InvalidInput",
    "Mode",
    "ModelInitializer",
    "NumpyBackend",
    "OpenCVBackend",
    "RenderCapabilities",
    "RenderParams",
    "Renderer",
    "ScoredBox",
    "SessionBusy",
    "SessionState",
    "StaticDetector",
    "UnsupportedCapability",
    "build_mask",
    "decode_image",
    "encode_image",
    "export_raster",
    "get_default_initializer",
    "iou",
    "merge_boxes",
    "probe_capabilities",
    "process_array",
]
