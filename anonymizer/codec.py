"""Image decode/encode through OpenCV's codecs."""

from __future__ import annotations

import numpy as np
import cv2

from .errors import InvalidInput

ENCODE_EXTS = (".png", ".jpg", ".jpeg", ".webp", ".bmp", ".tif", ".tiff")


def decode_image(data: bytes) -> np.ndarray:
    if not data:
        raise InvalidInput("empty file")
    nparr = np.frombuffer(data, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise InvalidInput("invalid image")
    return img


def encode_image(img: np.ndarray, ext: str = ".png") -> bytes:
    ext = ext.lower() if ext.startswith(".") else "." + ext.lower()
    if ext not in ENCODE_EXTS:
        raise InvalidInput(f"unsupported export format {ext}")
    ok, buf = cv2.imencode(ext, img)
    if not ok:
        raise RuntimeError(f"encode error ({ext})")
    return buf.tobytes()


def export_raster(img: np.ndarray, ext: str = ".png") -> bytes:
    """Encode a rendered image for download (PNG unless asked otherwise)."""
    return encode_image(img, ext)
