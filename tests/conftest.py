import cv2
import numpy as np
import pytest

from anonymizer.detectors import StaticDetector
from anonymizer.initializer import ModelInitializer
from anonymizer.raster import NumpyBackend, OpenCVBackend


@pytest.fixture
def noise_image():
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(100, 100, 3), dtype=np.uint8)


@pytest.fixture
def large_noise_image():
    rng = np.random.default_rng(99)
    return rng.integers(0, 256, size=(200, 200, 3), dtype=np.uint8)


@pytest.fixture(params=["numpy", "opencv"])
def backend(request):
    return NumpyBackend() if request.param == "numpy" else OpenCVBackend()


@pytest.fixture
def make_initializer():
    def _make(detector, timeout=5.0):
        return ModelInitializer(lambda: detector, timeout=timeout)
    return _make


@pytest.fixture
def one_face_detector():
    return StaticDetector({"fast": [(30, 30, 40, 40, 0.9)]})


@pytest.fixture
def png_bytes():
    img = np.full((120, 120, 3), 200, dtype=np.uint8)
    cv2.circle(img, (60, 60), 30, (40, 80, 160), -1)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return buf.tobytes()
