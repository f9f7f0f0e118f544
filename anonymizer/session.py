"""
Edit session: one input image, its detected boxes and the current rendering.

State machine:
    IDLE -> INITIALIZING -> READY -> DETECTING -> RENDERED
    RENDERED -> RENDERED     (mode / parameter change, cached boxes re-rendered)
    RENDERED -> DETECTING    (new input image)
A failed initialization ends in FAILED; a failed detection drops back to READY.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import List, Optional

import numpy as np

from .boxes import Box
from .cascade import DetectionCascade, validate_image
from .codec import encode_image
from .config import AnonymizerConfig
from .errors import DetectionFailure, InitializationFailure, InvalidInput, SessionBusy
from .initializer import InitResult, ModelInitializer, get_default_initializer
from .raster import OpenCVBackend, RasterBackend, RenderCapabilities, fit_to_bound, probe_capabilities
from .render import Mode, RenderParams, Renderer

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    DETECTING = "detecting"
    RENDERED = "rendered"
    FAILED = "failed"


class AnonymizerSession:
    def __init__(
        self,
        initializer: Optional[ModelInitializer] = None,
        config: Optional[AnonymizerConfig] = None,
        backend: Optional[RasterBackend] = None,
        capabilities: Optional[RenderCapabilities] = None,
        mode=Mode.BLUR,
        params: Optional[RenderParams] = None,
    ):
        self.config = config or AnonymizerConfig()
        self.initializer = initializer or get_default_initializer(self.config)
        self.backend = backend or OpenCVBackend()
        self.capabilities = capabilities or probe_capabilities(self.backend)
        self.renderer = Renderer(self.backend, self.capabilities, fill_color=self.config.fill_color)
        self.mode = Mode.parse(mode)
        self.params = params or RenderParams()
        self.state = SessionState.IDLE
        self._busy = threading.Lock()
        self._image: Optional[np.ndarray] = None
        self._boxes: Optional[List[Box]] = None
        self._result: Optional[np.ndarray] = None

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    @property
    def image(self) -> Optional[np.ndarray]:
        return self._image

    @property
    def boxes(self) -> List[Box]:
        return list(self._boxes or [])

    @property
    def result(self) -> Optional[np.ndarray]:
        return self._result

    def initialize(self) -> InitResult:
        if self.state in (SessionState.IDLE, SessionState.INITIALIZING):
            self.state = SessionState.INITIALIZING
        result = self.initializer.initialize()
        if not result.ok:
            self.state = SessionState.FAILED
        elif self.state in (SessionState.INITIALIZING, SessionState.FAILED):
            self.state = SessionState.READY
        return result

    def process(self, img: np.ndarray) -> List[Box]:
        """Detect faces in a new image, cache them and render with the current settings."""
        if not self._busy.acquire(blocking=False):
            raise SessionBusy("an image is already being processed")
        try:
            validate_image(img)
            if not self.initializer.ready:
                result = self.initialize()
                if not result.ok:
                    raise InitializationFailure(result.reason or "initialization failed")
            work, scale = fit_to_bound(self.backend, img, self.config.max_dimension)
            if scale != 1.0:
                logger.info("Resized input %dx%d -> %dx%d", img.shape[1], img.shape[0], work.shape[1], work.shape[0])
            cascade = DetectionCascade(self.initializer.detector(), self.config.cascade, self.backend, self.capabilities)
            self.state = SessionState.DETECTING
            try:
                boxes = cascade.detect(work)
                result = self.renderer.render(work, boxes, self.mode, self.params)
            except Exception:
                self.state = SessionState.READY
                raise
            self._image = work
            self._boxes = boxes
            self._result = result
            self.state = SessionState.RENDERED
            return list(boxes)
        finally:
            self._busy.release()

    def update(self, mode=None, blur_radius: Optional[int] = None, pixel_block_size: Optional[int] = None) -> Optional[np.ndarray]:
        """Change mode/parameters and re-render the cached boxes (never re-detects).

        Settings are stored before the busy check, so a SessionBusy caller
        still changes what the next render uses.
        """
        if mode is not None:
            self.mode = Mode.parse(mode)
        if blur_radius is not None or pixel_block_size is not None:
            self.params = RenderParams(
                self.params.blur_radius if blur_radius is None else blur_radius,
                self.params.pixel_block_size if pixel_block_size is None else pixel_block_size,
            )
        if not self._busy.acquire(blocking=False):
            raise SessionBusy("an image is being processed")
        try:
            if self.state is not SessionState.RENDERED:
                return None
            self._result = self.renderer.render(self._image, self._boxes, self.mode, self.params)
            return self._result
        finally:
            self._busy.release()

    def export(self, ext: str = ".png") -> bytes:
        if self._result is None:
            raise InvalidInput("nothing rendered yet")
        return encode_image(self._result, ext)
