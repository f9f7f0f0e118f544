"""
One-time detector initialization.

Loading runs once on a background worker; every caller shares the same Future,
so concurrent callers wait on the in-flight load instead of starting another.
A failed or timed-out load is remembered and never retried implicitly.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Optional

from .config import AnonymizerConfig
from .detectors import DnnFaceDetector, FaceDetector
from .errors import InitializationFailure

logger = logging.getLogger(__name__)

DEFAULT_INIT_TIMEOUT = 20.0


@dataclass(frozen=True)
class InitResult:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def ready(cls) -> "InitResult":
        return cls(True)

    @classmethod
    def failed(cls, reason: str) -> "InitResult":
        return cls(False, reason)


class ModelInitializer:
    def __init__(self, factory: Callable[[], FaceDetector], timeout: float = DEFAULT_INIT_TIMEOUT):
        self._factory = factory
        self.timeout = timeout
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._result: Optional[InitResult] = None
        self._detector: Optional[FaceDetector] = None

    def start(self) -> Future:
        """Kick off loading (first call only) and return the shared Future."""
        with self._lock:
            if self._future is None:
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="anonymizer-init")
                self._future = executor.submit(self._factory)
                executor.shutdown(wait=False)
            return self._future

    def initialize(self) -> InitResult:
        future = self.start()
        with self._lock:
            if self._result is not None:
                return self._result
        try:
            detector = future.result(timeout=self.timeout)
        except FutureTimeout:
            result = InitResult.failed(f"model initialization timed out after {self.timeout:g}s")
        except Exception as ex:
            result = InitResult.failed(str(ex) or ex.__class__.__name__)
        else:
            result = InitResult.ready()
        with self._lock:
            if self._result is None:
                self._result = result
                if result.ok:
                    self._detector = detector
                    logger.info("Face detector ready")
                else:
                    logger.error("Face detector initialization failed: %s", result.reason)
            return self._result

    @property
    def ready(self) -> bool:
        return self._result is not None and self._result.ok

    def detector(self) -> FaceDetector:
        """The loaded detector; raises InitializationFailure unless initialize() succeeded."""
        result = self.initialize()
        if not result.ok:
            raise InitializationFailure(result.reason or "initialization failed")
        assert self._detector is not None
        return self._detector


def dnn_initializer(config: AnonymizerConfig) -> ModelInitializer:
    return ModelInitializer(
        lambda: DnnFaceDetector.load(config.model_dir, prefer_cuda=config.prefer_cuda),
        timeout=config.init_timeout,
    )


_default_lock = threading.Lock()
_default: Optional[ModelInitializer] = None


def get_default_initializer(config: Optional[AnonymizerConfig] = None) -> ModelInitializer:
    """Process-wide initializer for the OpenCV DNN detector, created on first use."""
    global _default
    with _default_lock:
        if _default is None:
            _default = dnn_initializer(config or AnonymizerConfig.from_env())
        return _default
