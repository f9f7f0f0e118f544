"""
Runtime configuration.

All empirically tuned constants live here with their defaults so callers (CLI,
web app, tests) can override them without touching module state.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = Path(__file__).parent / "models"


@dataclass
class CascadeSettings:
    fast_score_threshold: float = 0.1
    fast_input_size: int = 512
    accurate_min_confidence: float = 0.15
    # escalate to the accurate profile below this many fast-pass boxes
    fast_min_count: int = 4
    # run the upscaled pass below this many boxes (or when a small face shows up)
    upscale_min_count: int = 6
    small_face_ratio: float = 0.001
    upscale_factor: float = 2.0
    merge_iou: float = 0.3

    def __post_init__(self) -> None:
        if self.upscale_factor <= 1.0:
            raise ValueError(f"upscale_factor must be > 1.0, got {self.upscale_factor}")
        if not 0.0 <= self.merge_iou <= 1.0:
            raise ValueError(f"merge_iou must be within [0, 1], got {self.merge_iou}")
        if self.fast_input_size <= 0:
            raise ValueError(f"fast_input_size must be positive, got {self.fast_input_size}")


@dataclass
class AnonymizerConfig:
    cascade: CascadeSettings = field(default_factory=CascadeSettings)
    # longest side of an input image before detection; None keeps the original size
    max_dimension: Optional[int] = 2048
    init_timeout: float = 20.0
    prefer_cuda: bool = False
    model_dir: Path = DEFAULT_MODEL_DIR
    fill_color: Tuple[int, int, int] = (0, 0, 0)

    @classmethod
    def from_env(cls, environ=None) -> "AnonymizerConfig":
        """Build a config from ANONYMIZER_* environment variables, ignoring malformed values."""
        env = os.environ if environ is None else environ
        cfg = cls()
        raw = env.get("ANONYMIZER_MAX_DIMENSION")
        if raw is not None:
            if raw.strip().lower() in ("", "0", "none", "off"):
                cfg.max_dimension = None
            else:
                try:
                    cfg.max_dimension = max(1, int(raw))
                except ValueError:
                    logger.warning("Ignoring invalid ANONYMIZER_MAX_DIMENSION=%r", raw)
        raw = env.get("ANONYMIZER_INIT_TIMEOUT")
        if raw is not None:
            try:
                cfg.init_timeout = max(0.0, float(raw))
            except ValueError:
                logger.warning("Ignoring invalid ANONYMIZER_INIT_TIMEOUT=%r", raw)
        raw = env.get("ANONYMIZER_PREFER_CUDA")
        if raw is not None:
            cfg.prefer_cuda = raw.strip().lower() in ("1", "true", "yes", "on")
        raw = env.get("ANONYMIZER_MODEL_DIR")
        if raw:
            cfg.model_dir = Path(raw).expanduser().resolve()
        return cfg
