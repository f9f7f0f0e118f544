"""Command line: `python -m anonymizer process|detect ...`."""

from __future__ import annotations

import argparse
import json
import logging

from pathlib import Path
from typing import List, Optional

import cv2

from .config import AnonymizerConfig, CascadeSettings
from .errors import AnonymizerError
from .initializer import dnn_initializer
from .render import Mode, RenderParams
from .session import AnonymizerSession

logger = logging.getLogger(__name__)


def _add_common(p: argparse.ArgumentParser) -> None:
    d = CascadeSettings()
    p.add_argument("input", help="Input image file")
    p.add_argument("--model-dir", default=None, help="Directory holding the DNN model files")
    p.add_argument("--prefer-cuda", action="store_true", help="Try the CUDA DNN backend first")
    p.add_argument("--init-timeout", type=float, default=None, help="Seconds to wait for model loading")
    p.add_argument("--max-dimension", type=int, default=None, help="Longest image side before detection (0 = keep)")
    p.add_argument("--fast-threshold", type=float, default=d.fast_score_threshold, help="Fast profile score threshold")
    p.add_argument("--fast-input-size", type=int, default=d.fast_input_size, help="Fast profile network input size")
    p.add_argument("--accurate-confidence", type=float, default=d.accurate_min_confidence, help="Accurate profile min confidence")
    p.add_argument("--fast-min-count", type=int, default=d.fast_min_count, help="Run the accurate profile below this many faces")
    p.add_argument("--upscale-min-count", type=int, default=d.upscale_min_count, help="Run the upscaled pass below this many faces")
    p.add_argument("--small-face-ratio", type=float, default=d.small_face_ratio, help="Area fraction that counts as a small face")
    p.add_argument("--upscale-factor", type=float, default=d.upscale_factor, help="Upscale factor for the small-face pass")
    p.add_argument("--merge-iou", type=float, default=d.merge_iou, help="IoU above which boxes are treated as duplicates")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="anonymizer", description="Detect and anonymize faces in images")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_proc = sub.add_parser("process", help="Anonymize faces in an image")
    _add_common(p_proc)
    p_proc.add_argument("output", help="Output image file (format from extension)")
    p_proc.add_argument("--mode", default="blur", help="Anonymization mode: blur|pixelate|box")
    p_proc.add_argument("--blur-radius", type=int, default=12, help="Blur intensity 4..40")
    p_proc.add_argument("--pixel-size", type=int, default=16, help="Pixel block size 4..40")

    p_det = sub.add_parser("detect", help="Print detected face boxes as JSON")
    _add_common(p_det)
    return parser


def config_from_args(args: argparse.Namespace) -> AnonymizerConfig:
    cfg = AnonymizerConfig.from_env()
    cfg.cascade = CascadeSettings(
        fast_score_threshold=args.fast_threshold,
        fast_input_size=args.fast_input_size,
        accurate_min_confidence=args.accurate_confidence,
        fast_min_count=args.fast_min_count,
        upscale_min_count=args.upscale_min_count,
        small_face_ratio=args.small_face_ratio,
        upscale_factor=args.upscale_factor,
        merge_iou=args.merge_iou,
    )
    if args.model_dir:
        cfg.model_dir = Path(args.model_dir).expanduser().resolve()
    if args.prefer_cuda:
        cfg.prefer_cuda = True
    if args.init_timeout is not None:
        cfg.init_timeout = args.init_timeout
    if args.max_dimension is not None:
        cfg.max_dimension = args.max_dimension or None
    return cfg


def main(argv: Optional[List[str]] = None, session: Optional[AnonymizerSession] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger("anonymizer").setLevel(logging.DEBUG)
    try:
        cfg = config_from_args(args)
    except ValueError as ex:
        logger.error("Invalid settings: %s", ex)
        return 2
    img = cv2.imread(str(Path(args.input).expanduser()), cv2.IMREAD_COLOR)
    if img is None:
        logger.error("Cannot read input image: %s", args.input)
        return 1
    if session is None:
        session = AnonymizerSession(initializer=dnn_initializer(cfg), config=cfg)
    try:
        if args.cmd == "process":
            session.mode = Mode.parse(args.mode)
            session.params = RenderParams(args.blur_radius, args.pixel_size)
        boxes = session.process(img)
    except AnonymizerError as ex:
        logger.error("%s: %s", ex.__class__.__name__, ex)
        return 1

    if args.cmd == "detect":
        print(json.dumps({"faces": len(boxes), "boxes": [b.to_dict() for b in boxes]}))
        return 0
    out_p = Path(args.output)
    out_p.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(out_p), session.result):
        logger.error("Cannot write output image: %s", out_p)
        return 1
    print(f"output: {out_p}   faces_detected: {len(boxes)}")
    return 0


