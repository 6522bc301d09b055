from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from .config import CONFIG_ENV_VAR, DetectorSettings, load_settings, settings_from_dict
from .errors import YoloAnnotateError
from .image_io import load_image, save_image
from .runtime import get_shared_pipeline
from .service import DetectionService, ImageStore

LOGGER = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    log_level = getattr(logging, level.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level: {level}")
    if json_format:
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=[handler], force=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yolo-annotate",
        description="Detect objects with a YOLOv8 ONNX model and write an annotated copy of the image.",
    )
    parser.add_argument("--config", default=None, help=f"Settings JSON (default: ${CONFIG_ENV_VAR} if set).")
    parser.add_argument("--model", dest="model_path", default=None, help="Path to the YOLOv8 .onnx model.")
    parser.add_argument("--metadata", dest="metadata_path", default=None, help="Class names file (names: mapping).")
    parser.add_argument("--imgsz", dest="input_size", type=int, default=None, help="Square model input size.")
    parser.add_argument("--conf", dest="conf_threshold", type=float, default=None, help="Confidence threshold.")
    parser.add_argument("--iou", dest="iou_threshold", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument(
        "--per-class-nms",
        action="store_true",
        help="Only let boxes of the same class suppress each other.",
    )
    parser.add_argument("--upload-dir", dest="upload_dir", default=None, help="Where submitted images are stored.")
    parser.add_argument("--output-dir", dest="output_dir", default=None, help="Where processed images are written.")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR.")
    parser.add_argument("--log-json", action="store_true", help="Emit one JSON object per log line.")

    sub = parser.add_subparsers(dest="command", required=True)

    annotate = sub.add_parser("annotate", help="Run detection on one image and save the annotated result.")
    annotate.add_argument("--image", required=True, help="Path to an input image.")
    annotate.add_argument("--out", required=True, help="Output image path (extension picks the format).")

    submit = sub.add_parser("submit", help="Store an image and print its id.")
    submit.add_argument("--image", required=True, help="Path to an input image.")

    process = sub.add_parser("process", help="Process a stored image by id and print the result as JSON.")
    process.add_argument("image_id", help="Id printed by `submit`.")

    return parser


_OVERRIDE_KEYS = (
    "model_path",
    "metadata_path",
    "input_size",
    "conf_threshold",
    "iou_threshold",
    "upload_dir",
    "output_dir",
)


def resolve_settings(args: argparse.Namespace) -> DetectorSettings:
    config_path = args.config or os.environ.get(CONFIG_ENV_VAR)
    settings = load_settings(Path(config_path)) if config_path else DetectorSettings()

    overrides: Dict[str, object] = {k: getattr(args, k) for k in _OVERRIDE_KEYS if getattr(args, k) is not None}
    if args.per_class_nms:
        overrides["class_agnostic_nms"] = False
    return settings_from_dict(overrides, base=settings) if overrides else settings


def _run_annotate(args: argparse.Namespace, settings: DetectorSettings) -> int:
    pipeline = get_shared_pipeline(settings)
    image = load_image(args.image)
    result = pipeline.run(image)
    save_image(result.annotated, args.out)
    for det in result.detections:
        x1, y1, x2, y2 = det.as_xyxy()
        print(f"{det.caption()} [{x1:.1f}, {y1:.1f}, {x2:.1f}, {y2:.1f}]")
    LOGGER.info("wrote %s (%d detections)", args.out, len(result.detections))
    return 0


def _run_submit(args: argparse.Namespace, settings: DetectorSettings) -> int:
    path = Path(args.image)
    content_type, _ = mimetypes.guess_type(path.name)
    store = ImageStore(settings.upload_dir)
    # Submitting does not need the model.
    result = DetectionService(store, settings.output_dir).submit(path.read_bytes(), path.name, content_type)
    if result.code != 200:
        print(result.message, file=sys.stderr)
        return 1
    print(result.image_id)
    return 0


def _run_process(args: argparse.Namespace, settings: DetectorSettings) -> int:
    service = DetectionService(
        ImageStore(settings.upload_dir),
        settings.output_dir,
        pipeline=get_shared_pipeline(settings),
    )
    result = service.process(args.image_id)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.ok else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(args.log_level, json_format=args.log_json)
    except ValueError as e:
        parser.error(str(e))

    try:
        settings = resolve_settings(args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    commands = {
        "annotate": _run_annotate,
        "submit": _run_submit,
        "process": _run_process,
    }
    try:
        return commands[args.command](args, settings)
    except (YoloAnnotateError, OSError) as e:
        LOGGER.error("%s: %s", type(e).__name__, e)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
