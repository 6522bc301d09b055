from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from .preprocess import INTERPOLATIONS

CONFIG_ENV_VAR = "YOLO_ANNOTATE_CONFIG"


@dataclass(frozen=True)
class DetectorSettings:
    model_path: str = "Models/yolov8m.onnx"
    # None uses the built-in COCO-80 table.
    metadata_path: Optional[str] = None
    input_size: int = 640
    conf_threshold: float = 0.5
    iou_threshold: float = 0.7
    class_agnostic_nms: bool = True
    # None keeps every surviving box.
    max_detections: Optional[int] = None
    interpolation: str = "cubic"
    # "original" or "resized"
    annotate_on: str = "original"
    upload_dir: str = "/tmp/uploaded"
    output_dir: str = "static"
    label_offset: int = 10
    font_scale: float = 0.5
    font_thickness: int = 1
    input_name: Optional[str] = "images"
    output_name: Optional[str] = "output0"

    def __post_init__(self) -> None:
        if self.input_size < 32:
            raise ValueError("input_size must be >= 32")
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")
        if self.interpolation not in INTERPOLATIONS:
            raise ValueError(f"interpolation must be one of {sorted(INTERPOLATIONS)}")
        if self.annotate_on not in ("original", "resized"):
            raise ValueError("annotate_on must be 'original' or 'resized'")
        if self.label_offset < 0:
            raise ValueError("label_offset must be >= 0")
        if self.font_scale <= 0:
            raise ValueError("font_scale must be > 0")
        if self.font_thickness < 1:
            raise ValueError("font_thickness must be >= 1")


_STR_KEYS = {"model_path", "interpolation", "annotate_on", "upload_dir", "output_dir"}
_OPTIONAL_STR_KEYS = {"metadata_path", "input_name", "output_name"}
_INT_KEYS = {"input_size", "label_offset", "font_thickness"}
_OPTIONAL_INT_KEYS = {"max_detections"}
_FLOAT_KEYS = {"conf_threshold", "iou_threshold", "font_scale"}
_BOOL_KEYS = {"class_agnostic_nms"}


def _coerce(key: str, value: Any) -> Any:
    if key in _STR_KEYS:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{key} must be a non-empty string")
        return value
    if key in _OPTIONAL_STR_KEYS:
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{key} must be a non-empty string or null")
        return value
    if key in _BOOL_KEYS:
        if not isinstance(value, bool):
            raise ValueError(f"{key} must be a boolean")
        return value
    if key in _OPTIONAL_INT_KEYS and value is None:
        return None
    if key in _INT_KEYS or key in _OPTIONAL_INT_KEYS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be an integer")
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{key} must be an integer")
        return int(value)
    if key in _FLOAT_KEYS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} must be a number")
        return float(value)
    raise ValueError(f"Unsupported settings key: {key}")


def settings_from_dict(payload: Dict[str, Any], base: DetectorSettings = DetectorSettings()) -> DetectorSettings:
    allowed = {f.name for f in fields(DetectorSettings)}
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown settings keys: {unknown}")

    values = {f.name: getattr(base, f.name) for f in fields(DetectorSettings)}
    for key, value in payload.items():
        values[key] = _coerce(key, value)
    return DetectorSettings(**values)


def load_settings(path: Path) -> DetectorSettings:
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid settings JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Settings must be a JSON object")
    return settings_from_dict(payload)
