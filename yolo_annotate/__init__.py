"""
YOLOv8 object detection with annotated output images.

Square-resize preprocessing, anchor-layout decoding, greedy NMS and box/label
drawing around an opaque `infer(blob) -> output` callable. ONNX Runtime is
the bundled backend; everything else needs only NumPy and OpenCV.
"""

from .types import BoundingBox, Detection
from .errors import (
    AnnotationError,
    FontLoadError,
    ImageDecodeError,
    ImageEncodeError,
    ImageNotFound,
    InferenceError,
    InvalidImage,
    ModelLoadError,
    UnknownClass,
    YoloAnnotateError,
)
from .preprocess import preprocess, resize_square, to_blob
from .nms import NMSConfig, box_iou, nms, suppress
from .postprocess import YoloPostprocessor, YoloPostConfig
from .metadata import COCO_CLASS_NAMES, load_class_names
from .visualize import AnnotationStyle, draw_detections, load_font
from .image_io import load_image, save_image
from .config import DetectorSettings, load_settings
from .runtime import YoloPipeline, get_shared_pipeline, pipeline_from_settings, resolve_path
from .service import DetectionService, ImageStore, ProcessResult, UploadResult

__all__ = [
    "AnnotationError",
    "BoundingBox",
    "Detection",
    "FontLoadError",
    "ImageDecodeError",
    "ImageEncodeError",
    "ImageNotFound",
    "InferenceError",
    "InvalidImage",
    "ModelLoadError",
    "UnknownClass",
    "YoloAnnotateError",
    "preprocess",
    "resize_square",
    "to_blob",
    "NMSConfig",
    "box_iou",
    "nms",
    "suppress",
    "YoloPostprocessor",
    "YoloPostConfig",
    "COCO_CLASS_NAMES",
    "load_class_names",
    "AnnotationStyle",
    "draw_detections",
    "load_font",
    "load_image",
    "save_image",
    "DetectorSettings",
    "load_settings",
    "YoloPipeline",
    "get_shared_pipeline",
    "pipeline_from_settings",
    "resolve_path",
    "DetectionService",
    "ImageStore",
    "ProcessResult",
    "UploadResult",
]
