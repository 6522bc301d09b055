from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .config import DetectorSettings
from .metadata import COCO_CLASS_NAMES, load_class_names
from .postprocess import YoloPostConfig, YoloPostprocessor
from .preprocess import PreprocessResult, preprocess
from .types import Detection
from .visualize import AnnotationStyle, LabelFont, draw_detections, load_font

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Best-effort project root discovery, used to resolve relative model paths.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    # If a file is provided, start from its directory.
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against:
      - `root` if provided
      - project root (auto) otherwise
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PipelineResult:
    detections: List[Detection]
    annotated: np.ndarray
    prep: PreprocessResult


class YoloPipeline:
    """
    Preprocess (square resize) -> inference -> decode -> NMS -> annotate.

    Holds only read-only state after construction, so one instance can serve
    concurrent requests as long as `infer_fn` is thread-safe.

    Boxes are drawn on the original image by default (`annotate_on="original"`),
    since decoded boxes are in original-image coordinates. This intentionally
    differs from drawing on the resized detection input, which misplaces boxes
    unless the source is already S x S. `annotate_on="resized"` draws on the
    square model input instead, mapping the boxes back into it.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], np.ndarray],
        *,
        backend: Optional[object] = None,
        input_size: int = 640,
        interpolation: str = "cubic",
        class_names: Sequence[str] = COCO_CLASS_NAMES,
        post_cfg: YoloPostConfig = YoloPostConfig(),
        style: AnnotationStyle = AnnotationStyle(),
        annotate_on: str = "original",
    ):
        if annotate_on not in ("original", "resized"):
            raise ValueError(f"annotate_on must be 'original' or 'resized', got {annotate_on!r}")
        self._infer_fn = infer_fn
        self.backend = backend
        self.input_size = int(input_size)
        self.interpolation = interpolation
        self.class_names = tuple(class_names)
        self.post = YoloPostprocessor(post_cfg, class_names=self.class_names)
        self.style = style
        # Font problems surface here, at startup, not per request.
        self.font: LabelFont = load_font(style)
        self.annotate_on = annotate_on

    def preprocess(self, image_bgr: np.ndarray) -> PreprocessResult:
        return preprocess(image_bgr, size=self.input_size, interpolation=self.interpolation)

    def detect(self, image_bgr: np.ndarray) -> Tuple[List[Detection], PreprocessResult]:
        t0 = time.perf_counter()
        prep = self.preprocess(image_bgr)
        t1 = time.perf_counter()
        preds = self._infer_fn(prep.blob)
        t2 = time.perf_counter()
        detections = self.post.process(preds, orig_size=prep.orig_size, input_size=prep.input_size)
        t3 = time.perf_counter()
        LOGGER.debug(
            "preprocess=%.1fms inference=%.1fms postprocess=%.1fms detections=%d",
            (t1 - t0) * 1000.0,
            (t2 - t1) * 1000.0,
            (t3 - t2) * 1000.0,
            len(detections),
        )
        return detections, prep

    def annotate(self, image_bgr: np.ndarray, detections: Sequence[Detection], prep: PreprocessResult) -> np.ndarray:
        if self.annotate_on == "resized":
            orig_w, orig_h = prep.orig_size
            scale = (prep.input_size / orig_w, prep.input_size / orig_h)
            return draw_detections(prep.resized, detections, font=self.font, style=self.style, scale=scale)
        return draw_detections(image_bgr, detections, font=self.font, style=self.style)

    def run(self, image_bgr: np.ndarray) -> PipelineResult:
        detections, prep = self.detect(image_bgr)
        annotated = self.annotate(image_bgr, detections, prep)
        return PipelineResult(detections=detections, annotated=annotated, prep=prep)

    def __call__(self, image_bgr: np.ndarray) -> List[Detection]:
        detections, _ = self.detect(image_bgr)
        return detections


def pipeline_from_settings(
    settings: DetectorSettings,
    infer_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    *,
    root: Optional[PathLike] = "auto",
) -> YoloPipeline:
    """
    Build a pipeline from settings.

    Without `infer_fn`, the ONNX model at `settings.model_path` is loaded
    (relative paths resolve against the project root).
    """

    if settings.metadata_path:
        class_names = load_class_names(resolve_path(settings.metadata_path, root=root))
    else:
        class_names = COCO_CLASS_NAMES

    backend = None
    if infer_fn is None:
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        backend = OnnxRuntimeBackend(
            resolve_path(settings.model_path, root=root),
            OnnxRuntimeBackendConfig(input_name=settings.input_name, output_name=settings.output_name),
        )
        infer_fn = backend.infer

    return YoloPipeline(
        infer_fn,
        backend=backend,
        input_size=settings.input_size,
        interpolation=settings.interpolation,
        class_names=class_names,
        post_cfg=YoloPostConfig(
            conf_threshold=settings.conf_threshold,
            iou_threshold=settings.iou_threshold,
            max_detections=settings.max_detections,
            class_agnostic_nms=settings.class_agnostic_nms,
        ),
        style=AnnotationStyle(
            font_scale=settings.font_scale,
            font_thickness=settings.font_thickness,
            label_offset=settings.label_offset,
        ),
        annotate_on=settings.annotate_on,
    )


_SHARED_LOCK = threading.Lock()
_SHARED: Optional[Tuple[DetectorSettings, YoloPipeline]] = None


def get_shared_pipeline(
    settings: DetectorSettings,
    infer_fn: Optional[Callable[[np.ndarray], np.ndarray]] = None,
) -> YoloPipeline:
    """
    Process-wide pipeline, built once on first use and reused afterwards.

    Asking for different settings after initialization is an error; call
    `reset_shared_pipeline` first if that is really intended.
    """

    global _SHARED
    with _SHARED_LOCK:
        if _SHARED is None:
            _SHARED = (settings, pipeline_from_settings(settings, infer_fn))
        elif _SHARED[0] != settings:
            raise RuntimeError("Shared pipeline already initialized with different settings")
        return _SHARED[1]


def reset_shared_pipeline() -> None:
    global _SHARED
    with _SHARED_LOCK:
        _SHARED = None
