from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InferenceError, UnknownClass
from .metadata import COCO_CLASS_NAMES
from .nms import NMSConfig, suppress
from .types import BoundingBox, Detection

LOGGER = logging.getLogger(__name__)

# Box parameters beyond this many input sides are malformed output, not detections.
MAX_BOX_EXTENT = 16.0


@dataclass(frozen=True)
class YoloPostConfig:
    """
    Thresholds for decoding and suppression.
    """

    conf_threshold: float = 0.5
    iou_threshold: float = 0.7
    # None keeps every surviving box.
    max_detections: Optional[int] = None
    # If False, runs per-class NMS then merges results by score.
    class_agnostic_nms: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError(f"conf_threshold must be in [0, 1], got {self.conf_threshold}")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")

    def nms_config(self) -> NMSConfig:
        return NMSConfig(
            iou_threshold=self.iou_threshold,
            max_detections=self.max_detections,
            class_agnostic=self.class_agnostic_nms,
        )


class YoloPostprocessor:
    """
    Post-process for anchor-layout YOLOv8 exports.

    Supported layout (per image): (4 + C, A), e.g. 84 x 8400 for COCO, where
    each anchor column is [cx, cy, w, h, class_scores...] in model-input pixels.
    A leading batch axis of size 1 is accepted and dropped.
    """

    def __init__(self, cfg: YoloPostConfig = YoloPostConfig(), class_names: Sequence[str] = COCO_CLASS_NAMES):
        if not class_names:
            raise ValueError("class_names must not be empty")
        self.cfg = cfg
        self.class_names = tuple(class_names)

    def process(self, preds: np.ndarray, orig_size: Tuple[int, int], input_size: int) -> List[Detection]:
        """
        Decode then suppress: raw model output -> final detections, highest score first.
        """

        candidates = self.decode(preds, orig_size, input_size)
        final = suppress(candidates, self.cfg.nms_config())
        LOGGER.debug("nms kept %d of %d candidates", len(final), len(candidates))
        return final

    def decode(self, preds: np.ndarray, orig_size: Tuple[int, int], input_size: int) -> List[Detection]:
        """
        Convert raw output into thresholded candidates in original image coordinates.

        Args:
            preds: model output for a single image, (1, 4 + C, A) or (4 + C, A)
            orig_size: (width, height) of the image before resizing
            input_size: side of the square model input the image was resized to

        The output is unordered and not deduplicated.
        """

        orig_w, orig_h = orig_size
        if input_size <= 0 or orig_w <= 0 or orig_h <= 0:
            raise ValueError(f"Invalid sizes: orig_size={orig_size}, input_size={input_size}")

        boxes, scores, class_ids = self._decode(preds)

        # Filter by score
        keep = scores >= self.cfg.conf_threshold
        boxes, scores, class_ids = boxes[keep], scores[keep], class_ids[keep]
        if scores.size == 0:
            return []

        limit = MAX_BOX_EXTENT * input_size
        if np.abs(boxes).max() > limit:
            raise InferenceError(f"Box parameters exceed {limit:g} model pixels; output looks malformed")

        # Scale cx, w by width and cy, h by height independently.
        sx = orig_w / float(input_size)
        sy = orig_h / float(input_size)
        boxes = boxes.astype(np.float64)
        boxes[:, [0, 2]] *= sx
        boxes[:, [1, 3]] *= sy

        detections: List[Detection] = []
        for (cx, cy, w, h), score, cls_id in zip(boxes, scores, class_ids):
            label = self._label_for(int(cls_id))
            det = Detection(
                box=BoundingBox.from_cxcywh(float(cx), float(cy), float(w), float(h)),
                label=label,
                score=float(score),
                class_id=int(cls_id),
            )
            LOGGER.debug("%s", det.caption())
            detections.append(det)
        return detections

    # ------------------------------------------------------------------ #
    # Helper internal
    # ------------------------------------------------------------------ #
    def _decode(self, preds: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Split the anchor layout into cxcywh boxes (A, 4), best scores (A,) and class ids (A,).
        """

        p = np.asarray(preds)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise InferenceError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise InferenceError(f"Unsupported YOLO output shape: {np.asarray(preds).shape}")

        rows, anchors = p.shape
        num_classes = len(self.class_names)
        if rows <= 4:
            raise InferenceError(f"Output has no class-score rows: shape {p.shape}")
        if rows - 4 != num_classes:
            raise UnknownClass(
                f"Model emits {rows - 4} class scores but the label table has {num_classes} entries"
            )
        if not np.issubdtype(p.dtype, np.floating):
            raise InferenceError(f"Expected a floating point output tensor, got {p.dtype}")

        if anchors == 0:
            return np.empty((0, 4), dtype=np.float32), np.empty((0,), dtype=np.float32), np.empty((0,), dtype=np.int64)

        if not np.all(np.isfinite(p)):
            raise InferenceError("Output tensor contains NaN or infinite values")

        boxes = p[0:4, :].T.copy()  # (A, 4) as cx, cy, w, h
        # Negative sizes are treated as empty boxes.
        boxes[:, 2:4] = np.maximum(boxes[:, 2:4], 0.0)

        class_scores = p[4:, :]
        # np.argmax returns the first maximum, so ties go to the lower class id.
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(anchors)]
        return boxes, scores, class_ids

    def _label_for(self, class_id: int) -> str:
        if not 0 <= class_id < len(self.class_names):
            raise UnknownClass(f"Class id {class_id} outside label table of {len(self.class_names)}")
        return self.class_names[class_id]
