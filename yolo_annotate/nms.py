from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import BoundingBox, Detection


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.7
    # None keeps every surviving box.
    max_detections: Optional[int] = None
    # True: boxes of different classes also suppress each other.
    class_agnostic: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError(f"iou_threshold must be in [0, 1], got {self.iou_threshold}")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1")


def intersection(a: BoundingBox, b: BoundingBox) -> float:
    w = max(0.0, min(a.x2, b.x2) - max(a.x1, b.x1))
    h = max(0.0, min(a.y2, b.y2) - max(a.y1, b.y1))
    return w * h


def box_iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two xyxy boxes.

    Returns 0.0 when the union is empty (two zero-area boxes), so degenerate
    boxes never suppress each other.
    """

    inter = intersection(a, b)
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return inter / union


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    Vectorized IoU of one xyxy box (4,) against boxes (N, 4), in float64.
    """

    box = box.astype(np.float64)
    boxes = boxes.astype(np.float64)

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area = (box[2] - box[0]) * (box[3] - box[1])
    areas = (boxes[:, 2] - boxes[:, 0]) * (boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter

    iou = np.zeros_like(inter)
    np.divide(inter, union, out=iou, where=union > 0.0)
    return iou


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of boxes to keep, in selection (score-descending) order.

    Ties in score keep their input order. A box is dropped when its IoU with
    an already selected box is >= `cfg.iou_threshold` and above zero.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    # Stable descending sort: negate instead of reversing an ascending argsort.
    order = np.argsort(-scores.astype(np.float64), kind="stable")
    sorted_boxes = boxes[order]
    suppressed = np.zeros(order.shape[0], dtype=bool)
    keep: List[int] = []

    for pos in range(order.shape[0]):
        if suppressed[pos]:
            continue
        keep.append(int(order[pos]))
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break

        rest = slice(pos + 1, None)
        iou = iou_one_to_many(sorted_boxes[pos], sorted_boxes[rest])
        # Zero overlap never suppresses, even with a threshold of 0.
        suppressed[rest] |= (iou > 0.0) & (iou >= cfg.iou_threshold)

    return np.array(keep, dtype=np.int64)


def suppress(detections: Sequence[Detection], cfg: NMSConfig = NMSConfig()) -> List[Detection]:
    """
    Run NMS over decoded detections and return the survivors, highest score first.
    """

    if not detections:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.score for d in detections], dtype=np.float64)

    if cfg.class_agnostic:
        keep = nms(boxes, scores, cfg)
        return [detections[i] for i in keep]

    class_ids = np.array([d.class_id for d in detections], dtype=np.int64)
    per_class = NMSConfig(iou_threshold=cfg.iou_threshold, max_detections=None, class_agnostic=True)
    kept: List[int] = []
    for cls in np.unique(class_ids):
        idx = np.where(class_ids == cls)[0]
        keep_local = nms(boxes[idx], scores[idx], per_class)
        kept.extend(idx[keep_local].tolist())

    # Merge by score; equal scores fall back to input order.
    kept.sort(key=lambda i: (-scores[i], i))
    if cfg.max_detections is not None:
        kept = kept[: cfg.max_detections]
    return [detections[i] for i in kept]
