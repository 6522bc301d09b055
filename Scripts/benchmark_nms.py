from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from yolo_annotate import COCO_CLASS_NAMES, NMSConfig, YoloPostConfig, YoloPostprocessor, suppress


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p95_ms: float


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms),
        mean_ms=float(statistics.fmean(ms)),
        p50_ms=float(np.percentile(ms, 50.0)),
        p95_ms=float(np.percentile(ms, 95.0)),
    )


def _format_summary(name: str, s: TimingSummary) -> str:
    return f"{name:<16} n={s.n:<5d} mean={s.mean_ms:8.3f}ms p50={s.p50_ms:8.3f}ms p95={s.p95_ms:8.3f}ms"


def synthetic_output(anchors: int, hot_fraction: float, imgsz: int, seed: int = 0) -> np.ndarray:
    """
    (1, 84, A) tensor where `hot_fraction` of anchors clear a 0.5 threshold,
    clustered so that suppression has real work to do.
    """

    rng = np.random.default_rng(seed)
    num_classes = len(COCO_CLASS_NAMES)
    p = np.zeros((1, 4 + num_classes, anchors), dtype=np.float32)

    centers = rng.uniform(0, imgsz, size=(max(1, anchors // 50), 2))
    pick = rng.integers(0, centers.shape[0], size=anchors)
    p[0, 0:2, :] = (centers[pick] + rng.normal(0, 6, size=(anchors, 2))).T
    p[0, 2:4, :] = rng.uniform(10, 120, size=(2, anchors))
    p[0, 4:, :] = rng.uniform(0.0, 0.3, size=(num_classes, anchors))

    hot = rng.random(anchors) < hot_fraction
    cls = rng.integers(0, num_classes, size=anchors)
    p[0, 4 + cls[hot], np.where(hot)[0]] = rng.uniform(0.5, 1.0, size=int(hot.sum()))
    return p


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark decode + NMS latency on synthetic YOLOv8 outputs (no model needed)."
    )
    parser.add_argument("--anchors", type=int, default=8400, help="Anchor count (8400 for 640x640 YOLOv8).")
    parser.add_argument("--hot", type=float, default=0.05, help="Fraction of anchors above the confidence threshold.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size.")
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold.")
    parser.add_argument("--iou", type=float, default=0.7, help="IoU threshold for NMS.")
    parser.add_argument("--repeats", type=int, default=50, help="Timed iterations.")
    parser.add_argument("--warmup", type=int, default=5, help="Untimed iterations first.")
    args = parser.parse_args()

    if args.anchors < 1:
        raise ValueError("--anchors must be >= 1")
    if not 0.0 <= args.hot <= 1.0:
        raise ValueError("--hot must be in [0, 1]")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")

    preds = synthetic_output(args.anchors, args.hot, args.imgsz)
    post = YoloPostprocessor(YoloPostConfig(conf_threshold=args.conf, iou_threshold=args.iou))
    agnostic = NMSConfig(iou_threshold=args.iou)
    per_class = NMSConfig(iou_threshold=args.iou, class_agnostic=False)

    t_decode: List[float] = []
    t_agnostic: List[float] = []
    t_per_class: List[float] = []
    kept_agnostic = kept_per_class = candidates = 0

    for i in range(args.warmup + args.repeats):
        t0 = time.perf_counter()
        dets = post.decode(preds, orig_size=(1280, 720), input_size=args.imgsz)
        t1 = time.perf_counter()
        kept_agnostic = len(suppress(dets, agnostic))
        t2 = time.perf_counter()
        kept_per_class = len(suppress(dets, per_class))
        t3 = time.perf_counter()
        candidates = len(dets)

        if i < args.warmup:
            continue
        t_decode.append(t1 - t0)
        t_agnostic.append(t2 - t1)
        t_per_class.append(t3 - t2)

    print(_format_summary("decode", _summarize_ms(t_decode)))
    print(_format_summary("nms_agnostic", _summarize_ms(t_agnostic)))
    print(_format_summary("nms_per_class", _summarize_ms(t_per_class)))
    print(f"candidates={candidates} kept_agnostic={kept_agnostic} kept_per_class={kept_per_class}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
