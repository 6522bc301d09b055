import itertools
import unittest

import numpy as np

from yolo_annotate.nms import NMSConfig, box_iou, iou_one_to_many, nms, suppress
from yolo_annotate.types import BoundingBox, Detection


def _det(x1, y1, x2, y2, score, label="dog", class_id=16):
    return Detection(box=BoundingBox(x1, y1, x2, y2), label=label, score=score, class_id=class_id)


BOXES = [
    BoundingBox(0, 0, 100, 100),
    BoundingBox(10, 10, 110, 110),
    BoundingBox(50, 0, 150, 40),
    BoundingBox(200, 200, 210, 260),
    BoundingBox(5, 5, 5, 5),
    BoundingBox(0, 0, 0.5, 0.25),
]


class TestBoxIou(unittest.TestCase):
    def test_symmetric(self) -> None:
        for a, b in itertools.product(BOXES, repeat=2):
            self.assertEqual(box_iou(a, b), box_iou(b, a))

    def test_self_is_one(self) -> None:
        for a in BOXES:
            if a.area > 0:
                self.assertAlmostEqual(box_iou(a, a), 1.0)

    def test_range(self) -> None:
        for a, b in itertools.product(BOXES, repeat=2):
            iou = box_iou(a, b)
            self.assertGreaterEqual(iou, 0.0)
            self.assertLessEqual(iou, 1.0)

    def test_partial_overlap_value(self) -> None:
        iou = box_iou(BoundingBox(0, 0, 100, 100), BoundingBox(10, 10, 110, 110))
        self.assertAlmostEqual(iou, 8100.0 / 11900.0)

    def test_degenerate_boxes_have_zero_iou(self) -> None:
        point = BoundingBox(5, 5, 5, 5)
        self.assertEqual(box_iou(point, point), 0.0)
        self.assertEqual(box_iou(point, BoundingBox(0, 0, 10, 10)), 0.0)

    def test_vectorized_matches_scalar(self) -> None:
        arr = np.array([b.as_xyxy() for b in BOXES], dtype=np.float64)
        for i, a in enumerate(BOXES):
            expected = [box_iou(a, b) for b in BOXES]
            np.testing.assert_allclose(iou_one_to_many(arr[i], arr), expected)


class TestSuppress(unittest.TestCase):
    def test_overlapping_same_class_below_threshold_both_survive(self) -> None:
        a = _det(0, 0, 100, 100, 0.9)
        b = _det(10, 10, 110, 110, 0.6)
        out = suppress([b, a], NMSConfig(iou_threshold=0.7))
        self.assertEqual(out, [a, b])

    def test_overlapping_same_class_above_threshold_keeps_best(self) -> None:
        a = _det(0, 0, 100, 100, 0.9)
        b = _det(10, 10, 110, 110, 0.6)
        out = suppress([b, a], NMSConfig(iou_threshold=0.6))
        self.assertEqual(out, [a])

    def test_disjoint_boxes_always_survive(self) -> None:
        a = _det(0, 0, 10, 10, 0.9)
        b = _det(20, 20, 30, 30, 0.8)
        for threshold in (0.0, 0.3, 0.7, 1.0):
            self.assertEqual(suppress([a, b], NMSConfig(iou_threshold=threshold)), [a, b])

    def test_degenerate_box_never_suppresses_or_is_suppressed(self) -> None:
        point = _det(5, 5, 5, 5, 0.95)
        big = _det(0, 0, 10, 10, 0.9)
        twin = _det(5, 5, 5, 5, 0.5)
        out = suppress([big, twin, point], NMSConfig(iou_threshold=0.0))
        self.assertEqual(out, [point, big, twin])

    def test_empty(self) -> None:
        self.assertEqual(suppress([], NMSConfig()), [])
        self.assertEqual(nms(np.empty((0, 4)), np.empty((0,)), NMSConfig()).shape, (0,))

    def test_ties_keep_input_order(self) -> None:
        first = _det(0, 0, 10, 10, 0.8, label="cat", class_id=15)
        second = _det(0, 0, 10, 10, 0.8)
        self.assertEqual(suppress([first, second]), [first])
        self.assertEqual(suppress([second, first]), [second])

    def test_class_agnostic_by_default(self) -> None:
        dog = _det(0, 0, 100, 100, 0.9)
        cat = _det(1, 1, 100, 100, 0.8, label="cat", class_id=15)
        self.assertEqual(suppress([dog, cat]), [dog])

    def test_per_class_keeps_other_classes(self) -> None:
        dog = _det(0, 0, 100, 100, 0.9)
        cat = _det(1, 1, 100, 100, 0.8, label="cat", class_id=15)
        dog2 = _det(2, 2, 100, 100, 0.7)
        out = suppress([dog2, cat, dog], NMSConfig(class_agnostic=False))
        self.assertEqual(out, [dog, cat])

    def test_max_detections(self) -> None:
        dets = [_det(i * 20, 0, i * 20 + 10, 10, 0.5 + i * 0.01) for i in range(5)]
        out = suppress(dets, NMSConfig(max_detections=2))
        self.assertEqual(out, [dets[4], dets[3]])

    def test_result_is_score_descending_and_never_larger(self) -> None:
        rng = np.random.default_rng(0)
        dets = []
        for _ in range(60):
            x, y = rng.uniform(0, 200, size=2)
            w, h = rng.uniform(0, 60, size=2)
            dets.append(_det(x, y, x + w, y + h, float(rng.uniform(0.5, 1.0))))
        out = suppress(dets, NMSConfig(iou_threshold=0.5))
        self.assertLessEqual(len(out), len(dets))
        scores = [d.score for d in out]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_idempotent(self) -> None:
        rng = np.random.default_rng(1)
        dets = []
        for _ in range(80):
            x, y = rng.uniform(0, 100, size=2)
            w, h = rng.uniform(0, 50, size=2)
            dets.append(_det(x, y, x + w, y + h, float(rng.uniform(0.5, 1.0))))
        for threshold in (0.0, 0.3, 0.7):
            cfg = NMSConfig(iou_threshold=threshold)
            once = suppress(dets, cfg)
            self.assertEqual(suppress(once, cfg), once)

    def test_does_not_mutate_input(self) -> None:
        dets = [_det(0, 0, 100, 100, 0.6), _det(1, 1, 100, 100, 0.9)]
        before = list(dets)
        suppress(dets)
        self.assertEqual(dets, before)

    def test_invalid_threshold_rejected(self) -> None:
        with self.assertRaises(ValueError):
            NMSConfig(iou_threshold=1.5)
        with self.assertRaises(ValueError):
            NMSConfig(max_detections=0)


if __name__ == "__main__":
    unittest.main()
