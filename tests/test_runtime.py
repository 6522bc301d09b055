import tempfile
import unittest
from pathlib import Path

import numpy as np

from yolo_annotate.config import DetectorSettings
from yolo_annotate.metadata import COCO_CLASS_NAMES
from yolo_annotate.runtime import (
    YoloPipeline,
    find_project_root,
    get_shared_pipeline,
    pipeline_from_settings,
    reset_shared_pipeline,
    resolve_path,
)

DOG = COCO_CLASS_NAMES.index("dog")


class FakeModel:
    """Stands in for the inference engine: records inputs, returns a fixed output."""

    def __init__(self, output: np.ndarray):
        self.output = output
        self.calls = []

    def __call__(self, blob: np.ndarray) -> np.ndarray:
        self.calls.append(blob.shape)
        return self.output


def _dog_output(num_anchors: int = 8) -> np.ndarray:
    p = np.zeros((1, 84, num_anchors), dtype=np.float32)
    p[0, 0:4, 0] = [320, 320, 64, 64]
    p[0, 4 + DOG, 0] = 0.9
    p[0, 0:4, 1] = [322, 322, 64, 64]
    p[0, 4 + DOG, 1] = 0.8
    return p


class TestYoloPipeline(unittest.TestCase):
    def test_end_to_end_with_fake_model(self) -> None:
        model = FakeModel(_dog_output())
        pipe = YoloPipeline(model, input_size=640)
        img = np.zeros((960, 1280, 3), dtype=np.uint8)
        result = pipe.run(img)

        self.assertEqual(model.calls, [(1, 3, 640, 640)])
        self.assertEqual(len(result.detections), 1)
        det = result.detections[0]
        self.assertEqual(det.label, "dog")
        self.assertEqual(det.as_xyxy(), (576.0, 432.0, 704.0, 528.0))
        self.assertEqual(result.annotated.shape, img.shape)
        self.assertGreater(int(result.annotated.sum()), 0)
        self.assertEqual(int(img.sum()), 0)

    def test_annotate_on_resized(self) -> None:
        pipe = YoloPipeline(FakeModel(_dog_output()), input_size=64, annotate_on="resized")
        img = np.zeros((960, 1280, 3), dtype=np.uint8)
        result = pipe.run(img)
        self.assertEqual(result.annotated.shape, (64, 64, 3))

    def test_call_returns_detections(self) -> None:
        pipe = YoloPipeline(FakeModel(_dog_output()))
        dets = pipe(np.zeros((640, 640, 3), dtype=np.uint8))
        self.assertEqual([d.label for d in dets], ["dog"])

    def test_bad_annotate_target(self) -> None:
        with self.assertRaises(ValueError):
            YoloPipeline(FakeModel(_dog_output()), annotate_on="thumbnail")

    def test_pipeline_from_settings_uses_thresholds(self) -> None:
        settings = DetectorSettings(conf_threshold=0.85, iou_threshold=0.99)
        pipe = pipeline_from_settings(settings, FakeModel(_dog_output()))
        self.assertEqual(pipe.post.cfg.conf_threshold, 0.85)
        dets = pipe(np.zeros((640, 640, 3), dtype=np.uint8))
        self.assertEqual(len(dets), 1)
        self.assertAlmostEqual(dets[0].score, 0.9, places=6)

    def test_pipeline_from_settings_reads_metadata(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        meta = Path(tmpdir.name) / "metadata.yaml"
        meta.write_text("names:\n  0: widget\n  1: gadget\n", encoding="utf-8")
        pipe = pipeline_from_settings(
            DetectorSettings(metadata_path=str(meta)),
            FakeModel(np.zeros((1, 6, 4), dtype=np.float32)),
        )
        self.assertEqual(pipe.class_names, ("widget", "gadget"))

    def test_shared_pipeline_built_once(self) -> None:
        reset_shared_pipeline()
        self.addCleanup(reset_shared_pipeline)
        model = FakeModel(_dog_output())
        settings = DetectorSettings()
        first = get_shared_pipeline(settings, model)
        second = get_shared_pipeline(settings)
        self.assertIs(first, second)
        with self.assertRaises(RuntimeError):
            get_shared_pipeline(DetectorSettings(conf_threshold=0.1))


class TestPaths(unittest.TestCase):
    def test_resolve_path(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        root = Path(tmpdir.name).resolve()
        (root / "pyproject.toml").write_text("", encoding="utf-8")
        (root / "a" / "b").mkdir(parents=True)

        self.assertEqual(find_project_root(root / "a" / "b"), root)
        self.assertEqual(resolve_path("Models/m.onnx", root=root), root / "Models" / "m.onnx")
        self.assertEqual(resolve_path(root / "x.onnx"), root / "x.onnx")


if __name__ == "__main__":
    unittest.main()
