import contextlib
import io
import json
import os
import tempfile
import unittest
import uuid
from pathlib import Path
from unittest import mock

import cv2
import numpy as np

from yolo_annotate.cli import build_parser, main, resolve_settings
from yolo_annotate.config import CONFIG_ENV_VAR
from yolo_annotate.runtime import reset_shared_pipeline


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.tmp = Path(tmpdir.name)
        reset_shared_pipeline()
        self.addCleanup(reset_shared_pipeline)

    def _run(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            code = main(argv)
        return code, out.getvalue()

    def test_flags_override_config_file(self) -> None:
        cfg = self.tmp / "settings.json"
        cfg.write_text(json.dumps({"conf_threshold": 0.3, "iou_threshold": 0.6}), encoding="utf-8")
        args = build_parser().parse_args(["--config", str(cfg), "--iou", "0.5", "--per-class-nms", "process", "x"])
        settings = resolve_settings(args)
        self.assertEqual(settings.conf_threshold, 0.3)
        self.assertEqual(settings.iou_threshold, 0.5)
        self.assertFalse(settings.class_agnostic_nms)

    def test_config_from_environment(self) -> None:
        cfg = self.tmp / "env.json"
        cfg.write_text(json.dumps({"input_size": 320}), encoding="utf-8")
        args = build_parser().parse_args(["process", "x"])
        with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(cfg)}):
            self.assertEqual(resolve_settings(args).input_size, 320)

    def test_bad_config_is_usage_error(self) -> None:
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main(["--conf", "2.0", "process", "x"])
        self.assertEqual(ctx.exception.code, 2)

    def test_submit_prints_id(self) -> None:
        img_path = self.tmp / "input.png"
        cv2.imwrite(str(img_path), np.zeros((8, 8, 3), dtype=np.uint8))
        upload_dir = self.tmp / "uploads"
        code, out = self._run(["--upload-dir", str(upload_dir), "--log-level", "WARNING", "submit", "--image", str(img_path)])
        self.assertEqual(code, 0)
        image_id = out.strip()
        self.assertEqual(str(uuid.UUID(image_id)), image_id)
        self.assertTrue((upload_dir / f"{image_id}.png").exists())

    def test_submit_missing_file_fails(self) -> None:
        code, _ = self._run(["--log-level", "CRITICAL", "submit", "--image", str(self.tmp / "nope.png")])
        self.assertEqual(code, 1)

    def test_missing_model_fails_cleanly(self) -> None:
        img_path = self.tmp / "input.png"
        cv2.imwrite(str(img_path), np.zeros((8, 8, 3), dtype=np.uint8))
        code, _ = self._run(
            [
                "--log-level",
                "CRITICAL",
                "--model",
                str(self.tmp / "missing.onnx"),
                "annotate",
                "--image",
                str(img_path),
                "--out",
                str(self.tmp / "out.png"),
            ]
        )
        self.assertEqual(code, 1)
        self.assertFalse((self.tmp / "out.png").exists())


if __name__ == "__main__":
    unittest.main()
