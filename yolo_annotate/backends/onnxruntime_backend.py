from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ..errors import InferenceError, ModelLoadError

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - input_name/output_name: override auto-selected I/O names if needed
    - intra_op_threads: 0 lets ORT decide
    """

    input_name: Optional[str] = None
    output_name: Optional[str] = None
    intra_op_threads: int = 0


class OnnxRuntimeBackend:
    """
    Minimal CPU ONNX Runtime backend.

    Expects an NCHW float32 blob shaped (1, 3, S, S).
    Returns the primary output as a NumPy array, (1, 4 + C, A) for YOLOv8.

    `InferenceSession.run` is safe to call from several threads, so one
    backend instance is shared across requests.
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise ModelLoadError(f"Model not found: {self.model_path}")

        sess_opts = ort.SessionOptions()
        if cfg.intra_op_threads:
            sess_opts.intra_op_num_threads = int(cfg.intra_op_threads)
        try:
            self.session = ort.InferenceSession(
                str(self.model_path),
                sess_options=sess_opts,
                providers=["CPUExecutionProvider"],
            )
        except Exception as e:
            raise ModelLoadError(f"Could not load model {self.model_path}: {e}") from e

        input_names = [i.name for i in self.session.get_inputs()]
        output_names = [o.name for o in self.session.get_outputs()]
        self.input_name = cfg.input_name or input_names[0]
        # If output_name not provided, pick first output.
        self.output_name = cfg.output_name or output_names[0]
        if self.input_name not in input_names:
            raise ModelLoadError(f"Model has no input {self.input_name!r} (inputs: {input_names})")
        if self.output_name not in output_names:
            raise ModelLoadError(f"Model has no output {self.output_name!r} (outputs: {output_names})")

        LOGGER.info("loaded %s (input=%s, output=%s)", self.model_path, self.input_name, self.output_name)

    def infer(self, blob: np.ndarray) -> np.ndarray:
        if blob.ndim != 4 or blob.shape[0] != 1 or blob.shape[1] != 3:
            raise InferenceError(f"Expected input blob (1, 3, S, S), got {blob.shape}")
        try:
            outputs = self.session.run([self.output_name], {self.input_name: blob.astype(np.float32, copy=False)})
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        out = np.asarray(outputs[0])
        if out.ndim != 3 or out.shape[0] != 1:
            raise InferenceError(f"Expected output (1, 4 + C, A), got {out.shape}")
        return out
