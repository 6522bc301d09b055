from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import cv2
import numpy as np

from .errors import InvalidImage

# Smooth resampling filters only; nearest-neighbour shifts decoded boxes.
INTERPOLATIONS: Dict[str, int] = {
    "cubic": cv2.INTER_CUBIC,
    "lanczos": cv2.INTER_LANCZOS4,
    "linear": cv2.INTER_LINEAR,
    "area": cv2.INTER_AREA,
}


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    resized: np.ndarray
    orig_size: Tuple[int, int]
    input_size: int


def check_image(image_bgr: np.ndarray) -> Tuple[int, int]:
    """
    Validate an OpenCV-style (H, W, 3) uint8 image and return (width, height).
    """

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise InvalidImage("image must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise InvalidImage(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")
    h, w = image_bgr.shape[:2]
    if h == 0 or w == 0:
        raise InvalidImage(f"Image has zero size: {w}x{h}")
    if image_bgr.dtype != np.uint8:
        raise InvalidImage(f"Expected a uint8 image, got {image_bgr.dtype}")
    return w, h


def resize_square(image_bgr: np.ndarray, size: int = 640, interpolation: str = "cubic") -> np.ndarray:
    """
    Stretch an image to (size, size) without letterboxing.

    The aspect ratio is not preserved; decoded boxes are rescaled per axis.
    """

    check_image(image_bgr)
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    try:
        flag = INTERPOLATIONS[interpolation]
    except KeyError:
        raise ValueError(
            f"Unsupported interpolation {interpolation!r}; choose one of {sorted(INTERPOLATIONS)}"
        ) from None

    h, w = image_bgr.shape[:2]
    if (w, h) == (size, size):
        return image_bgr.copy()
    return cv2.resize(image_bgr, (size, size), interpolation=flag)


def to_blob(image_bgr: np.ndarray) -> np.ndarray:
    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = image_bgr[:, :, ::-1].astype(np.float32) / 255.0
    blob = np.transpose(blob, (2, 0, 1))[None, ...]
    return np.ascontiguousarray(blob)


def preprocess(image_bgr: np.ndarray, size: int = 640, interpolation: str = "cubic") -> PreprocessResult:
    """
    Build the (1, 3, size, size) float32 input tensor for a BGR image.

    tensor[0, c, y, x] is channel c (R, G, B) of resized pixel (x, y), scaled to [0, 1].
    """

    orig_w, orig_h = check_image(image_bgr)
    resized = resize_square(image_bgr, size=size, interpolation=interpolation)
    return PreprocessResult(
        blob=to_blob(resized),
        resized=resized,
        orig_size=(orig_w, orig_h),
        input_size=size,
    )
