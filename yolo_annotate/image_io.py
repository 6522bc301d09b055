from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from .errors import ImageDecodeError, ImageEncodeError, InvalidImage
from .preprocess import check_image

PathLike = Union[str, Path]


def load_image(source: Union[PathLike, bytes, bytearray, memoryview]) -> np.ndarray:
    """
    Decode a file path or an in-memory buffer into a BGR uint8 image.
    """

    if isinstance(source, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(source, dtype=np.uint8)
        if buf.size == 0:
            raise InvalidImage("Empty image buffer")
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR)
        if img is None:
            raise ImageDecodeError("Could not decode image buffer")
    else:
        path = Path(source)
        if not path.is_file():
            raise InvalidImage(f"Image not found: {path}")
        # imdecode handles non-ASCII paths that imread does not.
        img = cv2.imdecode(np.fromfile(str(path), dtype=np.uint8), cv2.IMREAD_COLOR)
        if img is None:
            raise ImageDecodeError(f"Could not read image at path: {path}")

    check_image(img)
    return img


def save_image(image_bgr: np.ndarray, path: PathLike) -> Path:
    """
    Encode by the path's extension and write atomically.

    The image lands at `path` only if encoding and writing both succeed.
    """

    out = Path(path)
    ext = out.suffix.lower()
    if not ext:
        raise ImageEncodeError(f"Output path has no extension: {out}")

    try:
        ok, encoded = cv2.imencode(ext, image_bgr)
    except cv2.error as e:
        raise ImageEncodeError(f"Failed to encode image as {ext}: {e}") from e
    if not ok:
        raise ImageEncodeError(f"Failed to encode image as {ext}")

    out.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".tmp-", suffix=ext, dir=str(out.parent))
    os.close(fd)
    try:
        with open(tmp, "wb") as f:
            f.write(encoded.tobytes())
        os.replace(tmp, out)
    except OSError as e:
        Path(tmp).unlink(missing_ok=True)
        raise ImageEncodeError(f"Failed to write output image: {out}") from e
    return out
