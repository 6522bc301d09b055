from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np

from .errors import AnnotationError, FontLoadError
from .preprocess import check_image
from .types import Detection

HERSHEY_FONTS = {
    "simplex": cv2.FONT_HERSHEY_SIMPLEX,
    "plain": cv2.FONT_HERSHEY_PLAIN,
    "duplex": cv2.FONT_HERSHEY_DUPLEX,
    "complex": cv2.FONT_HERSHEY_COMPLEX,
    "triplex": cv2.FONT_HERSHEY_TRIPLEX,
}


@dataclass(frozen=True)
class AnnotationStyle:
    font: str = "simplex"
    font_scale: float = 0.5
    font_thickness: int = 1
    box_thickness: int = 1
    # Label is drawn this many pixels right of and below the box's top-left corner.
    label_offset: int = 10
    # None picks a per-class palette color.
    color: Optional[Tuple[int, int, int]] = None


@dataclass(frozen=True)
class LabelFont:
    face: int
    scale: float
    thickness: int
    line_height: int


def load_font(style: AnnotationStyle = AnnotationStyle()) -> LabelFont:
    """
    Resolve and probe the label font once at startup.

    Raises FontLoadError if OpenCV cannot measure text with it.
    """

    if style.font not in HERSHEY_FONTS:
        raise FontLoadError(f"Unknown font {style.font!r}; choose one of {sorted(HERSHEY_FONTS)}")
    if style.font_scale <= 0 or style.font_thickness < 1:
        raise FontLoadError(f"Invalid font scale/thickness: {style.font_scale}/{style.font_thickness}")

    face = HERSHEY_FONTS[style.font]
    try:
        (_, th), baseline = cv2.getTextSize("person: 99.99%", face, style.font_scale, style.font_thickness)
    except cv2.error as e:
        raise FontLoadError(f"Font {style.font!r} failed to render: {e}") from e
    if th <= 0:
        raise FontLoadError(f"Font {style.font!r} produced an empty glyph box")
    return LabelFont(face=face, scale=style.font_scale, thickness=style.font_thickness, line_height=th)


def _color_for_class_id(class_id: Optional[int]) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id (OpenCV expects BGR).
    """

    if class_id is None:
        return (255, 255, 255)

    # Small deterministic palette, then fallback to a seeded RNG for larger IDs.
    palette = [
        (255, 56, 56),
        (255, 157, 151),
        (255, 112, 31),
        (255, 178, 29),
        (207, 210, 49),
        (72, 249, 10),
        (146, 204, 23),
        (61, 219, 134),
        (26, 147, 52),
        (0, 212, 187),
        (44, 153, 168),
        (0, 194, 255),
        (52, 69, 147),
        (100, 115, 255),
        (0, 24, 236),
        (132, 56, 255),
        (82, 0, 133),
        (203, 56, 255),
        (255, 149, 200),
        (255, 55, 199),
    ]
    if 0 <= class_id < len(palette):
        return palette[class_id]

    rng = np.random.default_rng(int(class_id))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def box_rect(det: Detection, scale: Tuple[float, float] = (1.0, 1.0)) -> Tuple[int, int, int, int]:
    """
    Integer-floor (x, y, width, height) of a detection's box, optionally rescaled.
    """

    sx, sy = scale
    box = det.box if (sx, sy) == (1.0, 1.0) else det.box.scaled(sx, sy)
    x = math.floor(box.x1)
    y = math.floor(box.y1)
    return x, y, math.floor(box.x2) - x, math.floor(box.y2) - y


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    font: Optional[LabelFont] = None,
    style: AnnotationStyle = AnnotationStyle(),
    scale: Tuple[float, float] = (1.0, 1.0),
) -> np.ndarray:
    """
    Draw box outlines + "<label>: <score%>" captions on a copy of a BGR image.

    Args:
        image_bgr: input image in BGR (H, W, 3); left untouched.
        detections: drawn in the given order, so later captions may cover earlier ones.
        font: result of `load_font`; probed from `style` when omitted.
        scale: (sx, sy) applied to boxes first, for drawing on a resized image.
    """

    check_image(image_bgr)
    if font is None:
        font = load_font(style)

    out = image_bgr.copy()

    for det in detections:
        color = style.color if style.color is not None else _color_for_class_id(det.class_id)
        try:
            x, y, w, h = box_rect(det, scale)
            # putText anchors at the baseline; shift down so the text top sits at the offset.
            org = (x + style.label_offset, y + style.label_offset + font.line_height)
            cv2.rectangle(out, (x, y), (x + w, y + h), color, thickness=style.box_thickness)
            cv2.putText(
                out,
                det.caption(),
                org,
                font.face,
                font.scale,
                color,
                thickness=font.thickness,
                lineType=cv2.LINE_AA,
            )
        except (cv2.error, OverflowError) as e:
            raise AnnotationError(f"Cannot draw {det.label} box {det.as_xyxy()}: {e}") from e

    return out
