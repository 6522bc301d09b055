from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in original-image pixel coordinates (xyxy).

    Zero-area boxes are allowed; they never overlap anything.
    """

    x1: float
    y1: float
    x2: float
    y2: float

    def __post_init__(self) -> None:
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(f"Box corners out of order: {self.as_xyxy()}")

    @classmethod
    def from_cxcywh(cls, cx: float, cy: float, w: float, h: float) -> "BoundingBox":
        return cls(x1=cx - w / 2, y1=cy - h / 2, x2=cx + w / 2, y2=cy + h / 2)

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def scaled(self, sx: float, sy: float) -> "BoundingBox":
        return BoundingBox(x1=self.x1 * sx, y1=self.y1 * sy, x2=self.x2 * sx, y2=self.y2 * sy)


@dataclass(frozen=True)
class Detection:
    """
    One labeled box produced by the decoder. Never mutated after creation.
    """

    box: BoundingBox
    label: str
    score: float
    class_id: int

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()

    def caption(self) -> str:
        return f"{self.label}: {self.score * 100:.2f}%"
