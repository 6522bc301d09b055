from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple, Union

# COCO-80 labels in the order YOLOv8 exports emit class scores.
COCO_CLASS_NAMES: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench", "bird", "cat", "dog", "horse",
    "sheep", "cow", "elephant", "bear", "zebra", "giraffe", "backpack", "umbrella", "handbag", "tie",
    "suitcase", "frisbee", "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
    "skateboard", "surfboard", "tennis racket", "bottle", "wine glass", "cup", "fork", "knife", "spoon",
    "bowl", "banana", "apple", "sandwich", "orange", "broccoli", "carrot", "hot dog", "pizza", "donut",
    "cake", "chair", "couch", "potted plant", "bed", "dining table", "toilet", "tv", "laptop", "mouse",
    "remote", "keyboard", "cell phone", "microwave", "oven", "toaster", "sink", "refrigerator", "book",
    "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


def load_class_names(metadata_path: Union[str, Path]) -> Tuple[str, ...]:
    """
    Load class names from the lightweight `metadata.yaml` format.

    The file stores a simple mapping:

        names:
          0: person
          1: bicycle
          ...

    Ids must run contiguously from 0; the returned tuple is indexed by class id.
    """

    path = Path(metadata_path)
    if not path.exists():
        raise FileNotFoundError(f"Class metadata not found: {path}")

    names: Dict[int, str] = {}
    in_names = False

    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue

            # Parse "id: label"
            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            right = right.strip().strip("'").strip('"')
            if not left.isdigit():
                # Next top-level key ends the block.
                if not raw[:1].isspace():
                    break
                continue
            if int(left) in names:
                raise ValueError(f"Duplicate class id {left} in {path}")
            names[int(left)] = right

    if not names:
        raise ValueError(f"No class names found in {path}")
    expected = list(range(len(names)))
    if sorted(names) != expected:
        raise ValueError(f"Class ids in {path} must be contiguous from 0")
    return tuple(names[i] for i in expected)
