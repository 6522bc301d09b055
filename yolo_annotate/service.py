"""
Request surface: store an upload, then process it by id.

Transport (HTTP, multipart parsing) lives outside this package; callers hand
over raw bytes and get back plain dataclasses they can serialize.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import (
    AnnotationError,
    ImageNotFound,
    InferenceError,
    InvalidImage,
    UnknownClass,
)
from .image_io import load_image, save_image
from .runtime import YoloPipeline

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class UploadResult:
    image_id: str
    message: str
    code: int = 200


@dataclass(frozen=True)
class ProcessResult:
    status: str
    image_path: Optional[str] = None
    code: int = 200
    detections: Optional[List[Dict[str, Any]]] = None

    @property
    def ok(self) -> bool:
        return self.code == 200

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _canonical_id(image_id: str) -> str:
    try:
        return str(uuid.UUID(image_id))
    except (ValueError, AttributeError, TypeError):
        raise ImageNotFound(f"Malformed image id: {image_id!r}") from None


class ImageStore:
    """
    Uploaded images on disk, named `<uuid4>.<ext>`.
    """

    def __init__(self, upload_dir: PathLike):
        self.upload_dir = Path(upload_dir)

    def save(self, data: bytes, filename: str) -> str:
        ext = Path(filename or "").suffix.lower().lstrip(".")
        if not ext:
            raise InvalidImage(f"Upload has no file extension: {filename!r}")
        if not data:
            raise InvalidImage("Upload is empty")

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        image_id = str(uuid.uuid4())
        path = self.upload_dir / f"{image_id}.{ext}"
        path.write_bytes(data)
        return image_id

    def find(self, image_id: str) -> Path:
        image_id = _canonical_id(image_id)
        if self.upload_dir.is_dir():
            for path in sorted(self.upload_dir.iterdir()):
                if path.is_file() and path.stem == image_id and path.suffix:
                    return path
        raise ImageNotFound(f"Image not found: {image_id}")


class DetectionService:
    """
    Turns pipeline errors into failed `UploadResult` / `ProcessResult` values
    with an HTTP-style code.
    """

    def __init__(self, store: ImageStore, output_dir: PathLike, pipeline: Optional[YoloPipeline] = None):
        self.store = store
        self.output_dir = Path(output_dir)
        self.pipeline = pipeline

    def submit(self, data: bytes, filename: str, content_type: Optional[str]) -> UploadResult:
        if not content_type or "image" not in content_type:
            LOGGER.warning("rejected upload %r with content type %r", filename, content_type)
            return UploadResult(image_id="", message="The file must be an image", code=415)
        try:
            image_id = self.store.save(data, filename)
        except InvalidImage as e:
            LOGGER.warning("rejected upload %r: %s", filename, e)
            return UploadResult(image_id="", message=str(e), code=400)
        except OSError:
            LOGGER.exception("error saving upload %r", filename)
            return UploadResult(image_id="", message="Failed to save image", code=500)

        LOGGER.info("stored upload %r as %s", filename, image_id)
        return UploadResult(image_id=image_id, message="Image uploaded successfully")

    def process(self, image_id: str) -> ProcessResult:
        if self.pipeline is None:
            raise RuntimeError("DetectionService was created without a pipeline")

        try:
            input_path = self.store.find(image_id)
        except ImageNotFound as e:
            LOGGER.warning("%s", e)
            return ProcessResult(status="Image not found", code=404)

        output_path = self.output_dir / f"{input_path.stem}{input_path.suffix}"
        try:
            image = load_image(input_path)
            result = self.pipeline.run(image)
            save_image(result.annotated, output_path)
        except InvalidImage as e:
            LOGGER.warning("invalid image %s: %s", input_path, e)
            return ProcessResult(status=f"Invalid image: {e}", code=400)
        except UnknownClass as e:
            LOGGER.critical("model and class table disagree: %s", e)
            return ProcessResult(status=f"Error processing image: {e}", code=500)
        except (InferenceError, AnnotationError, OSError) as e:
            LOGGER.exception("error processing image %s", input_path)
            return ProcessResult(status=f"Error processing image: {e}", code=500)

        LOGGER.info("processed %s: %d detections -> %s", input_path.name, len(result.detections), output_path)
        return ProcessResult(
            status="Image processed successfully",
            image_path=str(output_path),
            detections=[
                {
                    "label": d.label,
                    "class_id": d.class_id,
                    "score": d.score,
                    "box": list(d.as_xyxy()),
                }
                for d in result.detections
            ],
        )
