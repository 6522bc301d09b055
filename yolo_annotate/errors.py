"""
Exception types raised by the detection pipeline.

Each error also derives from the closest builtin so callers that only know
``ValueError`` / ``OSError`` / ``RuntimeError`` still catch them.
"""

from __future__ import annotations


class YoloAnnotateError(Exception):
    """Base class for every error raised by `yolo_annotate`."""


class InvalidImage(YoloAnnotateError, ValueError):
    """Input image is missing, zero-sized or not a 3-channel array."""


class ImageDecodeError(InvalidImage):
    """Path or byte buffer could not be decoded into an image."""


class ImageEncodeError(YoloAnnotateError, OSError):
    """Output image could not be encoded or written."""


class InferenceError(YoloAnnotateError, RuntimeError):
    """Inference engine failed or returned a malformed tensor."""


class UnknownClass(YoloAnnotateError, LookupError):
    """Decoded class index does not fit the class-label table."""


class ModelLoadError(YoloAnnotateError, RuntimeError):
    """Model file missing or session could not be created."""


class FontLoadError(YoloAnnotateError, RuntimeError):
    """Annotator font cannot be used for rendering."""


class AnnotationError(YoloAnnotateError, RuntimeError):
    """Detections could not be drawn onto the image."""


class ImageNotFound(YoloAnnotateError, LookupError):
    """No stored upload matches the requested image id."""
