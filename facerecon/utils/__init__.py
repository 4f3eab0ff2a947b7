"""
Utility functions for the face reconstruction project
"""

import base64
import time
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np
from PIL import ImageColor

from .exceptions import ImageProcessingError, InvalidInputError
from .logging_utils import LoggerFactory, get_logger, log_execution_time, stage_context
from .result import Outcome

MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/bmp": "bmp",
}

RGBA = Tuple[int, int, int, int]


class Timer:
    """Context manager for timing operations"""
    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time = None
        self.end_time = None
        self.elapsed = 0.0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds"""
        return self.elapsed * 1000


def mime_to_extension(mime_type: str) -> str:
    """
    Map an image MIME type (``image/png``) to a file extension (``png``).

    Bare extensions are accepted and returned lowercased.
    """
    mime_type = mime_type.lower().strip()
    if mime_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime_type]
    if "/" not in mime_type and mime_type:
        return mime_type.lstrip(".")
    raise InvalidInputError("Unsupported image format", expected=sorted(MIME_EXTENSIONS), actual=mime_type)


def decode_image(data: bytes, flags: int = cv2.IMREAD_COLOR) -> np.ndarray:
    """
    Decode encoded image bytes into a numpy array.

    Args:
        data: Encoded image (PNG, JPEG, ...)
        flags: OpenCV imread flags

    Returns:
        Decoded image (BGR for colour images)
    """
    if not data:
        raise InvalidInputError("Image data is empty", expected="non-empty bytes", actual=0)

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, flags)
    if image is None:
        raise ImageProcessingError("decode", cause=ValueError("unrecognised image data"))
    return image


def encode_image(image: np.ndarray, fmt: str = "image/png") -> bytes:
    """
    Encode an image array into bytes of the given format.

    Args:
        image: Image in OpenCV channel order (gray, BGR or BGRA)
        fmt: MIME type or extension

    Returns:
        Encoded bytes
    """
    extension = mime_to_extension(fmt)
    ok, buffer = cv2.imencode(f".{extension}", image)
    if not ok:
        raise ImageProcessingError("encode", image_shape=image.shape)
    return buffer.tobytes()


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """Return ``(width, height)`` of an image array."""
    height, width = image.shape[:2]
    return int(width), int(height)


def to_data_url(data: bytes, fmt: str = "image/png") -> str:
    """Wrap encoded image bytes as a ``data:`` URL."""
    mime = fmt if "/" in fmt else f"image/{fmt}"
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def parse_color(color) -> RGBA:
    """
    Convert a CSS colour name, hex string or RGB(A) tuple to an RGBA tuple.
    """
    if isinstance(color, (tuple, list)):
        values = tuple(int(c) for c in color)
    else:
        try:
            values = ImageColor.getrgb(str(color))
        except ValueError as e:
            raise InvalidInputError("Unrecognised colour", expected="CSS colour", actual=color) from e
    if len(values) == 3:
        values = values + (255,)
    if len(values) != 4:
        raise InvalidInputError("Colour must have 3 or 4 components", actual=color)
    return values


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, create if it doesn't

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


__all__ = [
    'Timer', 'Outcome', 'LoggerFactory', 'get_logger', 'log_execution_time', 'stage_context',
    'mime_to_extension', 'decode_image', 'encode_image', 'image_size',
    'to_data_url', 'parse_color', 'ensure_directory', 'RGBA'
]
