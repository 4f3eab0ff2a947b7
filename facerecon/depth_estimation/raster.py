"""
Depth raster encode/decode helpers.

A depth raster travels between the depth stage, the displacer and the
exporter as an encoded grayscale image (the displacement map).
"""

import cv2
import numpy as np

from ..utils import decode_image, encode_image
from ..utils.exceptions import InvalidInputError


def encode_depth_raster(raster: np.ndarray, invert: bool = False, fmt: str = "image/png") -> bytes:
    """
    Encode a depth raster as an 8-bit grayscale image.

    Values are clipped to [0, 1] and scaled to 0..255; ``invert`` flips
    the map (255 - value).
    """
    raster = np.asarray(raster, dtype=np.float32)
    if raster.ndim != 2 or raster.size == 0:
        raise InvalidInputError("Depth raster must be a 2D array", expected="(H, W)", actual=raster.shape)

    gray = np.round(np.clip(np.nan_to_num(raster), 0.0, 1.0) * 255.0).astype(np.uint8)
    if invert:
        gray = 255 - gray
    return encode_image(gray, fmt)


def decode_depth_map(data: bytes) -> np.ndarray:
    """Decode an encoded displacement map into a float32 raster in [0, 1]."""
    gray = decode_image(data, cv2.IMREAD_GRAYSCALE)
    return gray.astype(np.float32) / 255.0
