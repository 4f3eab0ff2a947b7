"""
Projection of detected keypoints into scene-space vertex and UV buffers.

Image space has its origin at the top-left corner with Y pointing down;
scene space is centred on the image with Y pointing up.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..utils.exceptions import InvalidInputError
from .types import Keypoint, readonly

UV_IMAGE = "image"
UV_CENTERED = "centered"
UV_CONVENTIONS = (UV_IMAGE, UV_CENTERED)


@dataclass(frozen=True, eq=False)
class Projection:
    vertices: np.ndarray
    uvs: np.ndarray

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.size // 3)


def _check_dimensions(width: float, height: float) -> None:
    if not width or not height or width <= 0 or height <= 0:
        raise InvalidInputError(
            "Image dimensions must be positive",
            expected="width > 0 and height > 0",
            actual=(width, height)
        )


def _keypoint_array(keypoints: Sequence[Keypoint]) -> np.ndarray:
    if keypoints is None or len(keypoints) == 0:
        raise InvalidInputError("No keypoints to project", expected=">= 1 keypoint", actual=0)
    return np.array(
        [(kp.x, kp.y, kp.z if kp.z is not None else 0.0) for kp in keypoints],
        dtype=np.float64
    )


def project_vertices(keypoints: Sequence[Keypoint], width: float, height: float,
                     depth_scale: float = 1.0) -> np.ndarray:
    """
    Map keypoints to a flat vertex buffer centred on the image.

    ``x' = x - W/2``, ``y' = -(y - H/2)``, ``z' = z * depth_scale``
    (a missing z counts as 0).
    """
    _check_dimensions(width, height)
    points = _keypoint_array(keypoints)

    vertices = np.empty_like(points)
    vertices[:, 0] = points[:, 0] - width / 2
    vertices[:, 1] = -(points[:, 1] - height / 2)
    vertices[:, 2] = points[:, 2] * depth_scale
    return vertices.astype(np.float32).reshape(-1)


def uv_from_keypoints(keypoints: Sequence[Keypoint], width: float, height: float) -> np.ndarray:
    """Inference-time UVs: ``u = x/W``, ``v = 1 - y/H``."""
    _check_dimensions(width, height)
    points = _keypoint_array(keypoints)
    uvs = np.stack([points[:, 0] / width, 1.0 - points[:, 1] / height], axis=1)
    return uvs.astype(np.float32).reshape(-1)


def uv_from_vertices(vertices: np.ndarray, texture_width: float, texture_height: float) -> np.ndarray:
    """
    Texture-mapping UVs from centred vertex positions.

    ``u = vx/texW + 0.5``, ``v = vy/texH + 0.5``. Must be given the raw,
    unscaled vertex buffer so the mapping does not drift with scale.
    """
    _check_dimensions(texture_width, texture_height)
    points = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    uvs = np.stack([points[:, 0] / texture_width + 0.5,
                    points[:, 1] / texture_height + 0.5], axis=1)
    return uvs.astype(np.float32).reshape(-1)


class VertexProjector:
    """
    Converts keypoints into vertex and UV buffers for a reference image size.
    """

    def __init__(self, width: int, height: int, depth_scale: float = 1.0):
        _check_dimensions(width, height)
        self.width = width
        self.height = height
        self.depth_scale = depth_scale

    def project(self, keypoints: Sequence[Keypoint], uv_convention: str = UV_IMAGE,
                texture_size: Optional[tuple] = None) -> Projection:
        """
        Project keypoints and compute UVs with the requested convention.

        Args:
            keypoints: Detected keypoints
            uv_convention: ``"image"`` or ``"centered"``
            texture_size: ``(width, height)`` of the texture for the centred
                convention (defaults to the reference image size)

        Returns:
            Projection with read-only ``vertices`` and ``uvs``
        """
        if uv_convention not in UV_CONVENTIONS:
            raise InvalidInputError("Unknown UV convention", expected=UV_CONVENTIONS, actual=uv_convention)

        vertices = project_vertices(keypoints, self.width, self.height, self.depth_scale)
        if uv_convention == UV_IMAGE:
            uvs = uv_from_keypoints(keypoints, self.width, self.height)
        else:
            tex_w, tex_h = texture_size or (self.width, self.height)
            uvs = uv_from_vertices(vertices, tex_w, tex_h)

        return Projection(vertices=readonly(vertices), uvs=readonly(uvs))
