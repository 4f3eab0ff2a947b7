"""
Core geometry data types shared by the reconstruction components.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import numpy as np

MESH_KINDS = ("points", "edges", "faces", "uv_faces", "displaced", "image_plane")


@dataclass(frozen=True)
class Keypoint:
    """A detected facial landmark in image pixel space; ``z`` is model-relative."""

    x: float
    y: float
    z: Optional[float] = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Keypoint":
        return cls(x=values["x"], y=values["y"], z=values.get("z"))

    def is_valid(self) -> bool:
        """True when x/y are finite numbers."""
        for value in (self.x, self.y):
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                return False
            if not math.isfinite(value):
                return False
        return True


def readonly(array: np.ndarray) -> np.ndarray:
    """Clear the write flag so shared buffers cannot be mutated in place."""
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Geometry:
    """
    Flat buffers describing one renderable object.

    Attributes:
        positions: float32 (N*3,) vertex positions
        indices: int (F*3,) triangle indices, None for non-indexed geometry
        uvs: float32 (N*2,) texture coordinates
        normals: float32 (N*3,) vertex normals
        segments: int (E*2,) line segment vertex pairs
    """

    positions: np.ndarray
    indices: Optional[np.ndarray] = None
    uvs: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    segments: Optional[np.ndarray] = None

    @property
    def vertex_count(self) -> int:
        return int(self.positions.size // 3)

    @property
    def face_count(self) -> int:
        if self.indices is not None:
            return int(self.indices.size // 3)
        return self.vertex_count // 3

    def positions_3d(self) -> np.ndarray:
        return self.positions.reshape(-1, 3)


@dataclass(frozen=True, eq=False)
class Material:
    """Material flags understood by the scene graph and exporters."""

    color: Optional[str] = None
    size: Optional[float] = None
    line_width: Optional[float] = None
    wireframe: bool = False
    texture: Optional[np.ndarray] = None
    displacement_map: Optional[np.ndarray] = None
    displacement_scale: float = 0.0
    double_sided: bool = False
    transparent: bool = False


@dataclass(frozen=True, eq=False)
class MeshDescriptor:
    """
    Geometry + material pair ready to be placed in a scene.

    ``rotation_x`` and ``position_y`` place the object relative to the
    image plane (faces are laid flat with a rotation of -pi/2 about X).
    """

    name: str
    kind: str
    geometry: Geometry
    material: Material = field(default_factory=Material)
    rotation_x: float = 0.0
    position_y: float = 0.0

    def __post_init__(self):
        if self.kind not in MESH_KINDS:
            raise ValueError(f"Unknown mesh kind '{self.kind}'")

    def world_positions(self) -> np.ndarray:
        """Vertex positions after applying the rotation about X and the lift."""
        points = self.geometry.positions_3d().astype(np.float64)
        c, s = math.cos(self.rotation_x), math.sin(self.rotation_x)
        rotation = np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])
        world = points @ rotation.T
        world[:, 1] += self.position_y
        return world
