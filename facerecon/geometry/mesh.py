"""
Mesh assembly: renderable descriptors built from vertex/index buffers.

Every builder is a pure function of ``(vertices, indices, config)``: the
input buffers are never modified and repeated calls produce identical
arrays. All variants share :func:`adjust_vertices` as their single
normalisation step.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Sequence

import numpy as np

from ..style import StyleConfig
from ..utils.exceptions import GeometryBuildError
from ..utils.logging_utils import get_logger
from ..utils.result import Outcome
from .projection import uv_from_vertices
from .triangulation import TriangulationIndex
from .types import Geometry, Material, MeshDescriptor, readonly

logger = get_logger(__name__)

# Lays the XY face geometry flat on the XZ image plane
LAY_FLAT = -math.pi / 2
POINT_SIZE_RATIO = 0.1


def _as_vertex_array(vertices: Optional[Sequence[float]], variant: str) -> np.ndarray:
    if vertices is None:
        raise GeometryBuildError(variant, "vertices are missing")
    array = np.asarray(vertices, dtype=np.float64).reshape(-1)
    if array.size == 0 or array.size % 3 != 0:
        raise GeometryBuildError(variant, f"vertex buffer length {array.size} is not a positive multiple of 3")
    return array


def _as_index_array(indices: Optional[Sequence[int]], vertex_count: int, variant: str) -> np.ndarray:
    if indices is None:
        raise GeometryBuildError(variant, "indices are missing")
    array = np.asarray(indices, dtype=np.int64).reshape(-1)
    if array.size == 0 or array.size % 3 != 0:
        raise GeometryBuildError(variant, f"index buffer length {array.size} is not a positive multiple of 3")
    if array.min() < 0 or array.max() >= vertex_count:
        raise GeometryBuildError(variant, f"indices must lie in [0, {vertex_count})")
    return array.astype(np.int32)


def adjust_vertices(vertices: Sequence[float], config: StyleConfig) -> np.ndarray:
    """
    Scale every component by ``planar_scale``; negate z when ``invert_depth``.

    Returns a new float32 buffer; the input is left untouched.
    """
    points = _as_vertex_array(vertices, "adjust").reshape(-1, 3) * config.planar_scale
    if config.invert_depth:
        points[:, 2] = -points[:, 2]
    return readonly(points.astype(np.float32).reshape(-1))


def build_points(vertices: Sequence[float], config: StyleConfig, name: str = "vertices") -> MeshDescriptor:
    """One renderable point per vertex."""
    positions = adjust_vertices(_as_vertex_array(vertices, "points"), config)
    return MeshDescriptor(
        name=name,
        kind="points",
        geometry=Geometry(positions=positions),
        material=Material(
            color=config.point_color,
            size=config.point_size * POINT_SIZE_RATIO * config.planar_scale
        ),
        rotation_x=LAY_FLAT,
        position_y=config.lift_offset,
    )


def build_edges(vertices: Sequence[float], indices: Sequence[int], config: StyleConfig,
                name: str = "edges") -> MeshDescriptor:
    """
    Line segments for every triangle edge.

    Edges come from :meth:`TriangulationIndex.edges_of`, so an edge shared
    by two faces appears twice.
    """
    raw = _as_vertex_array(vertices, "edges")
    faces = _as_index_array(indices, raw.size // 3, "edges")
    positions = adjust_vertices(raw, config)
    segments = readonly(TriangulationIndex.edges_of(faces))
    return MeshDescriptor(
        name=name,
        kind="edges",
        geometry=Geometry(positions=positions, segments=segments),
        material=Material(color=config.triangulation_color, line_width=config.triangulation_width),
        rotation_x=LAY_FLAT,
        position_y=config.lift_offset,
    )


def build_faces(vertices: Sequence[float], indices: Sequence[int], config: StyleConfig,
                wireframe: bool = False, name: str = "faces") -> MeshDescriptor:
    """Indexed triangle mesh, solid or wireframe-only."""
    raw = _as_vertex_array(vertices, "faces")
    faces = _as_index_array(indices, raw.size // 3, "faces")
    return MeshDescriptor(
        name=name,
        kind="faces",
        geometry=Geometry(positions=adjust_vertices(raw, config), indices=readonly(faces)),
        material=Material(color=config.triangulation_color, wireframe=wireframe, double_sided=True),
        rotation_x=LAY_FLAT,
        position_y=config.lift_offset,
    )


def build_uv_faces(vertices: Optional[Sequence[float]], indices: Optional[Sequence[int]],
                   texture: np.ndarray, config: StyleConfig, name: str = "uv_face") -> MeshDescriptor:
    """
    Texture-mapped face mesh.

    UVs are computed from the raw vertex positions against the texture
    size; positions are the adjusted ones.

    Args:
        vertices: Raw (unscaled) vertex buffer
        indices: Triangle index buffer
        texture: Source image (H, W, C) used as the colour map
        config: Resolved style config
    """
    raw = _as_vertex_array(vertices, "uv_faces")
    faces = _as_index_array(indices, raw.size // 3, "uv_faces")
    if texture is None or texture.ndim < 2:
        raise GeometryBuildError("uv_faces", "texture image is missing")

    tex_h, tex_w = texture.shape[:2]
    uvs = uv_from_vertices(raw, tex_w, tex_h)
    return MeshDescriptor(
        name=name,
        kind="uv_faces",
        geometry=Geometry(
            positions=adjust_vertices(raw, config),
            indices=readonly(faces),
            uvs=readonly(uvs),
        ),
        material=Material(texture=texture, double_sided=True),
        rotation_x=LAY_FLAT,
        position_y=config.base_elevation,
    )


def build_plane(name: str, texture: np.ndarray, width: float, height: float,
                elevation: float = 0.0, transparent: bool = True) -> MeshDescriptor:
    """Textured rectangle lying flat on the image plane."""
    hw, hh = width / 2, height / 2
    positions = np.array([-hw, hh, 0, hw, hh, 0, -hw, -hh, 0, hw, -hh, 0], dtype=np.float32)
    uvs = np.array([0, 1, 1, 1, 0, 0, 1, 0], dtype=np.float32)
    indices = np.array([0, 2, 1, 2, 3, 1], dtype=np.int32)
    return MeshDescriptor(
        name=name,
        kind="image_plane",
        geometry=Geometry(positions=readonly(positions), indices=readonly(indices), uvs=readonly(uvs)),
        material=Material(texture=texture, double_sided=True, transparent=transparent),
        rotation_x=LAY_FLAT,
        position_y=elevation,
    )


def build_image_plane(image: np.ndarray, plane_width: float, name: str = "image") -> MeshDescriptor:
    """Source photo as a plane of ``plane_width`` keeping its aspect ratio."""
    if image is None or image.ndim < 2 or image.shape[0] == 0 or image.shape[1] == 0:
        raise GeometryBuildError("image_plane", "image is missing")
    aspect = image.shape[1] / image.shape[0]
    return build_plane(name, image, plane_width, plane_width / aspect)


class MeshAssembler:
    """
    Builds every mesh variant for one visualization bundle.

    Failures of a single variant are logged and returned as
    ``Outcome.failure`` so the other variants are unaffected.
    """

    def __init__(self, vertices: Optional[Sequence[float]], indices: Optional[Sequence[int]],
                 config: StyleConfig):
        self.vertices = vertices
        self.indices = indices
        self.config = config

    def _attempt(self, variant: str, builder: Callable[[], MeshDescriptor]) -> Outcome[MeshDescriptor]:
        try:
            return Outcome.success(builder())
        except GeometryBuildError as e:
            logger.error(f"Could not build {variant} mesh: {e}")
            return Outcome.failure(e)

    def points(self) -> Outcome[MeshDescriptor]:
        return self._attempt("points", lambda: build_points(self.vertices, self.config))

    def edges(self) -> Outcome[MeshDescriptor]:
        return self._attempt("edges", lambda: build_edges(self.vertices, self.indices, self.config))

    def faces(self, wireframe: bool = False) -> Outcome[MeshDescriptor]:
        name = "wireframe" if wireframe else "faces"
        return self._attempt(name, lambda: build_faces(self.vertices, self.indices, self.config,
                                                       wireframe=wireframe, name=name))

    def uv_faces(self, texture: np.ndarray) -> Outcome[MeshDescriptor]:
        return self._attempt("uv_faces", lambda: build_uv_faces(self.vertices, self.indices,
                                                                texture, self.config))
