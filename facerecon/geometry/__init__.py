"""
Geometry reconstruction: keypoint projection, face topology and mesh assembly.
"""

from .types import Keypoint, Geometry, Material, MeshDescriptor
from .projection import (
    VertexProjector, Projection, project_vertices, uv_from_keypoints,
    uv_from_vertices, UV_IMAGE, UV_CENTERED
)
from .triangulation import TriangulationIndex, default_triangulation
from .mesh import (
    MeshAssembler, adjust_vertices, build_points, build_edges, build_faces,
    build_uv_faces, build_image_plane, build_plane
)

__all__ = [
    'Keypoint',
    'Geometry',
    'Material',
    'MeshDescriptor',
    'VertexProjector',
    'Projection',
    'project_vertices',
    'uv_from_keypoints',
    'uv_from_vertices',
    'UV_IMAGE',
    'UV_CENTERED',
    'TriangulationIndex',
    'default_triangulation',
    'MeshAssembler',
    'adjust_vertices',
    'build_points',
    'build_edges',
    'build_faces',
    'build_uv_faces',
    'build_image_plane',
    'build_plane'
]
