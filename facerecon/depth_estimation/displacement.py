"""
Depth-driven displacement of the UV-textured face mesh.

The UV mesh is expanded to non-indexed form so each triangle owns its
vertices, per-vertex normals are recomputed, and every vertex is pushed
along its normal by the depth sampled at its UV coordinate.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..geometry.types import Geometry, Material, MeshDescriptor, readonly
from ..style import StyleConfig
from ..utils.exceptions import GeometryBuildError
from ..utils.logging_utils import get_logger, log_execution_time
from .raster import decode_depth_map

logger = get_logger(__name__)


def to_non_indexed(geometry: Geometry) -> Geometry:
    """Expand an indexed geometry so every face references private vertices."""
    if geometry.indices is None:
        return geometry
    faces = np.asarray(geometry.indices, dtype=np.int64).reshape(-1)
    positions = geometry.positions.reshape(-1, 3)[faces].reshape(-1)
    uvs = None
    if geometry.uvs is not None:
        uvs = geometry.uvs.reshape(-1, 2)[faces].reshape(-1)
    return Geometry(positions=positions.astype(np.float32), uvs=uvs)


def compute_vertex_normals(positions: np.ndarray) -> np.ndarray:
    """
    Normals of a non-indexed triangle list.

    Each vertex gets the unit normal of its own triangle; degenerate
    triangles get a zero normal.
    """
    triangles = np.asarray(positions, dtype=np.float64).reshape(-1, 3, 3)
    normals = np.cross(triangles[:, 1] - triangles[:, 0], triangles[:, 2] - triangles[:, 0])
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)
    return np.repeat(normals, 3, axis=0).astype(np.float32).reshape(-1)


def sample_depth(depth: np.ndarray, uvs: np.ndarray) -> np.ndarray:
    """
    Bilinearly sample ``depth`` at UV coordinates.

    ``v = 0`` is the bottom row of the raster, matching how the texture
    is laid onto the mesh. Samples outside the raster clamp to the edge.
    """
    height, width = depth.shape[:2]
    coords = np.asarray(uvs, dtype=np.float64).reshape(-1, 2)
    map_x = (coords[:, 0] * (width - 1)).astype(np.float32).reshape(-1, 1)
    map_y = ((1.0 - coords[:, 1]) * (height - 1)).astype(np.float32).reshape(-1, 1)
    samples = cv2.remap(depth.astype(np.float32), map_x, map_y,
                        interpolation=cv2.INTER_LINEAR, borderMode=cv2.BORDER_REPLICATE)
    return samples.reshape(-1)


class DepthDisplacer:
    """
    Produces the displaced face surface from a UV mesh and a depth map.

    Args:
        config: Resolved style config; ``displacement_scale`` sets the depth
    """

    def __init__(self, config: StyleConfig):
        self.config = config

    @log_execution_time()
    def displace(self, uv_mesh: MeshDescriptor, depth_map: bytes,
                 name: str = "displaced_face") -> MeshDescriptor:
        """
        Build a new displaced mesh; ``uv_mesh`` is not modified.

        Args:
            uv_mesh: UV-textured face descriptor
            depth_map: Encoded grayscale displacement map
            name: Name of the resulting descriptor

        Returns:
            Non-indexed ``displaced`` mesh descriptor
        """
        geometry = uv_mesh.geometry
        if uv_mesh.kind != "uv_faces" or geometry.uvs is None:
            raise GeometryBuildError("displaced", "a UV-textured face mesh is required")

        depth = decode_depth_map(depth_map)
        flat = to_non_indexed(geometry)
        normals = compute_vertex_normals(flat.positions)

        samples = sample_depth(depth, flat.uvs)
        offsets = normals.reshape(-1, 3) * (samples * self.config.displacement_scale)[:, None]
        positions = (flat.positions.reshape(-1, 3).astype(np.float64) + offsets).astype(np.float32).reshape(-1)

        logger.info(f"Displaced {flat.vertex_count} vertices (scale={self.config.displacement_scale:.4f})")
        return MeshDescriptor(
            name=name,
            kind="displaced",
            geometry=Geometry(
                positions=readonly(positions),
                uvs=readonly(np.array(flat.uvs, dtype=np.float32)),
                normals=readonly(compute_vertex_normals(positions)),
            ),
            material=Material(
                texture=uv_mesh.material.texture,
                displacement_map=depth,
                displacement_scale=self.config.displacement_scale,
                double_sided=True,
            ),
            rotation_x=uv_mesh.rotation_x,
            position_y=uv_mesh.position_y,
        )
