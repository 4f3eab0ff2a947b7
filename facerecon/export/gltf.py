"""
Conversion of mesh descriptors to trimesh objects and binary glTF.
"""

from __future__ import annotations

from typing import Iterable, Optional

import cv2
import numpy as np
import trimesh
from PIL import Image

from ..geometry.types import MeshDescriptor
from ..utils import parse_color
from ..utils.exceptions import ExportError
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


def texture_to_pil(texture: np.ndarray) -> Image.Image:
    """Convert an OpenCV-ordered texture (gray, BGR or BGRA) to a PIL image."""
    if texture.ndim == 2:
        return Image.fromarray(texture.astype(np.uint8))
    if texture.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(texture, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(cv2.cvtColor(texture, cv2.COLOR_BGR2RGB))


def descriptor_transform(descriptor: MeshDescriptor) -> np.ndarray:
    """4x4 node transform: rotation about X followed by the vertical lift."""
    matrix = trimesh.transformations.rotation_matrix(descriptor.rotation_x, [1, 0, 0])
    matrix[1, 3] = descriptor.position_y
    return matrix


def descriptor_to_trimesh(descriptor: MeshDescriptor) -> "trimesh.parent.Geometry":
    """
    Build the trimesh geometry for a descriptor in its local frame.

    Points become a ``PointCloud``, edges a ``Path3D`` and every surface
    kind a ``Trimesh`` (textured when UVs and a texture are present).
    """
    geometry = descriptor.geometry
    material = descriptor.material
    vertices = geometry.positions_3d().astype(np.float64)

    if descriptor.kind == "points":
        colors = None
        if material.color is not None:
            colors = np.tile(np.array(parse_color(material.color), dtype=np.uint8), (len(vertices), 1))
        return trimesh.PointCloud(vertices, colors=colors)

    if descriptor.kind == "edges":
        segments = np.asarray(geometry.segments, dtype=np.int64).reshape(-1, 2)
        return trimesh.load_path(vertices[segments])

    if geometry.indices is not None:
        faces = np.asarray(geometry.indices, dtype=np.int64).reshape(-1, 3)
    else:
        faces = np.arange(len(vertices), dtype=np.int64).reshape(-1, 3)

    visual = None
    if geometry.uvs is not None and material.texture is not None:
        visual = trimesh.visual.TextureVisuals(
            uv=geometry.uvs.reshape(-1, 2).astype(np.float64),
            image=texture_to_pil(material.texture)
        )

    vertex_normals = None
    if geometry.normals is not None:
        vertex_normals = geometry.normals.reshape(-1, 3).astype(np.float64)

    mesh = trimesh.Trimesh(vertices=vertices, faces=faces, vertex_normals=vertex_normals,
                           visual=visual, process=False)
    if visual is None and material.color is not None:
        mesh.visual.face_colors = parse_color(material.color)
    return mesh


def descriptors_to_scene(descriptors: Iterable[MeshDescriptor]) -> trimesh.Scene:
    """Place every descriptor in a trimesh scene under its own node."""
    scene = trimesh.Scene()
    for descriptor in descriptors:
        scene.add_geometry(descriptor_to_trimesh(descriptor), node_name=descriptor.name,
                           geom_name=descriptor.name, transform=descriptor_transform(descriptor))
    return scene


def export_glb(descriptor: Optional[MeshDescriptor]) -> bytes:
    """
    Export one surface descriptor as binary glTF.

    Raises:
        ExportError: when there is no mesh or the exporter rejects it
    """
    if descriptor is None:
        raise ExportError("No mesh available for 3D export", asset="glb")
    if descriptor.kind in ("points", "edges"):
        raise ExportError(f"Cannot export '{descriptor.kind}' geometry as a surface", asset="glb")

    try:
        data = descriptors_to_scene([descriptor]).export(file_type="glb")
    except (ValueError, TypeError, KeyError, IndexError) as e:
        raise ExportError("3D model export failed", asset=descriptor.name, cause=e) from e

    if not data:
        raise ExportError("3D model export produced no data", asset=descriptor.name)
    logger.info(f"Exported {descriptor.name} as GLB ({len(data)} bytes)")
    return data
