"""
Asset export module initialization.

Provides binary glTF export of reconstructed meshes and packaging of all
assets into a zip archive.
"""

from .gltf import descriptor_to_trimesh, descriptors_to_scene, descriptor_transform, export_glb
from .archive import build_asset_archive, write_archive, transcode

__all__ = [
    'descriptor_to_trimesh',
    'descriptors_to_scene',
    'descriptor_transform',
    'export_glb',
    'build_asset_archive',
    'write_archive',
    'transcode'
]
