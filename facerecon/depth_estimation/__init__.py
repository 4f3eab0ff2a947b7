"""
Depth estimation module initialization.

This module provides monocular depth estimation (MiDaS) and the
depth-driven displacement of the reconstructed face mesh.
"""

from .midas import (
    MiDaSModel, MiDaSDepthEstimator, DepthEstimator, DepthOptions,
    normalize_depth, options_from_config
)
from .raster import encode_depth_raster, decode_depth_map
from .displacement import DepthDisplacer, compute_vertex_normals, sample_depth, to_non_indexed

__all__ = [
    'MiDaSModel',
    'MiDaSDepthEstimator',
    'DepthEstimator',
    'DepthOptions',
    'normalize_depth',
    'options_from_config',
    'encode_depth_raster',
    'decode_depth_map',
    'DepthDisplacer',
    'compute_vertex_normals',
    'sample_depth',
    'to_non_indexed'
]
