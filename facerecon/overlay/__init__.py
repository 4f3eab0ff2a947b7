"""
Overlay rendering module initialization.

Rasterizes keypoint, outline and triangulation overlays for inspection
and export.
"""

from .renderer import (
    Canvas, OverlayRenderer, parse_color, LAYERS, LAYER_KEYPOINTS,
    LAYER_OUTER_RING, LAYER_TRIANGULATION, LAYER_COMBINED
)

__all__ = [
    'Canvas',
    'OverlayRenderer',
    'parse_color',
    'LAYERS',
    'LAYER_KEYPOINTS',
    'LAYER_OUTER_RING',
    'LAYER_TRIANGULATION',
    'LAYER_COMBINED'
]
