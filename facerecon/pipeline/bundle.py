"""
The visualization bundle: the canonical artifact of the prediction stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from ..geometry.projection import project_vertices
from ..geometry.triangulation import TriangulationIndex
from ..geometry.types import Keypoint, readonly
from ..overlay.renderer import (
    LAYER_COMBINED, LAYER_KEYPOINTS, LAYER_OUTER_RING, LAYER_TRIANGULATION, OverlayRenderer
)
from ..style import StyleConfig
from ..utils import to_data_url
from ..utils.exceptions import InvalidInputError
from ..utils.logging_utils import get_logger, log_execution_time

logger = get_logger(__name__)

# Overlay names used in exported archives
EXPORT_NAMES = {
    "keypointsImage": LAYER_KEYPOINTS,
    "outerRingImage": LAYER_OUTER_RING,
    "triangulationImage": LAYER_TRIANGULATION,
    "combinedImage": LAYER_COMBINED,
}


@dataclass(frozen=True, eq=False)
class VisualizationBundle:
    """
    Read-only prediction output shared by every later stage.

    Overlay fields hold encoded PNG bytes, or ``None`` when that layer
    failed to render.
    """

    vertices: np.ndarray
    indices: np.ndarray
    keypoints_image: Optional[bytes]
    outer_ring_image: Optional[bytes]
    triangulation_image: Optional[bytes]
    combined_image: Optional[bytes]
    keypoints: Tuple[Keypoint, ...] = ()
    image_size: Tuple[int, int] = (0, 0)

    def overlay(self, layer: str) -> Optional[bytes]:
        return {
            LAYER_KEYPOINTS: self.keypoints_image,
            LAYER_OUTER_RING: self.outer_ring_image,
            LAYER_TRIANGULATION: self.triangulation_image,
            LAYER_COMBINED: self.combined_image,
        }[layer]

    def overlays(self) -> Dict[str, Optional[bytes]]:
        """Overlay bytes keyed by their export names (``combinedImage``, ...)."""
        return {name: self.overlay(layer) for name, layer in EXPORT_NAMES.items()}

    def data_url(self, name: str) -> Optional[str]:
        """Overlay as a ``data:image/png;base64,...`` URL, by export name."""
        data = self.overlays().get(name)
        return to_data_url(data) if data else None


@log_execution_time()
def build_visualizations(keypoints: Sequence[Keypoint], width: int, height: int,
                         topology: TriangulationIndex, config: StyleConfig) -> VisualizationBundle:
    """
    Project keypoints and draw every overlay layer.

    Args:
        keypoints: Detected keypoints in pixel space
        width: Source image width
        height: Source image height
        topology: Shared triangulation/outline table
        config: Resolved style config

    Returns:
        VisualizationBundle with read-only buffers
    """
    if not keypoints:
        raise InvalidInputError("No keypoints to visualize", expected=">= 1 keypoint", actual=0)
    topology.validate(len(keypoints))

    vertices = readonly(project_vertices(keypoints, width, height))
    indices = topology.faces()

    layers = OverlayRenderer(topology, config).render_all(keypoints, width, height)
    failed = [layer for layer, data in layers.items() if data is None]
    if failed:
        logger.warning(f"Overlay layers unavailable: {', '.join(failed)}")

    return VisualizationBundle(
        vertices=vertices,
        indices=indices,
        keypoints_image=layers[LAYER_KEYPOINTS],
        outer_ring_image=layers[LAYER_OUTER_RING],
        triangulation_image=layers[LAYER_TRIANGULATION],
        combined_image=layers[LAYER_COMBINED],
        keypoints=tuple(keypoints),
        image_size=(int(width), int(height)),
    )
