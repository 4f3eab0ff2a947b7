"""
2D debug/preview overlays rasterized at native image resolution.

Four independent layers are drawn onto transparent RGBA canvases:
keypoints, outer-ring outline, triangulation wireframe and a combined
layer (triangulation, then outline, then keypoints).
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..geometry.triangulation import TriangulationIndex
from ..geometry.types import Keypoint
from ..style import StyleConfig
from ..utils import RGBA, encode_image, parse_color
from ..utils.exceptions import ImageProcessingError, InvalidInputError
from ..utils.logging_utils import get_logger
from ..utils.result import Outcome

logger = get_logger(__name__)

LAYER_KEYPOINTS = "keypoints"
LAYER_OUTER_RING = "outer_ring"
LAYER_TRIANGULATION = "triangulation"
LAYER_COMBINED = "combined"
LAYERS = (LAYER_KEYPOINTS, LAYER_OUTER_RING, LAYER_TRIANGULATION, LAYER_COMBINED)

# Sub-pixel precision for OpenCV drawing (coordinates scaled by 2**SHIFT)
SHIFT = 4
SUBPIXEL = 1 << SHIFT


class Canvas:
    """
    Minimal 2D drawing surface backed by an RGBA numpy array.

    Mirrors the path model of an HTML canvas: a path is built with
    ``move_to``/``line_to``/``close_path`` and drawn with ``stroke``.
    Every path operation is recorded in :attr:`operations`.
    """

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise InvalidInputError("Canvas dimensions must be positive", actual=(width, height))
        self.width = int(width)
        self.height = int(height)
        self.pixels = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        self.stroke_color: RGBA = (0, 0, 0, 255)
        self.fill_color: RGBA = (0, 0, 0, 255)
        self.line_width: float = 1.0
        self.operations: List[tuple] = []
        self._subpaths: List[Tuple[List[Tuple[float, float]], bool]] = []

    def set_stroke(self, color, width: float) -> None:
        self.stroke_color = parse_color(color)
        self.line_width = width

    def set_fill(self, color) -> None:
        self.fill_color = parse_color(color)

    def begin_path(self) -> None:
        self.operations.append(("begin_path",))
        self._subpaths = []

    def move_to(self, x: float, y: float) -> None:
        self.operations.append(("move_to", x, y))
        self._subpaths.append(([(x, y)], False))

    def line_to(self, x: float, y: float) -> None:
        self.operations.append(("line_to", x, y))
        if not self._subpaths:
            self._subpaths.append(([(x, y)], False))
        else:
            self._subpaths[-1][0].append((x, y))

    def close_path(self) -> None:
        self.operations.append(("close_path",))
        if self._subpaths:
            points, _ = self._subpaths[-1]
            self._subpaths[-1] = (points, True)

    def stroke(self) -> None:
        self.operations.append(("stroke",))
        thickness = max(1, int(round(self.line_width)))
        for points, closed in self._subpaths:
            if len(points) < 2:
                continue
            pts = np.round(np.array(points, dtype=np.float64) * SUBPIXEL).astype(np.int32)
            cv2.polylines(self.pixels, [pts.reshape(-1, 1, 2)], closed, self.stroke_color,
                          thickness, cv2.LINE_AA, SHIFT)

    def fill_circle(self, x: float, y: float, radius: float) -> None:
        self.operations.append(("fill_circle", x, y, radius))
        center = (int(round(x * SUBPIXEL)), int(round(y * SUBPIXEL)))
        cv2.circle(self.pixels, center, int(round(radius * SUBPIXEL)), self.fill_color,
                   -1, cv2.LINE_AA, SHIFT)

    def count(self, operation: str) -> int:
        return sum(1 for op in self.operations if op[0] == operation)

    def to_bgra(self) -> np.ndarray:
        return cv2.cvtColor(self.pixels, cv2.COLOR_RGBA2BGRA)

    def encode(self, fmt: str = "image/png") -> bytes:
        """Encode the canvas (PNG keeps transparency)."""
        return encode_image(self.to_bgra(), fmt)


class OverlayRenderer:
    """
    Draws landmark overlays for one image.

    Args:
        topology: Shared triangulation/outline table
        config: Resolved style config
    """

    def __init__(self, topology: TriangulationIndex, config: StyleConfig):
        self.topology = topology
        self.config = config

    @staticmethod
    def _point(keypoints: Sequence[Keypoint], index: int) -> Optional[Keypoint]:
        if index < 0 or index >= len(keypoints):
            return None
        keypoint = keypoints[index]
        if keypoint is None or not keypoint.is_valid():
            return None
        return keypoint

    def draw_keypoints(self, canvas: Canvas, keypoints: Sequence[Keypoint]) -> None:
        """Filled circle of radius ``point_size`` at every keypoint."""
        canvas.set_fill(self.config.point_color)
        for index in range(len(keypoints)):
            keypoint = self._point(keypoints, index)
            if keypoint is None:
                logger.warning(f"Skipping invalid keypoint {index}: {keypoints[index]!r}")
                continue
            canvas.begin_path()
            canvas.fill_circle(keypoint.x, keypoint.y, self.config.point_size)

    def draw_outer_ring(self, canvas: Canvas, keypoints: Sequence[Keypoint]) -> None:
        """Closed polyline through the outer-ring landmarks in table order."""
        canvas.set_stroke(self.config.outer_ring_color, self.config.outer_ring_width)
        canvas.begin_path()
        started = False
        for index in self.topology.outline():
            keypoint = self._point(keypoints, int(index))
            if keypoint is None:
                logger.warning(f"Skipping missing outer ring keypoint {int(index)}")
                continue
            if not started:
                canvas.move_to(keypoint.x, keypoint.y)
                started = True
            else:
                canvas.line_to(keypoint.x, keypoint.y)
        canvas.close_path()
        canvas.stroke()

    def draw_triangulation(self, canvas: Canvas, keypoints: Sequence[Keypoint]) -> None:
        """Stroked, unfilled outline of every triangle."""
        canvas.set_stroke(self.config.triangulation_color, self.config.triangulation_width)
        faces = self.topology.faces().reshape(-1, 3)
        for i1, i2, i3 in faces:
            p1, p2, p3 = (self._point(keypoints, int(i)) for i in (i1, i2, i3))
            if p1 is None or p2 is None or p3 is None:
                logger.warning(f"Skipping triangle ({i1}, {i2}, {i3}) with invalid keypoints")
                continue
            canvas.begin_path()
            canvas.move_to(p1.x, p1.y)
            canvas.line_to(p2.x, p2.y)
            canvas.line_to(p3.x, p3.y)
            canvas.close_path()
            canvas.stroke()

    def draw_combined(self, canvas: Canvas, keypoints: Sequence[Keypoint]) -> None:
        """Triangulation, then outline, then keypoints on one surface."""
        self.draw_triangulation(canvas, keypoints)
        self.draw_outer_ring(canvas, keypoints)
        self.draw_keypoints(canvas, keypoints)

    def draw_layer(self, layer: str, keypoints: Sequence[Keypoint], width: int, height: int) -> Canvas:
        drawers = {
            LAYER_KEYPOINTS: self.draw_keypoints,
            LAYER_OUTER_RING: self.draw_outer_ring,
            LAYER_TRIANGULATION: self.draw_triangulation,
            LAYER_COMBINED: self.draw_combined,
        }
        if layer not in drawers:
            raise InvalidInputError("Unknown overlay layer", expected=LAYERS, actual=layer)
        canvas = Canvas(width, height)
        drawers[layer](canvas, keypoints)
        return canvas

    def render_layer(self, layer: str, keypoints: Sequence[Keypoint], width: int,
                     height: int) -> Outcome[bytes]:
        """Draw and encode one layer; failures are logged and returned."""
        try:
            canvas = self.draw_layer(layer, keypoints, width, height)
            return Outcome.success(canvas.encode("image/png"))
        except (cv2.error, ImageProcessingError, InvalidInputError) as e:
            logger.error(f"Failed to render {layer} overlay: {e}")
            return Outcome.failure(e)

    def render_all(self, keypoints: Sequence[Keypoint], width: int, height: int) -> Dict[str, Optional[bytes]]:
        """Encoded PNG bytes per layer; a failed layer maps to ``None``."""
        return {
            layer: self.render_layer(layer, keypoints, width, height).value_or_none()
            for layer in LAYERS
        }
