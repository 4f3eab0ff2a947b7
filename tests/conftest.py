"""
Shared fixtures: a tiny topology, synthetic images and model doubles.
"""

import numpy as np
import pytest

from facerecon.geometry import Keypoint, TriangulationIndex
from facerecon.style import StyleConfig
from facerecon.utils import encode_image


class FakeDetector:
    """Returns a fixed keypoint list and records every call."""

    def __init__(self, keypoints):
        self.keypoints = keypoints
        self.calls = 0

    def detect(self, image):
        self.calls += 1
        return list(self.keypoints)


class FakeDepthEstimator:
    """Returns a constant raster matching the input image."""

    def __init__(self, value=1.0, shape=None):
        self.value = value
        self.shape = shape
        self.calls = 0

    def estimate_depth(self, image, options):
        self.calls += 1
        shape = self.shape or image.shape[:2]
        return np.full(shape, self.value, dtype=np.float32)


@pytest.fixture
def square_topology():
    """Two triangles forming a square, outline around it."""
    return TriangulationIndex([0, 1, 2, 0, 2, 3], [0, 1, 2, 3])


@pytest.fixture
def square_keypoints():
    return [
        Keypoint(30.0, 30.0, 0.0),
        Keypoint(70.0, 30.0, 0.0),
        Keypoint(70.0, 70.0, 0.0),
        Keypoint(30.0, 70.0, 0.0),
    ]


@pytest.fixture
def image():
    """100x100 BGR gradient image."""
    gradient = np.tile(np.linspace(0, 255, 100, dtype=np.uint8), (100, 1))
    return np.dstack([gradient, gradient[::-1], np.full_like(gradient, 128)])


@pytest.fixture
def image_bytes(image):
    return encode_image(image, "image/png")


@pytest.fixture
def style():
    return StyleConfig()
