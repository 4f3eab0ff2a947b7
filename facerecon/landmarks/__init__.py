"""
Facial landmark detection module initialization.
"""

from .detector import (
    LandmarkDetector, MediaPipeLandmarkDetector, ensure_landmarker_model,
    landmarks_to_keypoints, require_keypoints
)

__all__ = [
    'LandmarkDetector',
    'MediaPipeLandmarkDetector',
    'ensure_landmarker_model',
    'landmarks_to_keypoints',
    'require_keypoints'
]
