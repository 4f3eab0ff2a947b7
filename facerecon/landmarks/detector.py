"""
Facial landmark detection.

The pipeline only needs ``detect(image) -> List[Keypoint]``; the default
implementation wraps the MediaPipe face landmarker task in image mode and
converts its normalised landmarks to image pixel space.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Union

import cv2
import numpy as np

from ..config import LANDMARK_CONFIG
from ..geometry.types import Keypoint
from ..utils.exceptions import (
    InvalidInputError, ModelInferenceError, ModelLoadError,
    NoFaceDetected, NoKeypointsDetected
)
from ..utils.logging_utils import get_logger, log_execution_time

logger = get_logger(__name__)


class LandmarkDetector(Protocol):
    """Anything that turns a BGR image into pixel-space keypoints."""

    def detect(self, image: np.ndarray) -> List[Keypoint]:
        ...


def landmarks_to_keypoints(landmarks, width: int, height: int) -> List[Keypoint]:
    """
    Convert normalised MediaPipe landmarks to pixel-space keypoints.

    MediaPipe's z shares the x scale, so it is multiplied by the width.
    """
    return [
        Keypoint(x=float(lm.x * width), y=float(lm.y * height), z=float(lm.z * width))
        for lm in landmarks
    ]


def ensure_landmarker_model(path: Union[str, Path] = LANDMARK_CONFIG["model_path"],
                            url: str = LANDMARK_CONFIG["model_url"]) -> Path:
    """Return the face landmarker model file, downloading it on first use."""
    path = Path(path)
    if path.is_file():
        return path

    logger.info(f"Downloading face landmarker model to {path}")
    try:
        import torch

        path.parent.mkdir(parents=True, exist_ok=True)
        torch.hub.download_url_to_file(url, str(path), progress=False)
    except (ImportError, OSError, RuntimeError) as e:
        raise ModelLoadError("mediapipe-face-landmarker", path=str(path), cause=e) from e
    return path


class MediaPipeLandmarkDetector:
    """
    MediaPipe face landmarker wrapper for single-face landmark detection.

    The landmarker is created lazily on first use and reused for
    subsequent calls. Unless ``refine_landmarks`` is set, the iris points
    the model appends are dropped so keypoints match the face mesh topology.

    Args:
        model_path: ``face_landmarker.task`` file (downloaded when missing)
        max_num_faces: Faces the landmarker may return
        refine_landmarks: Keep the iris landmarks
        min_detection_confidence: Face detection threshold
        keypoint_count: Number of mesh landmarks kept without refinement
    """

    def __init__(self, model_path: Union[str, Path] = LANDMARK_CONFIG["model_path"],
                 max_num_faces: int = LANDMARK_CONFIG["max_num_faces"],
                 refine_landmarks: bool = LANDMARK_CONFIG["refine_landmarks"],
                 min_detection_confidence: float = LANDMARK_CONFIG["min_detection_confidence"],
                 keypoint_count: int = LANDMARK_CONFIG["keypoint_count"]):
        self.model_path = Path(model_path)
        self.max_num_faces = max_num_faces
        self.refine_landmarks = refine_landmarks
        self.min_detection_confidence = min_detection_confidence
        self.keypoint_count = keypoint_count
        self._landmarker = None

    def _load_model(self):
        """Create the MediaPipe face landmarker."""
        model_path = ensure_landmarker_model(self.model_path)
        try:
            from mediapipe.tasks import python as mp_tasks
            from mediapipe.tasks.python import vision

            options = vision.FaceLandmarkerOptions(
                base_options=mp_tasks.BaseOptions(model_asset_path=str(model_path)),
                running_mode=vision.RunningMode.IMAGE,
                num_faces=self.max_num_faces,
                min_face_detection_confidence=self.min_detection_confidence,
            )
            landmarker = vision.FaceLandmarker.create_from_options(options)
        except (ImportError, AttributeError, RuntimeError, ValueError) as e:
            raise ModelLoadError("mediapipe-face-landmarker", path=str(model_path), cause=e) from e
        logger.info(f"Loaded MediaPipe face landmarker from {model_path}")
        return landmarker

    def select_landmarks(self, landmarks: list) -> list:
        """Drop the iris landmarks unless refinement was requested."""
        if self.refine_landmarks:
            return list(landmarks)
        return list(landmarks)[:self.keypoint_count]

    @log_execution_time()
    def detect(self, image: np.ndarray) -> List[Keypoint]:
        """
        Detect the landmarks of the first face in ``image``.

        Args:
            image: Input image (H, W, 3) in BGR format

        Returns:
            Keypoints in pixel coordinates
        """
        if image is None or image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
            raise InvalidInputError("Expected a colour image", expected="(H, W, 3)",
                                    actual=None if image is None else image.shape)

        if self._landmarker is None:
            self._landmarker = self._load_model()

        import mediapipe as mp

        height, width = image.shape[:2]
        image_rgb = np.ascontiguousarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
        try:
            results = self._landmarker.detect(mp.Image(image_format=mp.ImageFormat.SRGB, data=image_rgb))
        except (RuntimeError, ValueError) as e:
            raise ModelInferenceError("mediapipe-face-landmarker", input_shape=image.shape, cause=e) from e

        if not results.face_landmarks:
            logger.warning("No faces detected in the image.")
            raise NoFaceDetected(image.shape)

        landmarks = self.select_landmarks(results.face_landmarks[0])
        if not landmarks:
            logger.error("No keypoints detected.")
            raise NoKeypointsDetected(image.shape)

        keypoints = landmarks_to_keypoints(landmarks, width, height)
        logger.info(f"Detected {len(keypoints)} facial keypoints")
        return keypoints

    def close(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def require_keypoints(keypoints: Optional[List[Keypoint]], image_shape: Optional[tuple] = None) -> List[Keypoint]:
    """Guard used by consumers of any detector: empty output means no face."""
    if not keypoints:
        raise NoFaceDetected(image_shape)
    return list(keypoints)
