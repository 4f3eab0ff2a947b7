"""
Custom exception hierarchy for the face reconstruction pipeline.

Provides specialized exceptions for different failure modes with
contextual information to aid in debugging and error handling.
"""

from __future__ import annotations

from typing import Any, Optional


class FaceReconstructionError(Exception):
    """
    Base exception for all face reconstruction errors.

    Provides consistent error message formatting and optional
    context information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        context: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """
        Initialize the exception with message and optional context.

        Args:
            message: Human-readable error description
            context: Additional context information
            cause: Original exception that caused this error
        """
        self.message = message
        self.context = context or {}
        self.cause = cause

        full_message = message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            full_message = f"{message} [{context_str}]"

        if cause:
            full_message = f"{full_message} (caused by: {cause})"

        super().__init__(full_message)


class InvalidInputError(FaceReconstructionError):
    """Malformed caller input (image dimensions, empty keypoints, bad indices)."""

    def __init__(
        self,
        message: str,
        expected: Optional[Any] = None,
        actual: Optional[Any] = None
    ):
        super().__init__(
            message,
            context={"expected": expected, "actual": actual}
        )


class DetectionError(FaceReconstructionError):
    """Errors raised when the landmark model produced nothing usable."""
    pass


class NoFaceDetected(DetectionError):
    """The landmark model found no face in the image."""

    def __init__(self, image_shape: Optional[tuple] = None):
        super().__init__(
            "No faces detected",
            context={"shape": image_shape}
        )


class NoKeypointsDetected(DetectionError):
    """A face was found but carried no keypoints."""

    def __init__(self, image_shape: Optional[tuple] = None):
        super().__init__(
            "No keypoints detected",
            context={"shape": image_shape}
        )


class GeometryBuildError(FaceReconstructionError):
    """A mesh variant could not be assembled from the given buffers."""

    def __init__(
        self,
        variant: str,
        reason: str,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            f"Failed to build '{variant}' geometry: {reason}",
            context={"variant": variant},
            cause=cause
        )
        self.variant = variant


class ExportError(FaceReconstructionError):
    """Archive packaging or 3D model export failed."""

    def __init__(
        self,
        message: str,
        asset: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message,
            context={"asset": asset},
            cause=cause
        )


class ModelError(FaceReconstructionError):
    """Errors related to model operations."""
    pass


class ModelLoadError(ModelError):
    """Failed to load model weights or configuration."""

    def __init__(
        self,
        model_name: str,
        path: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            f"Failed to load model '{model_name}'",
            context={"model": model_name, "path": path},
            cause=cause
        )


class ModelInferenceError(ModelError):
    """Error during model inference/prediction."""

    def __init__(
        self,
        model_name: str,
        input_shape: Optional[tuple] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            f"Inference failed for model '{model_name}'",
            context={"model": model_name, "input_shape": input_shape},
            cause=cause
        )


class ImageProcessingError(FaceReconstructionError):
    """Errors during image decode/encode operations."""

    def __init__(
        self,
        operation: str,
        image_shape: Optional[tuple] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            f"Image processing failed during '{operation}'",
            context={"operation": operation, "shape": image_shape},
            cause=cause
        )


class ConfigurationError(FaceReconstructionError):
    """Configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message,
            context={"config_key": config_key},
            cause=cause
        )
