"""
MiDaS depth estimation implementation.

This module provides monocular depth estimation using MiDaS for single
photographs. Raw MiDaS output (relative inverse depth) is normalised to a
per-pixel raster whose values lie in a configurable output range, ready
to be encoded as a displacement map.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np
import torch
import torch.nn as nn
import torchvision.transforms as transforms

from ..config import DEPTH_CONFIG
from ..utils.exceptions import InvalidInputError, ModelInferenceError, ModelLoadError
from ..utils.logging_utils import get_logger, log_execution_time

logger = get_logger(__name__)


@dataclass(frozen=True)
class DepthOptions:
    """
    Depth normalisation settings.

    Normalised depth below ``min_depth`` maps to the low end of
    ``output_range`` and above ``max_depth`` to the high end.
    """

    min_depth: float = 0.0
    max_depth: float = 1.0
    output_range: Tuple[float, float] = (0.0, 1.0)

    def __post_init__(self):
        if self.max_depth <= self.min_depth:
            raise InvalidInputError("max_depth must exceed min_depth",
                                    expected="max_depth > min_depth",
                                    actual=(self.min_depth, self.max_depth))
        if len(tuple(self.output_range)) != 2:
            raise InvalidInputError("output_range must be a (lo, hi) pair", actual=self.output_range)


class DepthEstimator(Protocol):
    """Anything that produces a depth raster for a BGR image."""

    def estimate_depth(self, image: np.ndarray, options: DepthOptions) -> np.ndarray:
        ...


def normalize_depth(raw_depth: np.ndarray, options: DepthOptions) -> np.ndarray:
    """
    Map a raw relative depth prediction to the configured output range.

    The prediction is min-max normalised to [0, 1] (1 = nearest), clipped
    to ``[min_depth, max_depth]``, rescaled to [0, 1] and finally mapped
    linearly onto ``output_range``.

    Args:
        raw_depth: Raw model output (H, W)
        options: Normalisation settings

    Returns:
        float32 raster (H, W)
    """
    depth = np.asarray(raw_depth, dtype=np.float64)
    if depth.ndim != 2 or depth.size == 0:
        raise InvalidInputError("Depth prediction must be a 2D array", expected="(H, W)", actual=depth.shape)

    finite = np.isfinite(depth)
    if not finite.any():
        normalized = np.zeros_like(depth)
    else:
        lo, hi = depth[finite].min(), depth[finite].max()
        span = hi - lo
        normalized = (depth - lo) / span if span > 0 else np.zeros_like(depth)
        normalized[~finite] = 0.0

    clipped = np.clip((normalized - options.min_depth) / (options.max_depth - options.min_depth), 0.0, 1.0)
    out_lo, out_hi = options.output_range
    return (out_lo + clipped * (out_hi - out_lo)).astype(np.float32)


class MiDaSModel(nn.Module):
    """
    MiDaS model wrapper for depth estimation.

    This class provides a simplified interface to the MiDaS depth estimation
    model with preprocessing and postprocessing capabilities.
    """

    def __init__(self, model_type: str = DEPTH_CONFIG["model_type"],
                 device: Optional[torch.device] = None,
                 hub_repo: str = DEPTH_CONFIG["hub_repo"]):
        """
        Initialize MiDaS model.

        Args:
            model_type: Type of MiDaS model ('MiDaS', 'MiDaS_small', 'DPT_Large')
            device: Device for inference
            hub_repo: torch hub repository providing the model
        """
        super(MiDaSModel, self).__init__()

        self.model_type = model_type
        self.hub_repo = hub_repo
        self.device = device or torch.device('cuda' if torch.cuda.is_available() else 'cpu')

        self.input_size = self._get_input_size()
        self.transform = transforms.Compose([
            transforms.ToTensor(),
            transforms.Normalize(mean=[0.485, 0.456, 0.406], std=[0.229, 0.224, 0.225])
        ])

        self.model = self._load_model()
        self.model.eval()
        self.to(self.device)

    def _get_input_size(self) -> Tuple[int, int]:
        """Get input size for the model type."""
        return DEPTH_CONFIG['input_sizes'].get(self.model_type, (256, 256))

    def _load_model(self) -> nn.Module:
        """Load MiDaS model from torch hub."""
        try:
            model = torch.hub.load(self.hub_repo, self.model_type, pretrained=True)
        except Exception as e:
            raise ModelLoadError(self.model_type, path=self.hub_repo, cause=e) from e
        logger.info(f"Loaded {self.model_type} from torch hub")
        return model

    def preprocess(self, image: np.ndarray) -> torch.Tensor:
        """
        Preprocess image for depth estimation.

        Args:
            image: Input image as numpy array (H, W, 3) in BGR format

        Returns:
            Preprocessed tensor (1, 3, H, W)
        """
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        h, w = self.input_size
        resized = cv2.resize(image_rgb, (w, h), interpolation=cv2.INTER_LINEAR)

        tensor = self.transform(resized).unsqueeze(0)
        return tensor.to(self.device)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Forward pass through MiDaS model.

        Args:
            x: Input tensor (B, 3, H, W)

        Returns:
            Depth map tensor (B, 1, H, W)
        """
        with torch.no_grad():
            depth = self.model(x)

            if len(depth.shape) == 3:
                depth = depth.unsqueeze(1)

            return depth

    def predict(self, image: np.ndarray) -> np.ndarray:
        """
        Raw relative depth at the original image resolution.

        Args:
            image: Input image (H, W, 3) in BGR format

        Returns:
            float32 array (H, W)
        """
        original_size = (image.shape[0], image.shape[1])

        input_tensor = self.preprocess(image)
        try:
            depth_tensor = self.forward(input_tensor)
        except RuntimeError as e:
            raise ModelInferenceError(self.model_type, input_shape=tuple(input_tensor.shape), cause=e) from e

        raw_depth = depth_tensor.squeeze().cpu().numpy().astype(np.float32)
        return cv2.resize(raw_depth, (original_size[1], original_size[0]),
                          interpolation=cv2.INTER_LINEAR)


class MiDaSDepthEstimator:
    """
    Depth estimator used by the reconstruction pipeline.

    Loads the MiDaS model lazily so constructing the estimator is cheap.
    """

    def __init__(self, model_type: str = DEPTH_CONFIG["model_type"],
                 device: str = DEPTH_CONFIG["device"]):
        self.model_type = model_type
        if device == 'auto':
            self.device = torch.device('cuda' if torch.cuda.is_available() else 'cpu')
        else:
            self.device = torch.device(device)
        self._model: Optional[MiDaSModel] = None

    @property
    def model(self) -> MiDaSModel:
        if self._model is None:
            self._model = MiDaSModel(self.model_type, device=self.device)
        return self._model

    @log_execution_time()
    def estimate_depth(self, image: np.ndarray, options: DepthOptions) -> np.ndarray:
        """
        Estimate a normalised depth raster for ``image``.

        Args:
            image: Input image (H, W, 3) in BGR format
            options: Normalisation settings

        Returns:
            float32 raster with the same pixel dimensions as ``image``
        """
        if image is None or image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
            raise InvalidInputError("Expected a colour image", expected="(H, W, 3)",
                                    actual=None if image is None else image.shape)

        raw_depth = self.model.predict(image)
        raster = normalize_depth(raw_depth, options)
        logger.info(f"Estimated depth raster {raster.shape[1]}x{raster.shape[0]}")
        return raster


def options_from_config(min_depth: float, max_depth: float,
                        output_range: Sequence[float]) -> DepthOptions:
    return DepthOptions(min_depth=min_depth, max_depth=max_depth, output_range=tuple(output_range))
