"""
Resolved, immutable styling and depth configuration for one pipeline run.

A ``StyleConfig`` is built once (usually by the orchestrator) and handed
down to every component; components never apply their own defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Tuple

from .config import STYLE_DEFAULTS
from .utils.exceptions import ConfigurationError
from .utils.logging_utils import get_logger

logger = get_logger(__name__)

# Keys used by browser front ends
CAMEL_CASE_ALIASES = {
    "pointSize": "point_size",
    "pointColor": "point_color",
    "outerRingColor": "outer_ring_color",
    "outerRingWidth": "outer_ring_width",
    "triangulationColor": "triangulation_color",
    "triangulationWidth": "triangulation_width",
    "invertDepth": "invert_depth",
    "scaleFactor": "scale_factor",
    "baseElevation": "base_elevation",
    "minDepth": "min_depth",
    "maxDepth": "max_depth",
    "outputDepthRange": "output_depth_range",
    "invertDepthMap": "invert_depth_map",
    "depthMapFormat": "depth_map_format",
    "targetSceneWidth": "target_scene_width",
    "liftOffset": "lift_offset",
}

# Fields coerced to float before validation
NUMERIC_FIELDS = (
    "point_size", "outer_ring_width", "triangulation_width", "scale_factor", "base_elevation",
    "min_depth", "max_depth", "target_scene_width", "lift_offset",
)


@dataclass(frozen=True)
class StyleConfig:
    """
    Rendering and depth-estimation parameters.

    ``scale_factor`` drives both the planar scale of every mesh and the
    displacement depth of the displaced face. Read it through
    :attr:`planar_scale` or :attr:`displacement_scale` depending on intent.
    """

    point_size: float = STYLE_DEFAULTS["point_size"]
    point_color: str = STYLE_DEFAULTS["point_color"]
    outer_ring_color: str = STYLE_DEFAULTS["outer_ring_color"]
    outer_ring_width: float = STYLE_DEFAULTS["outer_ring_width"]
    triangulation_color: str = STYLE_DEFAULTS["triangulation_color"]
    triangulation_width: float = STYLE_DEFAULTS["triangulation_width"]
    invert_depth: bool = STYLE_DEFAULTS["invert_depth"]
    scale_factor: float = STYLE_DEFAULTS["scale_factor"]
    base_elevation: float = STYLE_DEFAULTS["base_elevation"]
    min_depth: float = STYLE_DEFAULTS["min_depth"]
    max_depth: float = STYLE_DEFAULTS["max_depth"]
    output_depth_range: Tuple[float, float] = STYLE_DEFAULTS["output_depth_range"]
    invert_depth_map: bool = STYLE_DEFAULTS["invert_depth_map"]
    depth_map_format: str = STYLE_DEFAULTS["depth_map_format"]
    target_scene_width: float = STYLE_DEFAULTS["target_scene_width"]
    lift_offset: float = STYLE_DEFAULTS["lift_offset"]

    def __post_init__(self):
        for name in NUMERIC_FIELDS:
            value = getattr(self, name)
            try:
                if isinstance(value, bool):
                    raise TypeError(f"{type(value).__name__} is not a number")
                object.__setattr__(self, name, float(value))
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"{name} must be a number, got {value!r}",
                                         config_key=name, cause=e) from e
        try:
            # Lists coming from JSON are normalised to a hashable tuple
            depth_range = tuple(float(v) for v in self.output_depth_range)
        except (TypeError, ValueError) as e:
            raise ConfigurationError("output_depth_range must be a (lo, hi) pair of numbers",
                                     config_key="output_depth_range", cause=e) from e
        object.__setattr__(self, "output_depth_range", depth_range)

        if self.point_size <= 0:
            raise ConfigurationError("point_size must be positive", config_key="point_size")
        if self.outer_ring_width <= 0 or self.triangulation_width <= 0:
            raise ConfigurationError("line widths must be positive", config_key="width")
        if self.scale_factor <= 0:
            raise ConfigurationError("scale_factor must be positive", config_key="scale_factor")
        if self.max_depth <= self.min_depth:
            raise ConfigurationError("max_depth must be greater than min_depth", config_key="max_depth")
        if len(self.output_depth_range) != 2:
            raise ConfigurationError("output_depth_range must be a (lo, hi) pair",
                                     config_key="output_depth_range")
        if self.target_scene_width <= 0:
            raise ConfigurationError("target_scene_width must be positive",
                                     config_key="target_scene_width")

    @property
    def planar_scale(self) -> float:
        """Uniform scale applied to every vertex component."""
        return self.scale_factor

    @property
    def displacement_scale(self) -> float:
        """Scale applied to depth-map samples when displacing the face."""
        return self.scale_factor

    def with_scale_factor(self, scale_factor: float) -> "StyleConfig":
        """Return a copy carrying the computed scene scale factor."""
        return replace(self, scale_factor=float(scale_factor))

    def depth_options(self) -> Dict[str, Any]:
        """Options forwarded to the depth estimator."""
        return {
            "min_depth": self.min_depth,
            "max_depth": self.max_depth,
            "output_range": self.output_depth_range,
        }

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "StyleConfig":
        """
        Build a config from a mapping of overrides.

        Accepts both ``snake_case`` field names and the camelCase keys
        used by browser front ends. Unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        resolved: Dict[str, Any] = {}
        for key, value in values.items():
            name = CAMEL_CASE_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown style option '{key}'", config_key=key)
            resolved[name] = value
        logger.debug(f"Resolved style overrides: {sorted(resolved)}")
        return cls(**resolved)
