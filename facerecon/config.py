"""
Configuration for single-image 3D face reconstruction
"""

import os
from pathlib import Path

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
LOGS_DIR = Path(os.getenv("FACERECON_LOG_DIR", PROJECT_ROOT / "logs"))
OUTPUT_DIR = Path(os.getenv("FACERECON_OUTPUT_DIR", PROJECT_ROOT / "output"))

# Overlay/mesh styling used when a pipeline run does not override it
STYLE_DEFAULTS = {
    "point_size": 3,
    "point_color": "purple",
    "outer_ring_color": "orange",
    "outer_ring_width": 3,
    "triangulation_color": "cyan",
    "triangulation_width": 2,
    "invert_depth": True,
    "scale_factor": 1.0,
    "base_elevation": 5.0,
    "min_depth": 0.0,
    "max_depth": 1.0,
    "output_depth_range": (0.0, 1.0),
    "invert_depth_map": False,
    "depth_map_format": "image/png",
    "target_scene_width": 10.0,
    "lift_offset": 0.1,
}

# Scene graph settings
SCENE_CONFIG = {
    "background_color": 0x202020,
    "image_plane_width": 10.0,
    "overlay_base_height": 10.0,
    "overlay_start_elevation": 0.01,
    "overlay_step": 0.005,
}

# Landmark model
LANDMARK_CONFIG = {
    "model_url": (
        "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
        "face_landmarker/float16/1/face_landmarker.task"
    ),
    "model_path": Path(os.getenv(
        "FACERECON_LANDMARK_MODEL",
        Path.home() / ".cache" / "facerecon" / "face_landmarker.task"
    )),
    "max_num_faces": 1,
    "refine_landmarks": False,
    "min_detection_confidence": 0.5,
    # Mesh landmarks; the landmarker appends 10 iris points after these
    "keypoint_count": 468,
}

# Depth model
DEPTH_CONFIG = {
    "hub_repo": "intel-isl/MiDaS",
    "model_type": "MiDaS_small",
    "device": os.getenv("FACERECON_DEVICE", "auto"),
    # Supported hub models and their network input size
    "input_sizes": {
        "MiDaS_small": (256, 256),
        "MiDaS": (384, 384),
        "DPT_Hybrid": (384, 384),
        "DPT_Large": (384, 384),
    },
}

# Archive layout
EXPORT_CONFIG = {
    "folder": "downloads",
    "archive_name": "downloads.zip",
    "model_name": "3d-model.glb",
    "overlay_types": ["combinedImage", "keypointsImage", "triangulationImage", "outerRingImage"],
}

# Logging configuration
LOGGING_CONFIG = {
    "level": os.getenv("FACERECON_LOG_LEVEL", "INFO"),
    "log_dir": LOGS_DIR,
    "file_logging": False,
}

__all__ = [
    "PROJECT_ROOT", "LOGS_DIR", "OUTPUT_DIR", "STYLE_DEFAULTS", "SCENE_CONFIG",
    "LANDMARK_CONFIG", "DEPTH_CONFIG", "EXPORT_CONFIG", "LOGGING_CONFIG"
]
