"""
facerecon: single-image 3D face reconstruction.

Detects facial landmarks in a photo, builds a triangulated and UV-mapped
face mesh, estimates a depth map, displaces the mesh by it and exports
the result.
"""

__version__ = "1.0.0"

from .style import StyleConfig
from .geometry import Keypoint, MeshDescriptor, TriangulationIndex, VertexProjector, MeshAssembler
from .overlay import OverlayRenderer
from .scene import Scene
from .pipeline import PipelineOrchestrator, ReconstructionResult, ProgressEvent, run_pipeline
from .utils.exceptions import FaceReconstructionError

__all__ = [
    'StyleConfig',
    'Keypoint',
    'MeshDescriptor',
    'TriangulationIndex',
    'VertexProjector',
    'MeshAssembler',
    'OverlayRenderer',
    'Scene',
    'PipelineOrchestrator',
    'ReconstructionResult',
    'ProgressEvent',
    'run_pipeline',
    'FaceReconstructionError'
]
