"""
Staged reconstruction pipeline.

Runs Setup → Upload → Preview → Prediction → Geometry → DepthEstimation →
Review strictly in order. Each stage is bracketed by a before/after
progress event; a failing stage is logged and its error re-raised, so no
partial result is ever returned.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from ..config import EXPORT_CONFIG, SCENE_CONFIG
from ..depth_estimation.displacement import DepthDisplacer
from ..depth_estimation.midas import DepthEstimator, options_from_config
from ..depth_estimation.raster import encode_depth_raster
from ..export.archive import build_asset_archive, write_archive
from ..geometry.mesh import MeshAssembler, build_image_plane, build_plane
from ..geometry.triangulation import TriangulationIndex, default_triangulation
from ..geometry.types import MeshDescriptor
from ..landmarks.detector import LandmarkDetector, require_keypoints
from ..scene.scene import Scene, create_scenes
from ..style import StyleConfig
from ..utils import Timer, decode_image, image_size
from ..utils.exceptions import InvalidInputError
from ..utils.logging_utils import get_logger, stage_context
from .bundle import VisualizationBundle, build_visualizations
from .progress import STAGES, ProgressCallback, ProgressReporter

logger = get_logger(__name__)

ImageSource = Union[bytes, bytearray, str, Path]

# (before, after) messages per stage
STAGE_MESSAGES = {
    "setup": ("setting up...", "setting up complete!"),
    "upload": ("uploading...", "uploading complete!"),
    "preview": ("generating preview...", "preview generated!"),
    "prediction": ("making predictions...", "predictions complete!"),
    "geometry": ("generating 3D objects...", "3D objects generated!"),
    "depth_estimation": ("starting depth estimation...", "depth estimation complete!"),
    "review": ("reviewing process...", "process complete!"),
}

# Overlay planes stack above the photo in this order
OVERLAY_STACK = ("triangulationImage", "outerRingImage", "keypointsImage")


class SceneOperations:
    """
    Named "add to scene" operations of a finished run.

    Every operation uses a fixed node name, so calling it again replaces
    the node instead of duplicating it. None of them re-run inference.
    """

    def __init__(self, result: "ReconstructionResult"):
        self._result = result

    def _target(self, scene: Optional[Scene]) -> Scene:
        return scene if scene is not None else self._result.scene

    def _add(self, descriptor: Optional[MeshDescriptor], scene: Optional[Scene],
             label: str) -> Optional[MeshDescriptor]:
        if descriptor is None:
            logger.warning(f"No {label} mesh available; nothing added")
            return None
        return self._target(scene).add(descriptor)

    async def image(self, scene: Optional[Scene] = None) -> MeshDescriptor:
        """The source photo as a flat plane."""
        plane = build_image_plane(self._result.image, SCENE_CONFIG["image_plane_width"])
        return self._target(scene).add(plane)

    async def wireframe(self, scene: Optional[Scene] = None) -> List[MeshDescriptor]:
        """Points plus a wireframe face mesh."""
        assembler = self._result.assembler()
        added = []
        for name, outcome in (("points", assembler.points()), ("wireframe", assembler.faces(wireframe=True))):
            descriptor = self._add(outcome.value_or_none(), scene, name)
            if descriptor is not None:
                added.append(descriptor)
        return added

    async def vertices(self, scene: Optional[Scene] = None) -> Optional[MeshDescriptor]:
        return self._add(self._result.points_mesh, scene, "points")

    async def edges(self, scene: Optional[Scene] = None) -> Optional[MeshDescriptor]:
        return self._add(self._result.edges_mesh, scene, "edges")

    async def faces(self, scene: Optional[Scene] = None) -> Optional[MeshDescriptor]:
        return self._add(self._result.faces_mesh, scene, "faces")

    async def uv_face(self, scene: Optional[Scene] = None) -> Optional[MeshDescriptor]:
        return self._add(self._result.uv_mesh, scene, "UV face")

    async def displaced_face(self, scene: Optional[Scene] = None) -> Optional[MeshDescriptor]:
        return self._add(self._result.displaced_mesh, scene, "displaced face")

    async def overlays(self, scene: Optional[Scene] = None) -> List[MeshDescriptor]:
        """
        Overlay rasters as transparent planes stacked just above the photo.

        Plane height is fixed and width follows the image aspect ratio.
        """
        width, height = self._result.visualizations.image_size
        plane_height = SCENE_CONFIG["overlay_base_height"]
        plane_width = plane_height * (width / height)
        elevation = SCENE_CONFIG["overlay_start_elevation"]

        overlays = self._result.visualizations.overlays()
        added = []
        for name in OVERLAY_STACK:
            data = overlays.get(name)
            if not data:
                logger.warning(f"Overlay {name} unavailable; skipping plane")
                continue
            texture = await asyncio.to_thread(decode_image, data, cv2.IMREAD_UNCHANGED)
            plane = build_plane(name, texture, plane_width, plane_height, elevation=elevation)
            added.append(self._target(scene).add(plane))
            elevation += SCENE_CONFIG["overlay_step"]
        return added


@dataclass(eq=False)
class ReconstructionResult:
    """Everything a finished pipeline run exposes to its caller."""

    scene: Scene
    secondary_scene: Scene
    image_bytes: bytes
    image: np.ndarray
    config: StyleConfig
    visualizations: VisualizationBundle
    uv_mesh: MeshDescriptor
    depth_map: bytes
    displaced_mesh: MeshDescriptor
    points_mesh: Optional[MeshDescriptor] = None
    edges_mesh: Optional[MeshDescriptor] = None
    faces_mesh: Optional[MeshDescriptor] = None
    add: SceneOperations = field(init=False, repr=False)

    def __post_init__(self):
        self.add = SceneOperations(self)

    @property
    def scenes(self) -> Dict[str, Scene]:
        return {"primary": self.scene, "secondary": self.secondary_scene}

    @property
    def meshes(self) -> Dict[str, Optional[MeshDescriptor]]:
        return {
            "points": self.points_mesh,
            "edges": self.edges_mesh,
            "faces": self.faces_mesh,
            "uv_face": self.uv_mesh,
            "displaced_face": self.displaced_mesh,
        }

    def assembler(self) -> MeshAssembler:
        return MeshAssembler(self.visualizations.vertices, self.visualizations.indices, self.config)

    async def download(self, path: Optional[Union[str, Path]] = None) -> bytes:
        """
        Package every asset into a zip archive.

        Args:
            path: Optional file or directory to write the archive to

        Returns:
            Archive bytes

        Raises:
            ExportError: if packaging or the 3D export fails
        """
        data = await asyncio.to_thread(
            build_asset_archive,
            self.image,
            self.depth_map,
            self.visualizations.overlays(),
            self.displaced_mesh or self.uv_mesh,
            tuple(EXPORT_CONFIG["overlay_types"]),
            self.config.depth_map_format,
        )
        if path is not None:
            await asyncio.to_thread(write_archive, data, path)
        return data


class PipelineOrchestrator:
    """
    Drives one image through the full reconstruction.

    Args:
        detector: Landmark model adapter
        depth_estimator: Depth model adapter
        style: Base style; ``scale_factor`` is derived per run
        topology: Shared triangulation/outline table
        progress: Optional callback receiving every ProgressEvent
    """

    def __init__(self, detector: LandmarkDetector, depth_estimator: DepthEstimator,
                 style: Optional[StyleConfig] = None, topology: Optional[TriangulationIndex] = None,
                 progress: Optional[ProgressCallback] = None):
        self.detector = detector
        self.depth_estimator = depth_estimator
        self.style = style or StyleConfig()
        self._topology = topology
        self.reporter = ProgressReporter(progress)

    @property
    def topology(self) -> TriangulationIndex:
        if self._topology is None:
            self._topology = default_triangulation()
        return self._topology

    @asynccontextmanager
    async def _stage(self, name: str):
        index = STAGES.index(name)
        before, after = STAGE_MESSAGES[name]
        with stage_context(name):
            await self.reporter.emit(index, before, complete=False)
            try:
                with Timer(name) as timer:
                    yield
            except Exception as e:
                logger.error(f"Stage '{name}' failed: {e}")
                raise
            logger.debug(f"Stage '{name}' took {timer.elapsed_ms:.2f}ms")
            await self.reporter.emit(index, after, complete=True)

    @staticmethod
    async def _read_source(source: ImageSource) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        path = Path(source)
        if not path.is_file():
            raise InvalidInputError("Image file not found", expected="existing file", actual=str(path))
        return await asyncio.to_thread(path.read_bytes)

    async def run(self, source: ImageSource) -> ReconstructionResult:
        """
        Reconstruct the face in ``source``.

        Args:
            source: Encoded image bytes or a path to an image file

        Returns:
            ReconstructionResult

        Raises:
            FaceReconstructionError: whatever the failing stage raised
        """
        async with self._stage("setup"):
            scenes = create_scenes()
            topology = self.topology

        async with self._stage("upload"):
            image_bytes = await self._read_source(source)
            if not image_bytes:
                raise InvalidInputError("Image data is empty", expected="non-empty bytes", actual=0)

        async with self._stage("preview"):
            image = await asyncio.to_thread(decode_image, image_bytes)
            width, height = image_size(image)
            config = self.style.with_scale_factor(self.style.target_scene_width / width)
            logger.info(f"Image {width}x{height}, scale factor {config.scale_factor:.5f}")

        async with self._stage("prediction"):
            keypoints = await asyncio.to_thread(self.detector.detect, image)
            keypoints = require_keypoints(keypoints, image.shape)
            visualizations = await asyncio.to_thread(
                build_visualizations, keypoints, width, height, topology, config
            )

        async with self._stage("geometry"):
            assembler = MeshAssembler(visualizations.vertices, visualizations.indices, config)
            uv_mesh = assembler.uv_faces(image).unwrap()
            scenes["secondary"].add(uv_mesh)
            points_mesh = assembler.points().value_or_none()
            edges_mesh = assembler.edges().value_or_none()
            faces_mesh = assembler.faces().value_or_none()

        async with self._stage("depth_estimation"):
            options = options_from_config(**config.depth_options())
            raster = await asyncio.to_thread(self.depth_estimator.estimate_depth, image, options)
            if raster.shape[:2] != image.shape[:2]:
                logger.warning(f"Depth raster {raster.shape[:2]} resized to image {image.shape[:2]}")
                raster = cv2.resize(raster.astype(np.float32), (width, height), interpolation=cv2.INTER_LINEAR)
            depth_map = await asyncio.to_thread(
                encode_depth_raster, raster, config.invert_depth_map, config.depth_map_format
            )
            displaced_mesh = await asyncio.to_thread(DepthDisplacer(config).displace, uv_mesh, depth_map)

        async with self._stage("review"):
            result = ReconstructionResult(
                scene=scenes["primary"],
                secondary_scene=scenes["secondary"],
                image_bytes=image_bytes,
                image=image,
                config=config,
                visualizations=visualizations,
                uv_mesh=uv_mesh,
                depth_map=depth_map,
                displaced_mesh=displaced_mesh,
                points_mesh=points_mesh,
                edges_mesh=edges_mesh,
                faces_mesh=faces_mesh,
            )
            logger.info(f"Reconstructed {len(keypoints)} keypoints, {uv_mesh.geometry.face_count} faces")

        return result


async def run_pipeline(source: ImageSource, detector: LandmarkDetector, depth_estimator: DepthEstimator,
                       style: Optional[StyleConfig] = None, topology: Optional[TriangulationIndex] = None,
                       progress: Optional[ProgressCallback] = None) -> ReconstructionResult:
    """Convenience wrapper around :class:`PipelineOrchestrator`."""
    orchestrator = PipelineOrchestrator(detector, depth_estimator, style=style,
                                        topology=topology, progress=progress)
    return await orchestrator.run(source)
