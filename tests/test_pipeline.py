"""
Tests for the progress contract and the staged reconstruction pipeline.

Model adapters are replaced by doubles, so no weights are downloaded.
"""

import asyncio
import io
import zipfile

import pytest

from facerecon.pipeline import (
    STAGE_MESSAGES,
    PipelineOrchestrator,
    ProgressReporter,
    build_visualizations,
    report_progress,
    run_pipeline,
)
from facerecon.style import StyleConfig
from facerecon.utils.exceptions import InvalidInputError, NoFaceDetected

from conftest import FakeDepthEstimator, FakeDetector


def run(coro):
    return asyncio.run(coro)


class TestProgress:
    """Test the two-tick-per-stage progress contract."""

    def test_full_sequence(self):
        events = [report_progress(i, 6, "m", done) for i in range(7) for done in (False, True)]
        percentages = [e.percentage for e in events]
        assert percentages == [0, 8, 17, 25, 33, 42, 50, 58, 67, 75, 83, 92, 99, 100]

    def test_monotonic_and_final(self):
        events = [report_progress(i, 6, "m", done) for i in range(7) for done in (False, True)]
        percentages = [e.percentage for e in events]
        assert percentages == sorted(percentages)
        assert percentages.count(100) == 1
        assert percentages[-1] == 100

    def test_stage_label(self):
        assert report_progress(3, 6, "making predictions...", False).stage == "3/6"

    def test_rounds_half_up(self):
        """12.5% rounds to 13, not to the even 12."""
        assert report_progress(0, 4, "m", True).percentage == 13

    def test_invalid_total(self):
        with pytest.raises(ValueError):
            report_progress(0, 0, "m", False)

    def test_reporter_callbacks(self):
        received = []

        async def async_callback(event):
            received.append(event)

        reporter = ProgressReporter(async_callback)
        run(reporter.emit(0, "setting up...", complete=False))
        reporter.callback = received.append
        run(reporter.emit(0, "setting up complete!", complete=True))
        assert [e.message for e in received] == ["setting up...", "setting up complete!"]
        assert len(reporter.history) == 2


class TestVisualizationBundle:
    """Test the prediction-stage artifact."""

    def test_contents(self, square_keypoints, square_topology, style):
        bundle = build_visualizations(square_keypoints, 100, 100, square_topology, style)
        assert bundle.vertices.size == 12
        assert list(bundle.indices) == [0, 1, 2, 0, 2, 3]
        assert bundle.image_size == (100, 100)
        assert set(bundle.overlays()) == {
            "keypointsImage", "outerRingImage", "triangulationImage", "combinedImage"
        }
        assert all(data for data in bundle.overlays().values())

    def test_buffers_are_readonly(self, square_keypoints, square_topology, style):
        bundle = build_visualizations(square_keypoints, 100, 100, square_topology, style)
        with pytest.raises(ValueError):
            bundle.vertices[0] = 0.0

    def test_data_url(self, square_keypoints, square_topology, style):
        bundle = build_visualizations(square_keypoints, 100, 100, square_topology, style)
        assert bundle.data_url("combinedImage").startswith("data:image/png;base64,")
        assert bundle.data_url("unknown") is None

    def test_topology_beyond_keypoints(self, square_keypoints, square_topology, style):
        with pytest.raises(InvalidInputError):
            build_visualizations(square_keypoints[:3], 100, 100, square_topology, style)


class TestPipelineOrchestrator:
    """Test the staged workflow end to end."""

    @pytest.fixture
    def result(self, image_bytes, square_keypoints, square_topology):
        events = []
        orchestrator = PipelineOrchestrator(
            FakeDetector(square_keypoints), FakeDepthEstimator(1.0),
            topology=square_topology, progress=events.append
        )
        result = run(orchestrator.run(image_bytes))
        result.events = events
        return result

    def test_progress_events(self, result):
        messages = [e.message for e in result.events]
        expected = [m for pair in STAGE_MESSAGES.values() for m in pair]
        assert messages == expected
        assert result.events[-1].percentage == 100
        assert [e.percentage for e in result.events][:-1].count(100) == 0

    def test_scale_factor_from_width(self, result):
        """Scene width 10 over a 100 px image gives a scale factor of 0.1."""
        assert result.config.scale_factor == pytest.approx(0.1)
        assert result.config.planar_scale == result.config.displacement_scale

    def test_meshes(self, result):
        meshes = result.meshes
        assert meshes["points"].kind == "points"
        assert meshes["edges"].kind == "edges"
        assert meshes["faces"].kind == "faces"
        assert meshes["uv_face"].kind == "uv_faces"
        assert meshes["displaced_face"].kind == "displaced"
        assert "uv_face" in result.secondary_scene

    def test_primary_scene_starts_empty(self, result):
        assert len(result.scene) == 0

    def test_depth_map_matches_image(self, result):
        from facerecon.depth_estimation import decode_depth_map

        depth = decode_depth_map(result.depth_map)
        assert depth.shape == result.image.shape[:2]

    def test_resized_depth_raster(self, image_bytes, square_keypoints, square_topology):
        orchestrator = PipelineOrchestrator(
            FakeDetector(square_keypoints), FakeDepthEstimator(0.5, shape=(10, 10)),
            topology=square_topology
        )
        result = run(orchestrator.run(image_bytes))
        from facerecon.depth_estimation import decode_depth_map

        assert decode_depth_map(result.depth_map).shape == (100, 100)

    def test_reads_image_path(self, tmp_path, image_bytes, square_keypoints, square_topology):
        path = tmp_path / "face.png"
        path.write_bytes(image_bytes)
        result = run(run_pipeline(path, FakeDetector(square_keypoints), FakeDepthEstimator(),
                                  topology=square_topology))
        assert result.image_bytes == image_bytes

    def test_missing_image_path(self, tmp_path, square_keypoints, square_topology):
        with pytest.raises(InvalidInputError):
            run(run_pipeline(tmp_path / "missing.png", FakeDetector(square_keypoints),
                             FakeDepthEstimator(), topology=square_topology))

    def test_no_face_halts_before_geometry(self, image_bytes, square_topology):
        """Empty detector output raises NoFaceDetected and stops the run."""
        events = []
        estimator = FakeDepthEstimator()
        orchestrator = PipelineOrchestrator(FakeDetector([]), estimator,
                                            topology=square_topology, progress=events.append)
        with pytest.raises(NoFaceDetected):
            run(orchestrator.run(image_bytes))

        messages = [e.message for e in events]
        assert messages[-1] == "making predictions..."
        assert "generating 3D objects..." not in messages
        assert estimator.calls == 0

    def test_style_overrides_kept(self, image_bytes, square_keypoints, square_topology):
        style = StyleConfig(point_color="red", base_elevation=2.0)
        result = run(run_pipeline(image_bytes, FakeDetector(square_keypoints), FakeDepthEstimator(),
                                  style=style, topology=square_topology))
        assert result.config.point_color == "red"
        assert result.uv_mesh.position_y == 2.0


class TestSceneOperations:
    """Test the named, repeatable add operations of a result."""

    @pytest.fixture
    def result(self, image_bytes, square_keypoints, square_topology):
        return run(run_pipeline(image_bytes, FakeDetector(square_keypoints), FakeDepthEstimator(),
                                topology=square_topology))

    def test_adds_are_idempotent(self, result):
        for _ in range(2):
            run(result.add.image())
            run(result.add.vertices())
            run(result.add.edges())
            run(result.add.faces())
            run(result.add.uv_face())
            run(result.add.displaced_face())
        assert sorted(result.scene.names()) == sorted(
            ["image", "vertices", "edges", "faces", "uv_face", "displaced_face"]
        )

    def test_wireframe(self, result):
        added = run(result.add.wireframe())
        assert [d.name for d in added] == ["vertices", "wireframe"]
        assert result.scene.get("wireframe").material.wireframe

    def test_overlay_stack(self, result):
        added = run(result.add.overlays())
        assert [d.name for d in added] == ["triangulationImage", "outerRingImage", "keypointsImage"]
        assert [d.position_y for d in added] == pytest.approx([0.01, 0.015, 0.02])
        assert all(d.material.transparent for d in added)

    def test_add_to_other_scene(self, result):
        run(result.add.displaced_face(result.secondary_scene))
        assert "displaced_face" in result.secondary_scene
        assert "displaced_face" not in result.scene

    def test_download(self, result, tmp_path):
        data = run(result.download(tmp_path))
        names = zipfile.ZipFile(io.BytesIO(data)).namelist()
        assert "downloads/base-image.png" in names
        assert "downloads/displacement-map.png" in names
        assert "downloads/combinedImage.png" in names
        assert "downloads/3d-model.glb" in names
        assert (tmp_path / "downloads.zip").read_bytes() == data

    def test_repeat_download(self, result):
        first = zipfile.ZipFile(io.BytesIO(run(result.download()))).namelist()
        second = zipfile.ZipFile(io.BytesIO(run(result.download()))).namelist()
        assert first == second
