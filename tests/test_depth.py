"""
Tests for depth normalisation, raster encoding and mesh displacement.
"""

import numpy as np
import pytest

from facerecon.depth_estimation import (
    DepthDisplacer,
    DepthOptions,
    compute_vertex_normals,
    decode_depth_map,
    encode_depth_raster,
    normalize_depth,
    sample_depth,
    to_non_indexed,
)
from facerecon.geometry import Keypoint, build_faces, build_uv_faces, project_vertices
from facerecon.geometry.triangulation import triangles_from_connections
from facerecon.geometry.types import Geometry
from facerecon.style import StyleConfig
from facerecon.utils.exceptions import GeometryBuildError, InvalidInputError


class TestNormalizeDepth:
    """Test mapping raw predictions to the output range."""

    def test_min_max(self):
        raw = np.array([[0, 2], [4, 8]], dtype=np.float32)
        np.testing.assert_allclose(normalize_depth(raw, DepthOptions()), [[0, 0.25], [0.5, 1.0]])

    def test_output_range(self):
        raw = np.array([[0, 2], [4, 8]], dtype=np.float32)
        result = normalize_depth(raw, DepthOptions(output_range=(0.0, 2.0)))
        np.testing.assert_allclose(result, [[0, 0.5], [1.0, 2.0]])

    def test_clip_window(self):
        raw = np.array([[0, 2], [4, 8]], dtype=np.float32)
        result = normalize_depth(raw, DepthOptions(min_depth=0.5, max_depth=1.0))
        np.testing.assert_allclose(result, [[0, 0], [0, 1.0]])

    def test_flat_prediction(self):
        result = normalize_depth(np.full((3, 3), 7.0), DepthOptions())
        assert not result.any()

    def test_bad_options(self):
        with pytest.raises(InvalidInputError):
            DepthOptions(min_depth=1.0, max_depth=0.5)


class TestDepthRaster:
    """Test the displacement-map encoding."""

    def test_encode_decode(self):
        raster = np.linspace(0, 1, 16, dtype=np.float32).reshape(4, 4)
        decoded = decode_depth_map(encode_depth_raster(raster))
        assert decoded.shape == (4, 4)
        np.testing.assert_allclose(decoded, raster, atol=1 / 255)

    def test_invert(self):
        decoded = decode_depth_map(encode_depth_raster(np.zeros((2, 2)), invert=True))
        np.testing.assert_allclose(decoded, 1.0)

    def test_values_clipped(self):
        decoded = decode_depth_map(encode_depth_raster(np.array([[-1.0, 3.0]])))
        np.testing.assert_allclose(decoded, [[0.0, 1.0]])

    def test_rejects_non_2d(self):
        with pytest.raises(InvalidInputError):
            encode_depth_raster(np.zeros((2, 2, 3)))


class TestDisplacementHelpers:
    """Test flattening, normals and sampling."""

    def test_to_non_indexed(self):
        geometry = Geometry(
            positions=np.arange(12, dtype=np.float32),
            indices=np.array([0, 1, 2, 0, 2, 3], dtype=np.int32),
            uvs=np.arange(8, dtype=np.float32),
        )
        flat = to_non_indexed(geometry)
        assert flat.indices is None
        assert flat.vertex_count == 6
        assert flat.uvs.size == 12
        np.testing.assert_array_equal(flat.positions[9:12], geometry.positions[0:3])

    def test_flat_normals(self):
        positions = np.array([0, 0, 0, 1, 0, 0, 0, 1, 0], dtype=np.float32)
        np.testing.assert_allclose(compute_vertex_normals(positions), [0, 0, 1] * 3)

    def test_degenerate_normal(self):
        positions = np.zeros(9, dtype=np.float32)
        assert not compute_vertex_normals(positions).any()

    def test_sample_orientation(self):
        """v = 1 samples the top row, v = 0 the bottom row."""
        depth = np.array([[1.0, 1.0], [0.0, 0.0]], dtype=np.float32)
        samples = sample_depth(depth, np.array([0.0, 1.0, 0.0, 0.0]))
        np.testing.assert_allclose(samples, [1.0, 0.0])


class TestDepthDisplacer:
    """Test displacement of the UV face mesh."""

    @pytest.fixture
    def uv_mesh(self, image):
        vertices = project_vertices([Keypoint(0, 0, 0), Keypoint(2, 0, 0), Keypoint(0, 2, 0)], 100, 100)
        return build_uv_faces(vertices, [0, 1, 2], image, StyleConfig(scale_factor=0.5, invert_depth=False))

    def test_offset_along_normal(self, uv_mesh):
        """A full-depth map pushes every vertex by scale_factor along its normal."""
        config = StyleConfig(scale_factor=0.5, invert_depth=False)
        depth_map = encode_depth_raster(np.ones((100, 100), dtype=np.float32))
        displaced = DepthDisplacer(config).displace(uv_mesh, depth_map)

        positions = displaced.geometry.positions_3d()
        np.testing.assert_allclose(positions[:, 2], -0.5, atol=1e-6)
        np.testing.assert_allclose(positions[:, :2], [[-25, 25], [-24, 25], [-25, 24]], atol=1e-6)
        assert displaced.kind == "displaced"
        assert displaced.material.displacement_scale == 0.5
        assert displaced.geometry.normals.size == 9

    def test_source_not_mutated(self, uv_mesh):
        before = uv_mesh.geometry.positions.copy()
        depth_map = encode_depth_raster(np.ones((100, 100), dtype=np.float32))
        DepthDisplacer(StyleConfig(scale_factor=0.5)).displace(uv_mesh, depth_map)
        np.testing.assert_array_equal(uv_mesh.geometry.positions, before)
        assert uv_mesh.geometry.indices is not None

    def test_zero_depth_keeps_surface(self, uv_mesh):
        depth_map = encode_depth_raster(np.zeros((100, 100), dtype=np.float32))
        displaced = DepthDisplacer(StyleConfig(scale_factor=0.5)).displace(uv_mesh, depth_map)
        np.testing.assert_allclose(displaced.geometry.positions_3d()[:, 2], 0.0, atol=1e-6)

    def test_requires_uv_mesh(self, square_keypoints, square_topology):
        vertices = project_vertices(square_keypoints, 100, 100)
        faces = build_faces(vertices, square_topology.faces(), StyleConfig())
        depth_map = encode_depth_raster(np.ones((4, 4)))
        with pytest.raises(GeometryBuildError):
            DepthDisplacer(StyleConfig()).displace(faces, depth_map)

    def test_fan_displaces_uniformly(self, image):
        """Every face of a consistently wound fan moves the same way under constant depth."""
        keypoints = [
            Keypoint(50, 50, 0),
            Keypoint(30, 30, 0), Keypoint(70, 30, 0), Keypoint(70, 70, 0), Keypoint(30, 70, 0),
        ]
        faces = triangles_from_connections([
            (0, 1), (1, 2), (2, 0),
            (0, 2), (2, 3), (3, 0),
            (0, 3), (3, 4), (4, 0),
            (0, 4), (4, 1), (1, 0),
        ])
        config = StyleConfig(scale_factor=0.5, invert_depth=False)
        uv_mesh = build_uv_faces(project_vertices(keypoints, 100, 100), faces, image, config)
        depth_map = encode_depth_raster(np.ones((100, 100), dtype=np.float32))

        displaced = DepthDisplacer(config).displace(uv_mesh, depth_map)

        z = displaced.geometry.positions_3d()[:, 2]
        assert z.size == 12
        np.testing.assert_allclose(np.abs(z), 0.5, atol=1e-6)
        np.testing.assert_allclose(z, z[0], atol=1e-6)
        normals = displaced.geometry.normals.reshape(-1, 3)
        np.testing.assert_allclose(normals, np.repeat(normals[:1], 12, axis=0), atol=1e-6)
