"""
Tests for keypoint projection, topology tables and mesh assembly.
"""

import math

import numpy as np
import pytest

from facerecon.geometry import (
    Keypoint,
    MeshAssembler,
    TriangulationIndex,
    UV_CENTERED,
    UV_IMAGE,
    VertexProjector,
    adjust_vertices,
    build_edges,
    build_faces,
    build_image_plane,
    build_points,
    build_uv_faces,
    project_vertices,
    uv_from_keypoints,
    uv_from_vertices,
)
from facerecon.geometry.triangulation import (
    connection_pairs,
    default_triangulation,
    ring_from_edges,
    triangles_from_connections,
    winding_conflicts,
)
from facerecon.style import StyleConfig
from facerecon.utils.exceptions import GeometryBuildError, InvalidInputError


TRIANGLE_KEYPOINTS = [Keypoint(0, 0, 0), Keypoint(2, 0, 0), Keypoint(0, 2, 0)]

# Centre vertex 0 surrounded by ring 1-4, every face wound the same way
FAN_CONNECTIONS = [
    (0, 1), (1, 2), (2, 0),
    (0, 2), (2, 3), (3, 0),
    (0, 3), (3, 4), (4, 0),
    (0, 4), (4, 1), (1, 0),
]


class TestVertexProjector:
    """Test keypoint to vertex/UV projection."""

    def test_reference_triangle(self):
        """Three keypoints on a 100x100 image map to centred, Y-up vertices."""
        vertices = project_vertices(TRIANGLE_KEYPOINTS, 100, 100)
        np.testing.assert_allclose(vertices, [-50, 50, 0, -48, 50, 0, -50, 48, 0])

    def test_buffer_lengths(self):
        """Vertex buffer holds 3 floats and UV buffer 2 floats per keypoint."""
        keypoints = [Keypoint(i, i * 2, i * 0.5) for i in range(17)]
        projection = VertexProjector(64, 48).project(keypoints)
        assert projection.vertices.size == 3 * len(keypoints)
        assert projection.uvs.size == 2 * len(keypoints)
        assert projection.vertex_count == len(keypoints)

    def test_missing_z_is_zero(self):
        vertices = project_vertices([Keypoint(10, 10)], 20, 20, depth_scale=3.0)
        assert vertices[2] == 0.0

    def test_depth_scale(self):
        vertices = project_vertices([Keypoint(10, 10, 2.0)], 20, 20, depth_scale=3.0)
        assert vertices[2] == pytest.approx(6.0)

    def test_image_uv_convention(self):
        """Top-left pixel maps to u=0, v=1."""
        uvs = uv_from_keypoints([Keypoint(0, 0), Keypoint(100, 100)], 100, 100)
        np.testing.assert_allclose(uvs, [0, 1, 1, 0])

    def test_centered_uv_convention(self):
        """Centred vertices map back into [0, 1] texture space."""
        vertices = project_vertices(TRIANGLE_KEYPOINTS, 100, 100)
        uvs = uv_from_vertices(vertices, 100, 100)
        np.testing.assert_allclose(uvs, [0.0, 1.0, 0.02, 1.0, 0.0, 0.98], atol=1e-6)

    def test_projection_conventions(self):
        projector = VertexProjector(100, 100)
        image_uv = projector.project(TRIANGLE_KEYPOINTS, UV_IMAGE).uvs
        centered_uv = projector.project(TRIANGLE_KEYPOINTS, UV_CENTERED).uvs
        assert image_uv.size == centered_uv.size == 6

    def test_projection_is_readonly(self):
        projection = VertexProjector(100, 100).project(TRIANGLE_KEYPOINTS)
        with pytest.raises(ValueError):
            projection.vertices[0] = 1.0

    def test_empty_keypoints(self):
        with pytest.raises(InvalidInputError):
            project_vertices([], 100, 100)

    @pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-1, 10)])
    def test_bad_dimensions(self, width, height):
        with pytest.raises(InvalidInputError):
            project_vertices(TRIANGLE_KEYPOINTS, width, height)

    def test_unknown_uv_convention(self):
        with pytest.raises(InvalidInputError):
            VertexProjector(100, 100).project(TRIANGLE_KEYPOINTS, "polar")


class TestTriangulationIndex:
    """Test the shared topology table."""

    def test_faces_and_outline(self, square_topology):
        assert square_topology.face_count == 2
        assert list(square_topology.outline()) == [0, 1, 2, 3]
        assert square_topology.max_index == 3

    def test_tables_are_immutable(self, square_topology):
        with pytest.raises(ValueError):
            square_topology.faces()[0] = 5

    def test_edges_are_not_deduplicated(self, square_topology):
        """n faces yield 3n directed edges (6n integers), shared edges twice."""
        edges = TriangulationIndex.edges_of(square_topology.faces())
        assert edges.size == 6 * square_topology.face_count
        pairs = [tuple(p) for p in edges.reshape(-1, 2)]
        assert pairs == [(0, 1), (1, 2), (2, 0), (0, 2), (2, 3), (3, 0)]

    def test_unique_edges(self, square_topology):
        unique = TriangulationIndex.unique_edges(square_topology.faces())
        assert len(unique) == 5

    def test_bad_length(self):
        with pytest.raises(InvalidInputError):
            TriangulationIndex([0, 1], [0, 1])

    def test_validate_keypoint_count(self, square_topology):
        square_topology.validate(4)
        with pytest.raises(InvalidInputError):
            square_topology.validate(3)

    def test_from_json(self, tmp_path):
        path = tmp_path / "topology.json"
        path.write_text('{"triangulation": [0, 1, 2], "outer_ring": [0, 1, 2]}')
        topology = TriangulationIndex.from_json(path)
        assert list(topology.faces()) == [0, 1, 2]

    def test_from_json_missing_key(self, tmp_path):
        path = tmp_path / "topology.json"
        path.write_text('{"triangulation": [0, 1, 2]}')
        with pytest.raises(InvalidInputError):
            TriangulationIndex.from_json(path)

    def test_triangles_from_connections(self):
        """Closed edge triples become faces in their listed winding."""
        edges = [(0, 1), (1, 2), (2, 0), (0, 2), (2, 3), (3, 0)]
        assert list(triangles_from_connections(edges)) == [0, 1, 2, 0, 2, 3]

    def test_triangles_keep_winding(self):
        """A fan listed with consistent winding stays consistently wound."""
        faces = triangles_from_connections(FAN_CONNECTIONS)
        assert list(faces) == [0, 1, 2, 0, 2, 3, 0, 3, 4, 0, 4, 1]
        assert winding_conflicts(faces) == 0

    def test_open_triple_rejected(self):
        with pytest.raises(InvalidInputError):
            triangles_from_connections([(0, 1), (1, 2), (2, 3)])

    def test_incomplete_triple_rejected(self):
        with pytest.raises(InvalidInputError):
            triangles_from_connections([(0, 1), (1, 2)])

    def test_winding_conflicts_detects_flipped_face(self):
        """Sorted index triples walk shared fan edges the same way."""
        assert winding_conflicts([0, 1, 2, 0, 1, 4, 0, 2, 3, 0, 3, 4]) > 0

    def test_connection_pairs(self):
        connection = type("Connection", (), {"start": 4, "end": 7})()
        assert connection_pairs([connection, (1, 2)]) == [(4, 7), (1, 2)]

    def test_ring_from_directed_edges(self):
        edges = [(3, 1), (1, 2), (2, 0), (0, 3)]
        assert list(ring_from_edges(edges, start=1)) == [1, 2, 0, 3]

    def test_ring_from_undirected_edges(self):
        edges = [(0, 1), (2, 1), (2, 3), (0, 3)]
        assert list(ring_from_edges(edges, start=0)) == [0, 1, 2, 3]


class TestDefaultTopology:
    """Test the shared MediaPipe face mesh topology."""

    def test_face_count(self):
        topology = default_triangulation()
        assert topology.face_count == 852
        assert topology.max_index < 468

    def test_consistently_wound(self):
        """No directed edge is walked by two faces."""
        assert winding_conflicts(default_triangulation().faces()) == 0

    def test_outline_is_closed_ring(self):
        outline = default_triangulation().outline()
        assert outline[0] == 10
        assert len(set(outline.tolist())) == outline.size == 36

    def test_shared_instance(self):
        assert default_triangulation() is default_triangulation()


class TestAdjustVertices:
    """Test the shared scale/invert normalisation step."""

    def test_scale_without_invert(self):
        config = StyleConfig(scale_factor=0.5, invert_depth=False)
        np.testing.assert_allclose(adjust_vertices([10, 10, 4], config), [5, 5, 2])

    def test_scale_with_invert(self):
        config = StyleConfig(scale_factor=0.25, invert_depth=True)
        np.testing.assert_allclose(adjust_vertices([8, -4, 12], config), [2, -1, -3])

    def test_input_not_mutated(self):
        vertices = np.array([10, 10, 4], dtype=np.float32)
        adjust_vertices(vertices, StyleConfig(scale_factor=0.5))
        np.testing.assert_array_equal(vertices, [10, 10, 4])

    def test_bad_length(self):
        with pytest.raises(GeometryBuildError):
            adjust_vertices([1, 2], StyleConfig())


class TestMeshAssembler:
    """Test the mesh variants."""

    @pytest.fixture
    def buffers(self, square_keypoints, square_topology):
        return project_vertices(square_keypoints, 100, 100), square_topology.faces()

    def test_points(self, buffers):
        vertices, _ = buffers
        config = StyleConfig(scale_factor=0.5)
        mesh = build_points(vertices, config)
        assert mesh.kind == "points"
        assert mesh.geometry.vertex_count == 4
        assert mesh.material.size == pytest.approx(3 * 0.1 * 0.5)
        assert mesh.rotation_x == pytest.approx(-math.pi / 2)

    def test_edges(self, buffers):
        vertices, indices = buffers
        mesh = build_edges(vertices, indices, StyleConfig())
        assert mesh.kind == "edges"
        assert mesh.geometry.segments.size == 12

    def test_faces_wireframe_flag(self, buffers):
        vertices, indices = buffers
        solid = build_faces(vertices, indices, StyleConfig())
        wire = build_faces(vertices, indices, StyleConfig(), wireframe=True)
        assert not solid.material.wireframe
        assert wire.material.wireframe
        np.testing.assert_array_equal(solid.geometry.positions, wire.geometry.positions)

    def test_idempotent(self, buffers):
        """Identical inputs give bit-identical buffers."""
        vertices, indices = buffers
        config = StyleConfig(scale_factor=0.3)
        first = build_faces(vertices, indices, config)
        second = build_faces(vertices, indices, config)
        assert first.geometry.positions.tobytes() == second.geometry.positions.tobytes()
        assert first.geometry.indices.tobytes() == second.geometry.indices.tobytes()

    def test_uv_faces_ignore_scale(self, buffers, image):
        """UVs come from raw vertices, so they do not drift with scale."""
        vertices, indices = buffers
        small = build_uv_faces(vertices, indices, image, StyleConfig(scale_factor=0.1))
        large = build_uv_faces(vertices, indices, image, StyleConfig(scale_factor=2.0))
        np.testing.assert_array_equal(small.geometry.uvs, large.geometry.uvs)
        assert not np.array_equal(small.geometry.positions, large.geometry.positions)

    def test_uv_faces_elevation(self, buffers, image):
        vertices, indices = buffers
        mesh = build_uv_faces(vertices, indices, image, StyleConfig(base_elevation=5.0))
        assert mesh.kind == "uv_faces"
        assert mesh.position_y == 5.0
        assert mesh.material.texture is image

    def test_out_of_range_indices(self, buffers):
        vertices, _ = buffers
        with pytest.raises(GeometryBuildError):
            build_faces(vertices, [0, 1, 9], StyleConfig())

    def test_missing_vertices_is_recoverable(self, square_topology, image):
        """A missing vertex buffer yields a failed Outcome, not an exception."""
        outcome = MeshAssembler(None, square_topology.faces(), StyleConfig()).uv_faces(image)
        assert not outcome.ok
        assert isinstance(outcome.error, GeometryBuildError)
        assert outcome.value_or_none() is None

    def test_missing_indices_is_recoverable(self, buffers):
        vertices, _ = buffers
        assembler = MeshAssembler(vertices, None, StyleConfig())
        assert not assembler.edges().ok
        assert not assembler.faces().ok
        assert assembler.points().ok

    def test_wireframe_name(self, buffers):
        vertices, indices = buffers
        mesh = MeshAssembler(vertices, indices, StyleConfig()).faces(wireframe=True).unwrap()
        assert mesh.name == "wireframe"

    def test_image_plane_aspect(self, image):
        wide = np.zeros((50, 200, 3), dtype=np.uint8)
        plane = build_image_plane(wide, 10.0)
        xs = plane.geometry.positions_3d()[:, 0]
        ys = plane.geometry.positions_3d()[:, 1]
        assert xs.max() - xs.min() == pytest.approx(10.0)
        assert ys.max() - ys.min() == pytest.approx(2.5)
        assert plane.kind == "image_plane"

    def test_world_positions_lay_flat(self):
        """Depth (z) points up once the mesh is laid on the image plane."""
        config = StyleConfig(scale_factor=1.0, invert_depth=False, lift_offset=0.1)
        mesh = build_points([0, 0, 2], config)
        np.testing.assert_allclose(mesh.world_positions(), [[0, 2.1, 0]], atol=1e-9)
