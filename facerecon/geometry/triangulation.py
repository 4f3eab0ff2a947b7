"""
Fixed face-mesh topology: triangle table and outer-ring outline.

The tables are loaded once per process and shared read-only between all
components. The default tables come from MediaPipe's face landmarker
connections: the tessellation lists every triangle as three consecutive
directed edges, so faces keep their winding, and the outline is the face
oval chained into an ordered ring.
"""

from __future__ import annotations

import functools
import json
from collections import Counter, defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..utils.exceptions import InvalidInputError, ModelLoadError
from ..utils.logging_utils import get_logger
from .types import readonly

logger = get_logger(__name__)

Edge = Tuple[int, int]

# Top of the forehead in the MediaPipe 468-point topology
FACE_OVAL_START = 10


def connection_pairs(connections: Iterable) -> List[Edge]:
    """Normalise MediaPipe ``Connection`` objects or plain pairs to int tuples."""
    pairs = []
    for connection in connections:
        if hasattr(connection, "start") and hasattr(connection, "end"):
            pairs.append((int(connection.start), int(connection.end)))
        else:
            a, b = connection
            pairs.append((int(a), int(b)))
    return pairs


def triangles_from_connections(edges: Sequence[Edge]) -> np.ndarray:
    """
    Read triangles from a tessellation listed as closed edge triples.

    Edges ``(a, b), (b, c), (c, a)`` become face ``(a, b, c)``, so the
    winding of the source tessellation is preserved.

    Raises:
        InvalidInputError: if the edges do not group into closed triangles
    """
    edges = list(edges)
    if len(edges) % 3 != 0:
        raise InvalidInputError("Tessellation edges must come in triples",
                                expected="len % 3 == 0", actual=len(edges))

    triangles: List[int] = []
    for i in range(0, len(edges), 3):
        (a, b), (b2, c), (c2, a2) = edges[i:i + 3]
        if b != b2 or c != c2 or a != a2:
            raise InvalidInputError("Tessellation edges do not close a triangle",
                                    expected="(a, b), (b, c), (c, a)", actual=edges[i:i + 3])
        triangles.extend((a, b, c))

    return np.array(triangles, dtype=np.int32)


def winding_conflicts(indices: Sequence[int]) -> int:
    """
    Count directed edges used by more than one face.

    A consistently wound surface walks every shared edge once in each
    direction, so the count is zero.
    """
    pairs = TriangulationIndex.edges_of(indices).reshape(-1, 2)
    counts = Counter(map(tuple, pairs.tolist()))
    return sum(1 for n in counts.values() if n > 1)


def ring_from_edges(edges: Iterable[Edge], start: Optional[int] = None) -> np.ndarray:
    """
    Chain the edges of a closed outline into an ordered ring of indices.

    Directed successors are followed when the edge set is consistently
    oriented; otherwise the ring is walked as an undirected cycle.
    """
    edges = [tuple(edge) for edge in edges]
    if not edges:
        return np.zeros(0, dtype=np.int32)

    nodes = sorted({i for edge in edges for i in edge})
    if start is None or start not in nodes:
        start = nodes[0]

    successors = dict(edges)
    if len(successors) == len(nodes):
        ring = [start]
        current = successors.get(start)
        while current is not None and current != start and len(ring) <= len(nodes):
            ring.append(current)
            current = successors.get(current)
        if current == start and len(ring) == len(nodes):
            return np.array(ring, dtype=np.int32)

    neighbours: Dict[int, List[int]] = defaultdict(list)
    for a, b in edges:
        neighbours[a].append(b)
        neighbours[b].append(a)

    ring = [start]
    visited = {start}
    current = start
    while True:
        candidates = [n for n in sorted(neighbours[current]) if n not in visited]
        if not candidates:
            break
        current = candidates[0]
        ring.append(current)
        visited.add(current)

    if len(ring) != len(nodes):
        logger.warning(f"Outline edges do not form a single ring ({len(ring)}/{len(nodes)} nodes chained)")
    return np.array(ring, dtype=np.int32)


class TriangulationIndex:
    """
    Read-only topology table.

    Args:
        triangulation: Flattened landmark index triples
        outer_ring: Landmark indices forming the closed face outline
    """

    def __init__(self, triangulation: Sequence[int], outer_ring: Sequence[int]):
        faces = np.array(triangulation, dtype=np.int32).reshape(-1)
        if faces.size % 3 != 0:
            raise InvalidInputError(
                "Triangulation length must be a multiple of 3",
                expected="len % 3 == 0",
                actual=faces.size
            )
        if faces.size and faces.min() < 0:
            raise InvalidInputError("Triangulation contains negative indices", actual=int(faces.min()))

        self._faces = readonly(faces)
        self._outline = readonly(np.array(outer_ring, dtype=np.int32).reshape(-1))

    def faces(self) -> np.ndarray:
        """Triangle index buffer (shared, read-only)."""
        return self._faces

    def outline(self) -> np.ndarray:
        """Ordered outer-ring indices (shared, read-only)."""
        return self._outline

    @property
    def face_count(self) -> int:
        return int(self._faces.size // 3)

    @property
    def max_index(self) -> int:
        values = [int(arr.max()) for arr in (self._faces, self._outline) if arr.size]
        return max(values) if values else -1

    def validate(self, keypoint_count: int) -> None:
        """Raise if any index does not address one of ``keypoint_count`` keypoints."""
        if self.max_index >= keypoint_count:
            raise InvalidInputError(
                "Topology references more keypoints than were detected",
                expected=f"indices < {keypoint_count}",
                actual=self.max_index
            )

    @staticmethod
    def edges_of(indices: Sequence[int]) -> np.ndarray:
        """
        Directed edges of every face, three per triangle, duplicates kept.

        For face ``(a, b, c)`` the edges are ``(a, b), (b, c), (c, a)``.
        Returns a flat int array of length ``6 * face_count``.
        """
        faces = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
        edges = np.stack([faces[:, [0, 1]], faces[:, [1, 2]], faces[:, [2, 0]]], axis=1)
        return edges.reshape(-1).astype(np.int32)

    @staticmethod
    def unique_edges(indices: Sequence[int]) -> np.ndarray:
        """Undirected, deduplicated edge pairs as an ``(E, 2)`` array."""
        pairs = TriangulationIndex.edges_of(indices).reshape(-1, 2)
        if pairs.size == 0:
            return pairs
        return np.unique(np.sort(pairs, axis=1), axis=0)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "TriangulationIndex":
        """Load ``{"triangulation": [...], "outer_ring": [...]}`` from disk."""
        path = Path(path)
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
        try:
            return cls(data["triangulation"], data["outer_ring"])
        except KeyError as e:
            raise InvalidInputError(f"Topology file {path} is missing {e}",
                                    expected=["triangulation", "outer_ring"],
                                    actual=sorted(data)) from e

    @classmethod
    def from_mediapipe(cls) -> "TriangulationIndex":
        """Build the 468-landmark topology from the face landmarker connections."""
        try:
            from mediapipe.tasks.python import vision

            connections = vision.FaceLandmarksConnections
            tessellation = connection_pairs(connections.FACE_LANDMARKS_TESSELATION)
            face_oval = connection_pairs(connections.FACE_LANDMARKS_FACE_OVAL)
        except (ImportError, AttributeError) as e:
            raise ModelLoadError("mediapipe-face-landmarks-topology", cause=e) from e

        faces = triangles_from_connections(tessellation)
        conflicts = winding_conflicts(faces)
        if conflicts:
            logger.warning(f"Face mesh topology has {conflicts} inconsistently wound edges")
        ring = ring_from_edges(face_oval, start=FACE_OVAL_START)
        logger.info(f"Loaded face mesh topology: {faces.size // 3} triangles, {ring.size}-point outline")
        return cls(faces, ring)


@functools.lru_cache(maxsize=None)
def default_triangulation() -> TriangulationIndex:
    """Process-wide shared topology, loaded on first use."""
    return TriangulationIndex.from_mediapipe()
