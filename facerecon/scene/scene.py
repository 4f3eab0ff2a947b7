"""
Thread-safe scene graph shared between the orchestrator and a frame loop.

Only named ``add``/``remove`` calls mutate the scene; readers take an
immutable snapshot. Adding a descriptor under an existing name replaces
the previous node, so repeated ``add`` calls are idempotent.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Callable, Dict, Iterator, Optional, Tuple

import trimesh

from ..config import SCENE_CONFIG
from ..geometry.types import MeshDescriptor
from ..utils.logging_utils import get_logger

logger = get_logger(__name__)


class Scene:
    """
    Ordered collection of named mesh descriptors.

    Args:
        name: Scene label used in logs
        background_color: Clear colour for viewers (0xRRGGBB)
    """

    def __init__(self, name: str = "main", background_color: int = SCENE_CONFIG["background_color"]):
        self.name = name
        self.background_color = background_color
        self._nodes: "OrderedDict[str, MeshDescriptor]" = OrderedDict()
        self._lock = threading.RLock()
        self._version = 0

    def add(self, descriptor: MeshDescriptor, name: Optional[str] = None) -> MeshDescriptor:
        """Insert or replace the node called ``name`` (defaults to the descriptor name)."""
        key = name or descriptor.name
        with self._lock:
            replaced = key in self._nodes
            self._nodes[key] = descriptor
            self._version += 1
        logger.debug(f"[{self.name}] {'replaced' if replaced else 'added'} node '{key}' ({descriptor.kind})")
        return descriptor

    def remove(self, name: str) -> Optional[MeshDescriptor]:
        with self._lock:
            node = self._nodes.pop(name, None)
            if node is not None:
                self._version += 1
        return node

    def remove_where(self, predicate: Callable[[MeshDescriptor], bool]) -> int:
        """Remove every node matching ``predicate``; returns how many were removed."""
        with self._lock:
            doomed = [key for key, node in self._nodes.items() if predicate(node)]
            for key in doomed:
                del self._nodes[key]
            if doomed:
                self._version += 1
        return len(doomed)

    def clear_textured_planes(self) -> int:
        """Drop image/overlay planes, keeping reconstructed geometry."""
        return self.remove_where(lambda node: node.kind == "image_plane")

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()
            self._version += 1

    def get(self, name: str) -> Optional[MeshDescriptor]:
        with self._lock:
            return self._nodes.get(name)

    def snapshot(self) -> Tuple[MeshDescriptor, ...]:
        """Consistent, immutable view of the current nodes for readers."""
        with self._lock:
            return tuple(self._nodes.values())

    def names(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._nodes.keys())

    @property
    def version(self) -> int:
        """Incremented on every mutation; frame loops can skip unchanged frames."""
        return self._version

    def to_trimesh(self) -> trimesh.Scene:
        """Convert a snapshot of the scene for viewing or export."""
        from ..export.gltf import descriptors_to_scene

        return descriptors_to_scene(self.snapshot())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._nodes

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __iter__(self) -> Iterator[MeshDescriptor]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"Scene(name={self.name!r}, nodes={list(self.names())})"


def create_scenes(primary: str = "main", secondary: str = "secondary") -> Dict[str, Scene]:
    """The pipeline's primary and secondary scenes."""
    return {"primary": Scene(primary), "secondary": Scene(secondary)}
