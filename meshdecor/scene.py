"""
Scene model
===========
A loaded asset is held as an arena of nodes: one flat list, each node
carrying its parent index, its child indices and a local 4x4 transform.
Nodes are tagged GROUP or DRAWABLE and every traversal dispatches on that tag.

Consumers that run while the user keeps editing (raycasts, exporters) read a
SceneSnapshot, an immutable copy with world matrices already resolved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

import numpy as np
import trimesh
from trimesh.transformations import transform_points

logger = logging.getLogger(__name__)


class NodeKind(Enum):
    GROUP = "group"
    DRAWABLE = "drawable"


# ──────────────────────────────────────────────────────────────────────────────
# Geometry buffers
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class MeshData:
    """
    Vertex buffers of one drawable.

    positions : (N, 3) float
    indices   : (M, 3) int or None (non-indexed triangle list)
    normals   : (N, 3) float or None
    uvs       : (N, 2) float or None
    """
    positions: np.ndarray
    indices: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    uvs: Optional[np.ndarray] = None

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        n = len(self.positions)
        if self.indices is not None:
            self.indices = np.asarray(self.indices, dtype=np.int64).reshape(-1, 3)
            if len(self.indices) and (self.indices.min() < 0 or self.indices.max() >= n):
                raise ValueError(f"index buffer references vertices outside [0, {n})")
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if len(self.normals) != n:
                logger.debug("[scene] Dropping normals: %d normals for %d vertices", len(self.normals), n)
                self.normals = None
        if self.uvs is not None:
            self.uvs = np.asarray(self.uvs, dtype=np.float64).reshape(-1, 2)

    @classmethod
    def from_trimesh(cls, mesh: trimesh.Trimesh) -> "MeshData":
        uv = getattr(mesh.visual, "uv", None)
        normals = None
        if len(mesh.faces):
            normals = np.asarray(mesh.vertex_normals, dtype=np.float64)
        return cls(
            positions=np.asarray(mesh.vertices, dtype=np.float64),
            indices=np.asarray(mesh.faces, dtype=np.int64),
            normals=normals,
            uvs=None if uv is None else np.asarray(uv, dtype=np.float64),
        )

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        if self.indices is not None:
            return len(self.indices)
        return len(self.positions) // 3

    @property
    def has_uv(self) -> bool:
        return self.uvs is not None and len(self.uvs) == len(self.positions) and len(self.uvs) > 0

    def triangles(self) -> np.ndarray:
        """(M, 3) vertex indices; consecutive triples when the buffer is non-indexed."""
        if self.indices is not None:
            return self.indices
        m = len(self.positions) // 3
        return np.arange(m * 3, dtype=np.int64).reshape(m, 3)


def compute_normals(verts: np.ndarray, indices: np.ndarray, n_verts: int) -> np.ndarray:
    """Accumulate face normals into per-vertex normals."""
    normals = np.zeros((n_verts, 3), dtype=np.float64)
    if len(indices) == 0:
        return normals
    v0 = verts[indices[:, 0]]
    v1 = verts[indices[:, 1]]
    v2 = verts[indices[:, 2]]
    fn = np.cross(v1 - v0, v2 - v0)

    for i in range(3):
        np.add.at(normals, indices[:, i], fn)

    nlen = np.linalg.norm(normals, axis=1, keepdims=True)
    nlen = np.where(nlen == 0, 1.0, nlen)
    return normals / nlen


def normal_matrix(matrix: np.ndarray) -> np.ndarray:
    """Inverse-transpose of the linear part, for transforming normals."""
    linear = np.asarray(matrix, dtype=np.float64)[:3, :3]
    try:
        return np.linalg.inv(linear).T
    except np.linalg.LinAlgError:
        return linear


# ──────────────────────────────────────────────────────────────────────────────
# Node arena
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class SceneNode:
    kind: NodeKind
    name: str = ""
    parent: int = -1
    children: List[int] = field(default_factory=list)
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    mesh: Optional[MeshData] = None
    # Material as handed over by the loader (trimesh material or None)
    material: object = None


@dataclass(frozen=True)
class NodeView:
    """
    Frozen copy of a SceneNode taken by a snapshot. Children and transform
    are copied; mesh and material are shared with the tree, which replaces
    them on the node rather than editing them in place.
    """
    kind: NodeKind
    name: str
    parent: int
    children: Tuple[int, ...]
    transform: np.ndarray
    mesh: Optional[MeshData]
    material: object

    @classmethod
    def of(cls, node: SceneNode) -> "NodeView":
        return cls(kind=node.kind, name=node.name, parent=node.parent,
                   children=tuple(node.children), transform=_read_only(node.transform),
                   mesh=node.mesh, material=node.material)


def _read_only(matrix) -> np.ndarray:
    m = np.array(matrix, dtype=np.float64)
    m.setflags(write=False)
    return m


@dataclass(frozen=True)
class SceneSnapshot:
    """Read-only view of a SceneTree at one revision."""
    revision: int
    nodes: Tuple[NodeView, ...]
    world: Tuple[np.ndarray, ...]

    def drawables(self) -> Iterator[Tuple[int, NodeView, np.ndarray]]:
        for index, node in enumerate(self.nodes):
            if node.kind is NodeKind.DRAWABLE and node.mesh is not None:
                yield index, node, self.world[index]


class SceneTree:
    """Arena of GROUP / DRAWABLE nodes; index 0 is always the root group."""

    def __init__(self, name: str = "root"):
        self.nodes: List[SceneNode] = [SceneNode(NodeKind.GROUP, name=name)]
        self.revision = 0

    def __len__(self) -> int:
        return len(self.nodes)

    # ── construction ──────────────────────────────────────────────────────
    def _attach(self, node: SceneNode, parent: int) -> int:
        if not 0 <= parent < len(self.nodes):
            raise IndexError(f"parent index {parent} out of range")
        node.parent = parent
        self.nodes.append(node)
        index = len(self.nodes) - 1
        self.nodes[parent].children.append(index)
        self.revision += 1
        return index

    def add_group(self, name: str = "", parent: int = 0, transform=None) -> int:
        matrix = np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
        return self._attach(SceneNode(NodeKind.GROUP, name=name, transform=matrix), parent)

    def add_drawable(self, mesh: MeshData, name: str = "", parent: int = 0,
                     transform=None, material=None) -> int:
        matrix = np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
        node = SceneNode(NodeKind.DRAWABLE, name=name, transform=matrix, mesh=mesh, material=material)
        return self._attach(node, parent)

    def set_transform(self, index: int, matrix) -> None:
        self.nodes[index].transform = np.asarray(matrix, dtype=np.float64).reshape(4, 4)
        self.revision += 1

    # ── traversal ─────────────────────────────────────────────────────────
    def walk(self) -> Iterator[Tuple[int, SceneNode, np.ndarray]]:
        """
        Pre-order traversal yielding (index, node, world_matrix).
        Uses an explicit stack; a node reached twice is skipped, so a
        malformed child list cannot loop forever.
        """
        seen = set()
        stack = [(0, np.eye(4))]
        while stack:
            index, parent_world = stack.pop()
            if index in seen or not 0 <= index < len(self.nodes):
                continue
            seen.add(index)
            node = self.nodes[index]
            world = parent_world @ node.transform
            if node.kind is NodeKind.GROUP:
                yield index, node, world
            elif node.kind is NodeKind.DRAWABLE:
                if node.mesh is None:
                    logger.warning("[scene] Drawable %r has no geometry, skipping", node.name or index)
                else:
                    yield index, node, world
            else:
                raise TypeError(f"unknown node kind {node.kind!r}")
            stack.extend((child, world) for child in reversed(node.children))

    def drawables(self) -> Iterator[Tuple[int, SceneNode, np.ndarray]]:
        for index, node, world in self.walk():
            if node.kind is NodeKind.DRAWABLE:
                yield index, node, world

    def world_transform(self, index: int) -> np.ndarray:
        matrix = np.eye(4)
        while index >= 0:
            node = self.nodes[index]
            matrix = node.transform @ matrix
            index = node.parent
        return matrix

    def snapshot(self) -> SceneSnapshot:
        world = [np.eye(4)] * len(self.nodes)
        for index, _node, matrix in self.walk():
            world[index] = matrix
        return SceneSnapshot(
            revision=self.revision,
            nodes=tuple(NodeView.of(node) for node in self.nodes),
            world=tuple(_read_only(matrix) for matrix in world),
        )

    # ── bounds ────────────────────────────────────────────────────────────
    def world_bounds(self) -> Optional[np.ndarray]:
        """(2, 3) [min, max] over every drawable vertex in world space, or None if empty."""
        lo = np.full(3, np.inf)
        hi = np.full(3, -np.inf)
        for _index, node, world in self.drawables():
            if node.mesh is None or node.mesh.vertex_count == 0:
                continue
            pts = transform_points(node.mesh.positions, world)
            lo = np.minimum(lo, pts.min(axis=0))
            hi = np.maximum(hi, pts.max(axis=0))
        if not np.all(np.isfinite(lo)):
            return None
        return np.stack([lo, hi])

    # ── adapters ──────────────────────────────────────────────────────────
    @classmethod
    def from_trimesh(cls, loaded) -> "SceneTree":
        """
        Build a tree from what trimesh.load() returns: a Scene (graph walked
        from its base frame) or a single Trimesh (one drawable under root).
        """
        if isinstance(loaded, trimesh.Trimesh):
            tree = cls()
            name = str(loaded.metadata.get("name", "")) if loaded.metadata else ""
            tree.add_drawable(MeshData.from_trimesh(loaded), name=name,
                              material=getattr(loaded.visual, "material", None))
            return tree

        if not isinstance(loaded, trimesh.Scene):
            raise TypeError(f"Cannot build a scene tree from {type(loaded).__name__}")

        graph = loaded.graph
        base = graph.base_frame
        tree = cls(name=str(base))

        children = {}
        for parent, child, attr in graph.to_edgelist():
            children.setdefault(parent, []).append((child, attr or {}))

        index_of = {base: 0}
        queue = [base]
        while queue:
            parent = queue.pop(0)
            for child, attr in children.get(parent, []):
                if child in index_of:
                    logger.warning("[scene] Node %r reached twice, skipping", child)
                    continue
                matrix = np.asarray(attr.get("matrix", np.eye(4)), dtype=np.float64).reshape(4, 4)
                geom = loaded.geometry.get(attr.get("geometry")) if attr.get("geometry") else None
                if isinstance(geom, trimesh.Trimesh):
                    index = tree.add_drawable(
                        MeshData.from_trimesh(geom),
                        name=str(child),
                        parent=index_of[parent],
                        transform=matrix,
                        material=getattr(geom.visual, "material", None),
                    )
                else:
                    index = tree.add_group(name=str(child), parent=index_of[parent], transform=matrix)
                index_of[child] = index
                queue.append(child)

        logger.debug("[scene] Built tree with %d nodes from trimesh scene", len(tree))
        return tree
