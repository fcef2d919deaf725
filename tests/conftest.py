import numpy as np
import pytest
import trimesh
from trimesh.visual.material import PBRMaterial

from meshdecor.scene import MeshData, SceneTree


def quad_mesh(with_uv=True):
    """Unit quad centred at the origin, facing +Z."""
    positions = np.array([
        [-0.5, -0.5, 0.0],
        [0.5, -0.5, 0.0],
        [0.5, 0.5, 0.0],
        [-0.5, 0.5, 0.0],
    ])
    uvs = np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]) if with_uv else None
    return MeshData(positions=positions, indices=np.array([[0, 1, 2], [0, 2, 3]]), uvs=uvs)


def box_mesh(lo, hi):
    box = trimesh.creation.box(bounds=np.array([lo, hi], dtype=np.float64))
    return MeshData.from_trimesh(box)


@pytest.fixture
def quad_tree():
    tree = SceneTree()
    tree.add_drawable(quad_mesh(), name="quad")
    return tree


@pytest.fixture
def box_tree():
    """4 x 2 x 2 box spanning [-2, -1, -1] .. [2, 1, 1], split over two nodes."""
    tree = SceneTree()
    group = tree.add_group("body")
    tree.add_drawable(box_mesh([-2, -1, -1], [0, 1, 1]), name="left", parent=group)
    tree.add_drawable(box_mesh([0, -1, -1], [2, 1, 1]), name="right", parent=group)
    return tree


@pytest.fixture
def shared_material():
    return PBRMaterial(name="shared", baseColorFactor=[200, 100, 50, 255])


class FakeMeasure:
    """Deterministic text widths: known strings from a table, else 20px per character."""

    def __init__(self, table=None, per_char=20.0):
        self.table = dict(table or {})
        self.per_char = per_char

    def __call__(self, text, _font):
        if text in self.table:
            return self.table[text]
        return len(text) * self.per_char


@pytest.fixture
def fake_measure():
    return FakeMeasure
