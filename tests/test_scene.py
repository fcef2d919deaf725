import numpy as np
import pytest
import trimesh
from trimesh.transformations import translation_matrix

from meshdecor.scene import MeshData, NodeKind, SceneTree, compute_normals
from tests.conftest import quad_mesh


def test_root_is_group():
    tree = SceneTree()
    assert len(tree) == 1
    assert tree.nodes[0].kind is NodeKind.GROUP


def test_non_indexed_triangles_are_consecutive_triples():
    mesh = MeshData(positions=np.zeros((6, 3)))
    assert mesh.triangle_count == 2
    assert mesh.triangles().tolist() == [[0, 1, 2], [3, 4, 5]]


def test_out_of_range_index_rejected():
    with pytest.raises(ValueError):
        MeshData(positions=np.zeros((3, 3)), indices=[[0, 1, 3]])


def test_mismatched_normals_dropped():
    mesh = MeshData(positions=np.zeros((3, 3)), normals=np.zeros((2, 3)))
    assert mesh.normals is None


def test_compute_normals_quad_faces_up():
    mesh = quad_mesh()
    normals = compute_normals(mesh.positions, mesh.indices, mesh.vertex_count)
    assert np.allclose(normals, [0, 0, 1])


def test_walk_preorder_and_world_transforms():
    tree = SceneTree()
    group = tree.add_group("g", transform=translation_matrix([1, 0, 0]))
    a = tree.add_drawable(quad_mesh(), name="a", parent=group, transform=translation_matrix([0, 2, 0]))
    b = tree.add_drawable(quad_mesh(), name="b")

    visited = [(index, node.name) for index, node, _world in tree.walk()]
    assert visited == [(0, "root"), (group, "g"), (a, "a"), (b, "b")]

    worlds = {index: world for index, _node, world in tree.walk()}
    assert np.allclose(worlds[a][:3, 3], [1, 2, 0])
    assert np.allclose(tree.world_transform(a), worlds[a])


def test_walk_skips_drawable_without_mesh():
    tree = SceneTree()
    tree.add_drawable(None, name="ghost")
    assert list(tree.drawables()) == []


def test_snapshot_is_frozen_per_revision():
    tree = SceneTree()
    index = tree.add_drawable(quad_mesh(), name="q")
    snap = tree.snapshot()
    tree.set_transform(index, translation_matrix([5, 0, 0]))

    assert snap.revision < tree.revision
    assert np.allclose(snap.world[index], np.eye(4))
    with pytest.raises(ValueError):
        snap.world[index][0, 0] = 2.0


def test_snapshot_nodes_do_not_follow_later_edits():
    tree = SceneTree()
    group = tree.add_group("g")
    index = tree.add_drawable(quad_mesh(), name="q", parent=group)
    snap = tree.snapshot()

    tree.add_drawable(quad_mesh(), name="late", parent=group)
    tree.set_transform(index, translation_matrix([0, 0, 4]))

    assert snap.nodes[group].children == (index,)
    assert np.allclose(snap.nodes[index].transform, np.eye(4))
    assert len(snap.nodes) == 3
    with pytest.raises(ValueError):
        snap.nodes[index].transform[0, 3] = 1.0
    with pytest.raises(AttributeError):
        snap.nodes[index].name = "renamed"
    assert [i for i, _node, _world in snap.drawables()] == [index]


def test_world_bounds_empty_is_none():
    assert SceneTree().world_bounds() is None


def test_from_trimesh_scene_builds_drawables():
    scene = trimesh.Scene()
    scene.add_geometry(trimesh.creation.box(), node_name="crate", geom_name="crate",
                       transform=translation_matrix([0, 0, 3]))
    tree = SceneTree.from_trimesh(scene)

    drawables = list(tree.drawables())
    assert len(drawables) == 1
    _index, node, world = drawables[0]
    assert node.name == "crate"
    assert node.mesh.triangle_count == 12
    assert np.allclose(world[:3, 3], [0, 0, 3])


def test_from_trimesh_single_mesh():
    tree = SceneTree.from_trimesh(trimesh.creation.icosphere(subdivisions=1))
    assert len(list(tree.drawables())) == 1


def test_from_trimesh_rejects_other_types():
    with pytest.raises(TypeError):
        SceneTree.from_trimesh("not a mesh")
